"""Root pytest configuration.

The project uses a flat layout (*bot.py*, *storage.py*, *models.py* at the
root, *services/* and *utils/* beside them), so the root directory is put on
``sys.path`` for tests to import those modules directly.
"""

from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

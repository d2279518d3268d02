"""
CSV Service for CampPoll bot.
Handles export of schedule summaries in CSV format.
"""

import pandas as pd
from typing import Optional
from io import StringIO, BytesIO
import logging

from models import AggregateView, Attachment, Schedule

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = ["date_id", "label", "yes", "maybe", "no", "score", "optimal"]


def create_summary_csv(schedule: Schedule, view: AggregateView) -> Optional[BytesIO]:
    """
    Create a per-date summary CSV: date_id,label,yes,maybe,no,score,optimal

    Args:
        schedule: Schedule whose dates define the rows
        view: Aggregated responses for the schedule

    Returns:
        BytesIO object containing CSV data, or None if error
    """
    try:
        csv_data = []
        for date in schedule.dates:
            counts = view.counts.get(date.id)
            csv_data.append({
                "date_id": date.id,
                "label": date.label,
                "yes": counts.yes if counts else 0,
                "maybe": counts.maybe if counts else 0,
                "no": counts.no if counts else 0,
                "score": view.scores.get(date.id, 0.0),
                "optimal": date.id == view.optimal_date_id,
            })

        df = pd.DataFrame(csv_data, columns=SUMMARY_COLUMNS)

        csv_buffer = StringIO()
        df.to_csv(csv_buffer, index=False, encoding='utf-8')

        bytes_buffer = BytesIO()
        bytes_buffer.write(csv_buffer.getvalue().encode('utf-8'))
        bytes_buffer.seek(0)

        logger.info(f"Created summary CSV with {len(csv_data)} date rows for schedule {schedule.id}")
        return bytes_buffer

    except Exception as e:
        logger.error(f"Error creating summary CSV for schedule {schedule.id}: {e}")
        return None


def create_summary_attachment(schedule: Schedule, view: AggregateView) -> Optional[Attachment]:
    """Summary CSV wrapped as a message attachment."""
    buffer = create_summary_csv(schedule, view)
    if buffer is None:
        return None
    return Attachment(filename=f"schedule_{schedule.id[:8]}_summary.csv", data=buffer.getvalue())

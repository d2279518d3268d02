"""
Storage for CampPoll bot.
Schedules and responses kept in JSON documents with async, lock-guarded access.

Schedules live in one document together with a deadline index (a list of
``[deadline_epoch, schedule_id]`` pairs kept sorted), so the scheduler can ask
for a deadline range without scanning every schedule.
"""

import json
import os
import asyncio
import logging
from abc import ABC, abstractmethod
from bisect import bisect_left, bisect_right, insort
from typing import Any, Callable, Dict, List, Optional
from pathlib import Path
from datetime import datetime, timezone

from models import AggregateView, ResponseRecord, Schedule
from services.aggregation import summarize_schedule
from utils.validation import validate_schedule, ValidationError

logger = logging.getLogger(__name__)

SCHEDULES_FILE = "schedules"
RESPONSES_FILE = "responses"


class StorageError(Exception):
    """Raised when a storage read or write fails."""


class ConcurrentUpdateError(StorageError):
    """Raised when a schedule was modified since it was read."""


class PollStore(ABC):
    """Persistence interface used by the deadline scheduler."""

    @abstractmethod
    async def get_schedule(self, schedule_id: str, group_id: str) -> Optional[Schedule]:
        ...

    @abstractmethod
    async def save_schedule(self, schedule: Schedule) -> Schedule:
        ...

    @abstractmethod
    async def update_schedule(
        self, schedule_id: str, group_id: str, mutate: Callable[[Schedule], bool]
    ) -> Optional[Schedule]:
        ...

    @abstractmethod
    async def delete_schedule(self, schedule_id: str, group_id: str) -> bool:
        ...

    @abstractmethod
    async def query_by_deadline_range(
        self, start: datetime, end: datetime, group_id: Optional[str] = None
    ) -> List[Schedule]:
        ...

    @abstractmethod
    async def save_response(self, record: ResponseRecord) -> None:
        ...

    @abstractmethod
    async def get_responses(self, schedule_id: str) -> List[ResponseRecord]:
        ...

    @abstractmethod
    async def get_summary(self, schedule_id: str, group_id: str) -> Optional[AggregateView]:
        ...


def _epoch(dt: datetime) -> float:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


class JsonPollStore(PollStore):
    """PollStore backed by JSON files in a data directory."""

    def __init__(self, data_dir: str = "data"):
        self.data_dir = Path(data_dir)
        # One lock per document, owned by this store instance
        self._locks: Dict[str, asyncio.Lock] = {}

    def _get_file_lock(self, filename: str) -> asyncio.Lock:
        """Get or create a lock for a specific file."""
        if filename not in self._locks:
            self._locks[filename] = asyncio.Lock()
        return self._locks[filename]

    def _path(self, filename: str) -> Path:
        return self.data_dir / f"{filename}.json"

    async def _read(self, filename: str, default: Any) -> Any:
        file_path = self._path(filename)
        if not file_path.exists():
            return default
        try:
            # Read file asynchronously
            loop = asyncio.get_running_loop()
            content = await loop.run_in_executor(None, file_path.read_text, 'utf-8')
            return json.loads(content)
        except (json.JSONDecodeError, OSError) as e:
            logger.error(f"Error loading {file_path}: {e}")
            raise StorageError(f"Could not load {file_path}: {e}") from e

    async def _write(self, filename: str, data: Any) -> None:
        file_path = self._path(filename)
        try:
            json_str = json.dumps(data, indent=2, ensure_ascii=False, default=str)

            # Write atomically: write to a temp file then move in place
            tmp_path = file_path.with_suffix(".tmp")

            def _atomic_write():
                file_path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path.write_text(json_str, encoding="utf-8")
                os.replace(tmp_path, file_path)

            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, _atomic_write)
        except (TypeError, OSError) as e:
            logger.error(f"Error saving {file_path}: {e}")
            raise StorageError(f"Could not save {file_path}: {e}") from e

    async def load(self, filename: str, default: Any = None) -> Any:
        """Load a JSON document under its lock."""
        async with self._get_file_lock(filename):
            return await self._read(filename, default)

    # Schedule document helpers

    @staticmethod
    def _empty_document() -> Dict[str, Any]:
        return {"schedules": {}, "deadline_index": []}

    @staticmethod
    def _index_remove(document: Dict[str, Any], schedule_id: str) -> None:
        document["deadline_index"] = [
            entry for entry in document["deadline_index"] if entry[1] != schedule_id
        ]

    @classmethod
    def _put(cls, document: Dict[str, Any], schedule: Schedule) -> None:
        document["schedules"][schedule.id] = schedule.to_dict()
        cls._index_remove(document, schedule.id)
        if schedule.deadline is not None:
            insort(document["deadline_index"], [_epoch(schedule.deadline), schedule.id])

    async def _read_schedules(self) -> Dict[str, Any]:
        document = await self._read(SCHEDULES_FILE, None)
        if document is None:
            return self._empty_document()
        document.setdefault("schedules", {})
        document.setdefault("deadline_index", [])
        return document

    @staticmethod
    def _decode(data: Optional[Dict], group_id: Optional[str]) -> Optional[Schedule]:
        if data is None:
            return None
        if group_id is not None and str(data.get("group_id")) != str(group_id):
            return None
        try:
            return Schedule.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Malformed schedule {data.get('id')}: {e}") from e

    # Schedule operations

    async def get_schedule(self, schedule_id: str, group_id: str) -> Optional[Schedule]:
        """Get a schedule by id within a group."""
        async with self._get_file_lock(SCHEDULES_FILE):
            document = await self._read_schedules()
        return self._decode(document["schedules"].get(schedule_id), group_id)

    async def save_schedule(self, schedule: Schedule) -> Schedule:
        """
        Create or replace a schedule.

        The stored version must match ``schedule.version``; the saved copy
        gets the next version.

        Raises:
            ValidationError: if the schedule is invalid
            ConcurrentUpdateError: if the stored copy changed since it was read
        """
        result = validate_schedule(schedule)
        if not result:
            raise ValidationError(result.error_message)

        async with self._get_file_lock(SCHEDULES_FILE):
            document = await self._read_schedules()
            existing = document["schedules"].get(schedule.id)
            stored_version = int(existing.get("version", 0)) if existing else 0
            if existing is not None and stored_version != schedule.version:
                raise ConcurrentUpdateError(
                    f"Schedule {schedule.id} is at version {stored_version}, "
                    f"update was based on {schedule.version}"
                )

            schedule.version = stored_version + 1
            schedule.updated_at = datetime.now(timezone.utc)
            self._put(document, schedule)
            await self._write(SCHEDULES_FILE, document)

        logger.debug(f"Saved schedule {schedule.id} (version {schedule.version})")
        return schedule

    async def update_schedule(
        self, schedule_id: str, group_id: str, mutate: Callable[[Schedule], bool]
    ) -> Optional[Schedule]:
        """
        Read-modify-write a single schedule.

        ``mutate`` receives a freshly read copy while the schedules document is
        locked and returns True if it changed the schedule. Nothing is written
        when it returns False.

        Returns:
            The updated schedule, or None if it does not exist or mutate declined
        """
        async with self._get_file_lock(SCHEDULES_FILE):
            document = await self._read_schedules()
            schedule = self._decode(document["schedules"].get(schedule_id), group_id)
            if schedule is None:
                return None

            if not mutate(schedule):
                return None

            schedule.version += 1
            schedule.updated_at = datetime.now(timezone.utc)
            self._put(document, schedule)
            await self._write(SCHEDULES_FILE, document)
            return schedule

    async def delete_schedule(self, schedule_id: str, group_id: str) -> bool:
        """Delete a schedule and its responses."""
        async with self._get_file_lock(SCHEDULES_FILE):
            document = await self._read_schedules()
            data = document["schedules"].get(schedule_id)
            if data is None or str(data.get("group_id")) != str(group_id):
                return False
            del document["schedules"][schedule_id]
            self._index_remove(document, schedule_id)
            await self._write(SCHEDULES_FILE, document)

        async with self._get_file_lock(RESPONSES_FILE):
            responses = await self._read(RESPONSES_FILE, [])
            remaining = [r for r in responses if r.get("schedule_id") != schedule_id]
            if len(remaining) != len(responses):
                await self._write(RESPONSES_FILE, remaining)
        return True

    async def query_by_deadline_range(
        self, start: datetime, end: datetime, group_id: Optional[str] = None
    ) -> List[Schedule]:
        """Get schedules whose deadline lies in [start, end], ordered by deadline."""
        async with self._get_file_lock(SCHEDULES_FILE):
            document = await self._read_schedules()

        index = document["deadline_index"]
        keys = [entry[0] for entry in index]
        lo = bisect_left(keys, _epoch(start))
        hi = bisect_right(keys, _epoch(end))

        schedules = []
        for _, schedule_id in index[lo:hi]:
            data = document["schedules"].get(schedule_id)
            if data is None:
                logger.warning(f"Deadline index points at missing schedule {schedule_id}")
                continue
            if group_id is not None and str(data.get("group_id")) != str(group_id):
                continue
            try:
                schedules.append(Schedule.from_dict(data))
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"Skipping malformed schedule {schedule_id}: {e}")
        return schedules

    # Response operations

    async def save_response(self, record: ResponseRecord) -> None:
        """Save a user's response, fully replacing their previous one."""
        async with self._get_file_lock(RESPONSES_FILE):
            responses = await self._read(RESPONSES_FILE, [])
            responses = [
                r for r in responses
                if not (r.get("schedule_id") == record.schedule_id and str(r.get("user_id")) == record.user_id)
            ]
            responses.append(record.to_dict())
            await self._write(RESPONSES_FILE, responses)

    async def get_responses(self, schedule_id: str) -> List[ResponseRecord]:
        """Get all responses for a schedule."""
        responses = await self.load(RESPONSES_FILE, [])
        records = []
        for data in responses:
            if data.get("schedule_id") != schedule_id:
                continue
            try:
                records.append(ResponseRecord.from_dict(data))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed response for schedule {schedule_id}: {e}")
        return records

    async def get_summary(self, schedule_id: str, group_id: str) -> Optional[AggregateView]:
        """Aggregate the current responses of a schedule."""
        schedule = await self.get_schedule(schedule_id, group_id)
        if schedule is None:
            return None
        responses = await self.get_responses(schedule_id)
        return summarize_schedule(schedule, responses)

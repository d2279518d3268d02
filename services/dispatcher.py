"""
Rate-limited batch dispatch for outbound notifications.

Items are processed in consecutive batches: every handler in a batch runs
concurrently, the next batch starts only once the previous one has fully
settled, and a fixed pause separates batches so bursts stay under the chat
platform's rate limits.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Handler = Callable[[T], Awaitable[Any]]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class DispatchProfile:
    """Batch size and pacing for one kind of notification."""
    name: str
    batch_size: int = 3
    delay_between_batches: float = 1.0
    # Handed to handlers; the dispatcher itself never retries
    max_retries: int = 0


@dataclass
class BatchReport:
    """Outcome of a batched run."""
    total: int = 0
    batches: int = 0
    succeeded: int = 0
    failed: int = 0
    results: List[Any] = field(default_factory=list)
    errors: List[BaseException] = field(default_factory=list)
    elapsed: float = 0.0
    max_retries: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "batches": self.batches,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "elapsed": round(self.elapsed, 3),
        }


async def process_batches(
    items: Sequence[T],
    handler: Handler,
    batch_size: int = 3,
    delay_between_batches: float = 1.0,
    max_retries: Optional[int] = None,
    sleep: Sleep = asyncio.sleep,
) -> BatchReport:
    """
    Run ``handler`` over ``items`` in rate-limited batches.

    Args:
        items: Items to process
        handler: Coroutine function called once per item
        batch_size: Maximum number of concurrent handlers per batch
        delay_between_batches: Seconds to wait after each batch except the last
        max_retries: Recorded on the report for callers; not enforced here
        sleep: Awaitable sleep, replaceable in tests

    Returns:
        BatchReport; ``results`` holds each handler's return value, or the
        exception it raised, in input order
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    if delay_between_batches < 0:
        raise ValueError("delay_between_batches cannot be negative")

    report = BatchReport(total=len(items), max_retries=max_retries)
    started = time.monotonic()

    for start in range(0, len(items), batch_size):
        batch = items[start:start + batch_size]
        report.batches += 1

        outcomes = await asyncio.gather(
            *(handler(item) for item in batch), return_exceptions=True
        )

        for item, outcome in zip(batch, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.error(f"Handler failed for {item!r}: {outcome}")
                report.failed += 1
                report.errors.append(outcome)
            else:
                report.succeeded += 1
            report.results.append(outcome)

        # Delay before next batch (except for last batch)
        if start + batch_size < len(items):
            await sleep(delay_between_batches)

    report.elapsed = time.monotonic() - started
    logger.debug(f"Processed {report.total} item(s) in {report.batches} batch(es)")
    return report


class NotificationDispatcher:
    """Runs items through named dispatch profiles."""

    def __init__(self, profiles: Sequence[DispatchProfile], sleep: Sleep = asyncio.sleep):
        self.profiles: Dict[str, DispatchProfile] = {p.name: p for p in profiles}
        self._sleep = sleep

    def get_profile(self, name: str) -> DispatchProfile:
        try:
            return self.profiles[name]
        except KeyError:
            raise KeyError(f"Unknown dispatch profile '{name}'") from None

    async def dispatch(self, profile_name: str, items: Sequence[T], handler: Handler) -> BatchReport:
        """Process ``items`` with the batch size and pacing of a profile."""
        profile = self.get_profile(profile_name)
        if not items:
            return BatchReport(max_retries=profile.max_retries)

        logger.info(
            f"Dispatching {len(items)} {profile.name} item(s) "
            f"(batch size {profile.batch_size}, delay {profile.delay_between_batches}s)"
        )
        report = await process_batches(
            items,
            handler,
            batch_size=profile.batch_size,
            delay_between_batches=profile.delay_between_batches,
            max_retries=profile.max_retries,
            sleep=self._sleep,
        )
        logger.info(f"{profile.name.capitalize()} dispatch finished: {report.to_dict()}")
        return report

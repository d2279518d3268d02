"""Response aggregation: vote tallies, participation buckets and optimal-date ranking.

Everything here is a pure function of its inputs. Nothing is cached, so the
same summary can be computed from the scheduler and from read paths at the
same time without coordination.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from models import (
    AggregateView, DateCounts, DateOption, ParticipationBuckets,
    ResponseRecord, ResponseStatus, Schedule,
)

logger = logging.getLogger(__name__)

YES_WEIGHT = 1.0
MAYBE_WEIGHT = 0.5


def score_date(counts: DateCounts) -> float:
    return counts.yes * YES_WEIGHT + counts.maybe * MAYBE_WEIGHT


def latest_responses(responses: Iterable[ResponseRecord]) -> List[ResponseRecord]:
    """Keep one record per user: the one with the latest updated_at.

    Equal timestamps resolve to the record that appears later in the input.
    Output order follows each user's first appearance.
    """
    latest: Dict[str, ResponseRecord] = {}
    for record in responses:
        current = latest.get(record.user_id)
        if current is None or record.updated_at >= current.updated_at:
            latest[record.user_id] = record
    return list(latest.values())


def _counted_statuses(record: ResponseRecord, date_ids: set) -> Dict[str, ResponseStatus]:
    """Statuses for known dates only; malformed entries count as no answer."""
    statuses = {}
    for date_id, raw in record.date_statuses.items():
        if date_id not in date_ids:
            continue
        status = ResponseStatus.parse(raw)
        if status is not None:
            statuses[date_id] = status
    return statuses


def aggregate_responses(
    dates: Sequence[DateOption],
    responses: Iterable[ResponseRecord],
    alternative_margin: float = 0.0,
) -> AggregateView:
    """
    Aggregate responses for a schedule's date options.

    Args:
        dates: The schedule's date options, in display order
        responses: All response records for the schedule
        alternative_margin: Dates scoring within this margin of the top score
            are reported as alternatives (0.0 means equal score only)

    Returns:
        AggregateView with counts, participation, scores and optimal date
    """
    date_ids = [date.id for date in dates]
    known = set(date_ids)
    tallies = {date_id: {"yes": 0, "maybe": 0, "no": 0} for date_id in date_ids}

    fully = partially = unavailable = 0
    responders = 0

    for record in latest_responses(responses):
        statuses = _counted_statuses(record, known)
        if not statuses:
            continue
        responders += 1

        for date_id, status in statuses.items():
            tallies[date_id][status.value] += 1

        values = list(statuses.values())
        if len(statuses) == len(date_ids) and all(s == ResponseStatus.YES for s in values):
            fully += 1
        elif any(s in (ResponseStatus.YES, ResponseStatus.MAYBE) for s in values):
            partially += 1
        else:
            unavailable += 1

    counts = {date_id: DateCounts(**tallies[date_id]) for date_id in date_ids}
    scores = {date_id: score_date(counts[date_id]) for date_id in date_ids}

    optimal_date_id: Optional[str] = None
    alternatives: List[str] = []
    if responders and date_ids:
        # max() returns the first maximal element, so ties go to the earliest date
        optimal_date_id = max(date_ids, key=lambda d: scores[d])
        top = scores[optimal_date_id]
        alternatives = [
            date_id for date_id in date_ids
            if date_id != optimal_date_id and top - scores[date_id] <= alternative_margin
        ]

    return AggregateView(
        counts=counts,
        total_responders=responders,
        participation=ParticipationBuckets(
            fully_available=fully,
            partially_available=partially,
            unavailable=unavailable,
        ),
        scores=scores,
        optimal_date_id=optimal_date_id,
        alternative_date_ids=tuple(alternatives),
    )


def summarize_schedule(schedule: Schedule, responses: Iterable[ResponseRecord]) -> AggregateView:
    """Aggregate the responses of a schedule, ignoring records for other schedules."""
    own = [r for r in responses if r.schedule_id == schedule.id]
    return aggregate_responses(schedule.dates, own)

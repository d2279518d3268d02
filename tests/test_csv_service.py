# pylint: disable=import-error

"""Unit tests for services.csv_service functions."""

import pandas as pd
import pytest

from models import DateOption, ResponseRecord, ResponseStatus, Schedule
from services.aggregation import aggregate_responses
from services.csv_service import create_summary_attachment, create_summary_csv


@pytest.fixture()
def schedule():
    """Return a Schedule with three date options."""
    return Schedule(
        id="0123456789abcdef",
        group_id="g1",
        channel_id="c1",
        title="Spring camp",
        author_id="a1",
        dates=[DateOption("d1", "4/1"), DateOption("d2", "4/2"), DateOption("d3", "4/3")],
    )


@pytest.fixture()
def view(schedule):
    responses = [
        ResponseRecord(schedule.id, "u1", {"d1": ResponseStatus.YES, "d2": ResponseStatus.MAYBE}),
        ResponseRecord(schedule.id, "u2", {"d1": ResponseStatus.NO, "d2": ResponseStatus.YES}),
    ]
    return aggregate_responses(schedule.dates, responses)


def test_create_summary_csv(schedule, view):
    csv_bytes = create_summary_csv(schedule, view)
    assert csv_bytes is not None

    df = pd.read_csv(csv_bytes)
    assert list(df.columns) == ["date_id", "label", "yes", "maybe", "no", "score", "optimal"]
    assert list(df["date_id"]) == ["d1", "d2", "d3"]

    d2 = df[df["date_id"] == "d2"].iloc[0]
    assert d2["yes"] == 1 and d2["maybe"] == 1 and d2["no"] == 0
    assert d2["score"] == 1.5
    assert bool(d2["optimal"]) is True
    assert df["optimal"].sum() == 1


def test_create_summary_csv_no_responses(schedule):
    csv_bytes = create_summary_csv(schedule, aggregate_responses(schedule.dates, []))

    df = pd.read_csv(csv_bytes)
    assert len(df) == 3
    assert df["yes"].sum() == 0
    assert not df["optimal"].any()


def test_create_summary_attachment(schedule, view):
    attachment = create_summary_attachment(schedule, view)

    assert attachment.filename == "schedule_01234567_summary.csv"
    assert attachment.data.decode("utf-8").startswith("date_id,label,yes,maybe,no,score,optimal")


def test_create_summary_attachment_on_error(schedule, view, monkeypatch):
    def broken(*args, **kwargs):
        raise ValueError("bad frame")

    monkeypatch.setattr(pd, "DataFrame", broken)

    assert create_summary_attachment(schedule, view) is None

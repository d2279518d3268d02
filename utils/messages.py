"""
Message formatting utilities for CampPoll bot.
Builds the reminder and closure notifications sent for schedules.
"""

import logging
from typing import List, Optional

from models import (
    AggregateView, Attachment, MessageField, OutboundMessage,
    ReminderJob, Schedule,
)
from utils.discord import EmbedColors
from utils.time import format_datetime, get_discord_timestamp

logger = logging.getLogger(__name__)

DISPLAY_TIMEZONE = "Asia/Tokyo"


def _mention_prefix(mentions: List[str]) -> str:
    return f"{' '.join(mentions)} " if mentions else ""


def _date_line(schedule: Schedule, view: AggregateView, date_id: str) -> str:
    date = schedule.get_date(date_id)
    label = date.label if date else date_id
    counts = view.counts[date_id]
    return f"{label}: ✅ {counts.yes} / 🤔 {counts.maybe} / ❌ {counts.no} ({view.yes_percentage(date_id):.0f}%)"


def build_reminder_message(
    schedule: Schedule,
    job: ReminderJob,
    view: Optional[AggregateView],
    mentions: List[str],
    tz_name: str = DISPLAY_TIMEZONE,
) -> OutboundMessage:
    """Build the deadline reminder posted to a schedule's channel."""
    responders = view.total_responders if view else 0
    fields = [
        MessageField(
            "締切時刻",
            f"{format_datetime(schedule.deadline, tz_name=tz_name)} ({get_discord_timestamp(schedule.deadline, 'R')})",
            inline=True,
        ),
        MessageField("現在の回答者数", f"{responders}人", inline=True),
    ]
    return OutboundMessage(
        content=f"{_mention_prefix(mentions)}⏰ **締切リマインダー**: 「{schedule.title}」の{job.message}です！",
        fields=fields,
        color=EmbedColors.REMINDER,
        footer="まだ回答していない方は早めに回答をお願いします！",
    )


def build_closure_message(
    schedule: Schedule,
    view: AggregateView,
    mentions: List[str],
    attachment: Optional[Attachment] = None,
) -> OutboundMessage:
    """Build the summary posted when a schedule closes."""
    fields = [
        MessageField(
            "基本情報",
            f"参加者数: {view.total_responders}人",
            inline=False,
        ),
    ]

    if schedule.dates:
        lines = [_date_line(schedule, view, date.id) for date in schedule.dates]
        fields.append(MessageField("日程ごとの回答", "\n".join(lines), inline=False))

    if view.optimal_date_id:
        optimal = schedule.get_date(view.optimal_date_id)
        label = optimal.label if optimal else view.optimal_date_id
        fields.append(MessageField(
            "🏆 最有力候補",
            f"{label}\nスコア: {view.scores[view.optimal_date_id]:g} ポイント",
            inline=False,
        ))
        if view.alternative_date_ids:
            alternatives = []
            for date_id in view.alternative_date_ids:
                date = schedule.get_date(date_id)
                alternatives.append(date.label if date else date_id)
            fields.append(MessageField("同点の候補", "\n".join(alternatives), inline=False))

    buckets = view.participation
    fields.append(MessageField(
        "参加状況",
        f"🎯 全日程参加可能: {buckets.fully_available} 人\n"
        f"🔶 部分的に参加可能: {buckets.partially_available} 人\n"
        f"❌ 参加不可: {buckets.unavailable} 人",
        inline=False,
    ))

    return OutboundMessage(
        content=f"{_mention_prefix(mentions)}**📅 日程調整「{schedule.title}」が締め切られました！**",
        title="📊 集計結果",
        fields=fields,
        color=EmbedColors.SUCCESS,
        footer=f"ID: {schedule.id}",
        attachment=attachment,
    )


def build_author_closed_message(schedule: Schedule, view: AggregateView) -> OutboundMessage:
    """Direct message telling the author their schedule closed."""
    best = "なし"
    if view.optimal_date_id:
        date = schedule.get_date(view.optimal_date_id)
        best = date.label if date else view.optimal_date_id
    return OutboundMessage(
        content=(
            f"日程調整「{schedule.title}」は締切を迎えたため自動で締め切られました。"
            f"回答者数: {view.total_responders}人 / 最有力候補: {best}"
        ),
    )

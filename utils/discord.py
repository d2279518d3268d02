"""
Discord utilities for CampPoll bot.
Turns platform-neutral OutboundMessage payloads into Discord embeds and files.
"""

import logging
from io import BytesIO
from typing import Optional
from datetime import datetime, timezone

import discord

from models import OutboundMessage

logger = logging.getLogger(__name__)

# Discord embed limits
MAX_FIELD_VALUE = 1024
MAX_FIELDS = 25


class EmbedColors:
    """Standard colors for different types of embeds."""
    SUCCESS = 0x2ecc71
    ERROR = 0xff0000
    WARNING = 0xFFA500
    INFO = 0x007bff
    REMINDER = 0xffcc00


class EmbedBuilder:
    """Builder class for creating consistent Discord embeds."""

    def __init__(self, title: str = None, description: str = None, color: int = EmbedColors.INFO):
        self.embed = discord.Embed(title=title, description=description, color=color)

    def add_field(self, name: str, value: str, inline: bool = False) -> 'EmbedBuilder':
        """Add a field to the embed, truncating values over the Discord limit."""
        if len(self.embed.fields) >= MAX_FIELDS:
            logger.warning(f"Dropping embed field '{name}': field limit reached")
            return self
        if len(value) > MAX_FIELD_VALUE:
            value = value[:MAX_FIELD_VALUE - 1] + "…"
        self.embed.add_field(name=name, value=value, inline=inline)
        return self

    def set_footer(self, text: str, icon_url: str = None) -> 'EmbedBuilder':
        """Set embed footer."""
        self.embed.set_footer(text=text, icon_url=icon_url)
        return self

    def set_timestamp(self, timestamp: datetime = None) -> 'EmbedBuilder':
        """Set embed timestamp."""
        if timestamp is None:
            timestamp = datetime.now(timezone.utc)
        self.embed.timestamp = timestamp
        return self

    def build(self) -> discord.Embed:
        """Build and return the embed."""
        return self.embed


def build_embed(message: OutboundMessage) -> Optional[discord.Embed]:
    """Build an embed for a message, or None when it carries no embed parts."""
    if not (message.title or message.description or message.fields):
        return None

    builder = EmbedBuilder(
        title=message.title,
        description=message.description,
        color=message.color if message.color is not None else EmbedColors.INFO,
    )
    for message_field in message.fields:
        builder.add_field(message_field.name, message_field.value, inline=message_field.inline)
    if message.footer:
        builder.set_footer(message.footer)
    builder.set_timestamp()
    return builder.build()


def build_file(message: OutboundMessage) -> Optional[discord.File]:
    """Wrap a message attachment as a discord.File."""
    if message.attachment is None:
        return None
    return discord.File(BytesIO(message.attachment.data), filename=message.attachment.filename)

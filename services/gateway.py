"""
Notification gateway for CampPoll bot.
Sends rendered messages to channels and users and resolves reminder mentions.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, List

import discord  # type: ignore

from models import GatewayError, Ok, OutboundMessage, Result
from utils.cache import TTLCache
from utils.discord import build_embed, build_file
from utils.validation import validate_message_content

logger = logging.getLogger(__name__)

PASSTHROUGH_MENTIONS = ("@everyone", "@here")
MAX_MESSAGE_LENGTH = 2000


def _is_formatted_mention(mention: str) -> bool:
    return mention.startswith("<@") and mention.endswith(">")


class NotificationGateway(ABC):
    """Outbound chat platform calls used by the deadline processor."""

    @abstractmethod
    async def send_channel_message(self, channel_id: str, message: OutboundMessage) -> Result:
        ...

    @abstractmethod
    async def send_direct_message(self, user_id: str, message: OutboundMessage) -> Result:
        ...

    @abstractmethod
    async def resolve_mentions(self, tokens: List[str], group_id: str) -> List[str]:
        ...


def _http_error(e: discord.HTTPException, target: str) -> GatewayError:
    status = getattr(e, "status", None)
    retry_after = None
    if status == 429:
        retry_after = float(getattr(e, "retry_after", 2) or 2)
    return GatewayError(reason=f"HTTP error sending to {target}: {e}", status=status, retry_after=retry_after)


class DiscordGateway(NotificationGateway):
    """NotificationGateway backed by a discord.py client."""

    def __init__(self, client: discord.Client, member_cache: TTLCache):
        self.client = client
        self.member_cache = member_cache

    async def _send(self, target, message: OutboundMessage) -> Result:
        content = message.content
        if content and not validate_message_content(content, MAX_MESSAGE_LENGTH):
            logger.warning(f"Truncating message content of {len(content)} characters")
            content = content[:MAX_MESSAGE_LENGTH - 1] + "…"
        kwargs = {"content": content}
        embed = build_embed(message)
        if embed is not None:
            kwargs["embed"] = embed
        file = build_file(message)
        if file is not None:
            kwargs["file"] = file
        sent = await target.send(**kwargs)
        return Ok(getattr(sent, "id", None))

    async def send_channel_message(self, channel_id: str, message: OutboundMessage) -> Result:
        """Send a message to a text channel."""
        target = f"channel {channel_id}"
        try:
            channel = self.client.get_channel(int(channel_id))
            if channel is None:
                channel = await self.client.fetch_channel(int(channel_id))
            return await self._send(channel, message)
        except ValueError:
            return GatewayError(reason=f"Invalid channel id '{channel_id}'")
        except discord.Forbidden as e:
            logger.warning(f"Missing permissions for {target}: {e}")
            return GatewayError(reason=f"Forbidden: {e}", status=403)
        except discord.NotFound as e:
            logger.warning(f"{target} not found: {e}")
            return GatewayError(reason=f"Not found: {e}", status=404)
        except discord.HTTPException as e:
            logger.error(f"Error sending message to {target}: {e}")
            return _http_error(e, target)

    async def send_direct_message(self, user_id: str, message: OutboundMessage) -> Result:
        """Send a direct message to a user."""
        target = f"user {user_id}"
        try:
            user = self.client.get_user(int(user_id))
            if user is None:
                user = await self.client.fetch_user(int(user_id))
            return await self._send(user, message)
        except ValueError:
            return GatewayError(reason=f"Invalid user id '{user_id}'")
        except discord.Forbidden as e:
            # Usually disabled DMs
            logger.info(f"Could not DM {target}: {e}")
            return GatewayError(reason=f"Forbidden: {e}", status=403)
        except discord.NotFound as e:
            return GatewayError(reason=f"Not found: {e}", status=404)
        except discord.HTTPException as e:
            logger.error(f"Error sending DM to {target}: {e}")
            return _http_error(e, target)

    async def _fetch_members(self, group_id: str) -> Dict[str, str]:
        """Lower-cased username -> user id for a guild, cached for the cache TTL."""
        cached = self.member_cache.get(group_id)
        if cached is not None:
            return cached

        members: Dict[str, str] = {}
        try:
            guild = self.client.get_guild(int(group_id))
        except ValueError:
            logger.warning(f"Invalid guild id '{group_id}' for mention resolution")
            return members
        if guild is None:
            logger.warning(f"Guild {group_id} not found for mention resolution")
            return members

        for member in guild.members:
            if getattr(member, "bot", False):
                continue
            members[member.name.lower()] = str(member.id)

        self.member_cache.set(group_id, members)
        return members

    async def resolve_mentions(self, tokens: List[str], group_id: str) -> List[str]:
        """
        Resolve reminder mentions into Discord mention syntax.

        @everyone, @here and <@id> pass through; @name and bare names are
        looked up among guild members. Unknown names are kept as written.
        """
        needs_lookup = any(
            t not in PASSTHROUGH_MENTIONS and not _is_formatted_mention(t) for t in tokens
        )
        if not needs_lookup:
            return list(tokens)

        members = await self._fetch_members(group_id)

        resolved = []
        for mention in tokens:
            if mention in PASSTHROUGH_MENTIONS or _is_formatted_mention(mention):
                resolved.append(mention)
                continue

            username = mention[1:] if mention.startswith("@") else mention
            member_id = members.get(username.lower())
            if member_id:
                resolved.append(f"<@{member_id}>")
            else:
                if mention.startswith("@"):
                    logger.warning(f"Could not resolve user mention: {mention}")
                resolved.append(mention)
        return resolved

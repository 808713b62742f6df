"""
Message window retrieval for summaries.

Channel history is read backwards (newest first) through a single paginated
primitive, one page at a time, with the oldest message of each page used as
the cursor for the next one. Results are always handed back oldest-first.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional

import aiohttp
import discord

from datetime_utils import make_aware
from error_handler import RetrievalError

logger = logging.getLogger('summary_bot.fetcher')

# Discord returns at most 100 messages per history request
MAX_PAGE_SIZE = 100


class BotMessagePolicy(str, Enum):
    """Which bot-authored messages are excluded from summaries."""
    SELF = "self"  # only this bot's own messages
    ALL = "all"    # every bot account


@dataclass
class FetchedMessage:
    id: int
    author_display_name: str
    content: str
    created_at: datetime
    author_id: Optional[int] = None

    @classmethod
    def from_discord(cls, message: discord.Message) -> 'FetchedMessage':
        author = message.author
        return cls(
            id=message.id,
            author_display_name=getattr(author, 'display_name', None) or getattr(author, 'name', 'Unknown'),
            content=message.content or "",
            created_at=make_aware(message.created_at),
            author_id=getattr(author, 'id', None),
        )


class MessageWindowFetcher:
    """
    Fetches the latest N messages, or every message inside a time window.

    Pages are requested sequentially; the cursor of page k+1 depends on page k.
    Any platform failure aborts the whole fetch with RetrievalError and the
    messages accumulated so far are dropped.
    """

    def __init__(self, bot_user_id: Optional[int], policy: BotMessagePolicy = BotMessagePolicy.SELF,
                 page_size: int = MAX_PAGE_SIZE):
        self.bot_user_id = bot_user_id
        self.policy = BotMessagePolicy(policy)
        self.page_size = max(1, min(MAX_PAGE_SIZE, int(page_size)))

    def _is_excluded(self, message) -> bool:
        author = message.author
        if self.policy == BotMessagePolicy.ALL and getattr(author, 'bot', False):
            return True
        return self.bot_user_id is not None and getattr(author, 'id', None) == self.bot_user_id

    async def fetch_page(self, channel, limit: int, before_id: Optional[int] = None) -> list:
        """
        Fetch one page of raw history, newest first.

        Bot filtering is applied by the callers, so the last element of the
        returned page is always a valid cursor.

        Args:
            channel: A messageable Discord channel
            limit (int): Page size, clamped to 1..100
            before_id (Optional[int]): Only return messages older than this message ID

        Returns:
            list: Raw discord.Message objects, newest first

        Raises:
            RetrievalError: If Discord rejects the request or the connection fails
        """
        limit = max(1, min(MAX_PAGE_SIZE, limit))
        before = discord.Object(id=before_id) if before_id is not None else None

        try:
            return [message async for message in channel.history(limit=limit, before=before)]
        except discord.HTTPException as e:
            logger.warning(f"Discord rejected history request in channel {getattr(channel, 'id', '?')}: "
                           f"HTTP {e.status} - {e.text}")
            raise RetrievalError("Failed to fetch channel history", cause=e) from e
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.warning(f"Connection error while fetching history in channel {getattr(channel, 'id', '?')}: {e}")
            raise RetrievalError("Failed to fetch channel history", cause=e) from e

    async def fetch_latest(self, channel, count: int) -> List[FetchedMessage]:
        """
        Fetch up to ``count`` of the most recent messages.

        Args:
            channel: A messageable Discord channel
            count (int): Number of messages wanted after bot filtering

        Returns:
            List[FetchedMessage]: Oldest first
        """
        collected: List[FetchedMessage] = []
        before_id = None

        while len(collected) < count:
            remaining = count - len(collected)
            page = await self.fetch_page(channel, min(self.page_size, remaining), before_id)
            if not page:
                break

            before_id = page[-1].id
            for message in page:
                if self._is_excluded(message):
                    continue
                collected.append(FetchedMessage.from_discord(message))
                if len(collected) >= count:
                    break

        logger.debug(f"Fetched {len(collected)}/{count} latest messages from channel {getattr(channel, 'id', '?')}")
        collected.reverse()
        return collected

    async def fetch_since(self, channel, cutoff: datetime) -> List[FetchedMessage]:
        """
        Fetch every message created at or after ``cutoff``.

        Returns:
            List[FetchedMessage]: Oldest first
        """
        return await self._fetch_window(channel, make_aware(cutoff), None)

    async def fetch_between(self, channel, start: datetime, end: datetime) -> List[FetchedMessage]:
        """
        Fetch every message with start <= created_at <= end.

        Returns:
            List[FetchedMessage]: Oldest first, empty when start > end
        """
        start = make_aware(start)
        end = make_aware(end)
        if start > end:
            return []
        return await self._fetch_window(channel, start, end)

    async def _fetch_window(self, channel, start: datetime, end: Optional[datetime]) -> List[FetchedMessage]:
        collected: List[FetchedMessage] = []
        before_id = None
        pages = 0

        while True:
            page = await self.fetch_page(channel, self.page_size, before_id)
            if not page:
                break
            pages += 1

            for message in page:
                created_at = make_aware(message.created_at)
                if created_at < start:
                    continue
                if end is not None and created_at > end:
                    continue
                if self._is_excluded(message):
                    continue
                collected.append(FetchedMessage.from_discord(message))

            # Pages are newest first: once the oldest entry predates the window we are done
            if make_aware(page[-1].created_at) < start:
                break
            before_id = page[-1].id

        logger.debug(f"Fetched {len(collected)} messages in window from {pages} pages "
                     f"of channel {getattr(channel, 'id', '?')}")
        collected.reverse()
        return collected

"""
Thread utilities module for the Discord bot.
Handles summary thread creation and posting with consistent error handling.
"""

import logging
from datetime import datetime
from typing import Optional, Sequence

import discord

logger = logging.getLogger('summary_bot.thread_utils')

# Discord rejects thread names longer than 100 characters
MAX_THREAD_NAME_LENGTH = 100


def format_thread_name(template: str, now: datetime) -> str:
    """Fill a localized thread name template with the UTC timestamp."""
    name = template.format(date=now.strftime('%Y-%m-%d %H:%M'))
    return name[:MAX_THREAD_NAME_LENGTH]


class ThreadManager:
    """Creates the public discussion thread a summary is posted into."""

    def __init__(self, channel, guild: Optional[discord.Guild] = None):
        self.channel = channel
        self.guild = guild

    def _can_create_threads(self) -> bool:
        """Threads are only supported in guild text and news channels."""
        if not self.guild:
            return False
        return hasattr(self.channel, 'create_thread') and not isinstance(self.channel, discord.Thread)

    async def create_thread(self, name: str) -> Optional[discord.Thread]:
        """
        Create a standalone public thread.

        Returns:
            Optional[discord.Thread]: The thread, or None if it could not be created
        """
        if not self._can_create_threads():
            logger.info(f"Thread creation not supported in {type(self.channel).__name__}, skipping")
            return None

        try:
            logger.info(f"Creating thread '{name}' in channel {getattr(self.channel, 'id', '?')}")
            thread = await self.channel.create_thread(name=name, type=discord.ChannelType.public_thread)
            logger.info(f"Thread created successfully with ID {thread.id}")
            return thread
        except discord.Forbidden as e:
            logger.warning("Insufficient permissions to create thread '%s': %s", name, e)
            return None
        except discord.HTTPException as e:
            logger.warning(f"Failed to create thread '{name}': HTTP {e.status} - {e.text}")
            return None


async def post_chunks(thread, chunks: Sequence[str]) -> None:
    """
    Send summary chunks into a thread, first chunk first.

    Mentions are disabled so summaries never ping anyone.
    """
    for chunk in chunks:
        await thread.send(chunk, allowed_mentions=discord.AllowedMentions.none())

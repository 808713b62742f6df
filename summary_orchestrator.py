"""
Interaction flow for the /summarize command.

Each invocation walks a small state machine:

    IDLE -> OPTIONS_PRESENTED -> PROCESSING -> COMPLETED | FAILED
                              \\-> EXPIRED (no choice within the timeout)

The quota check happens before the options are shown. Once processing starts
the user always ends up with exactly one terminal message: the thread link or a
localized error.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, List, Optional

import discord

from database import StorageService
from datetime_utils import TIME_WINDOW_OPTIONS, get_time_window, get_utc_now
from error_handler import CompletionError, ErrorSeverity, RetrievalError, ValidationError, safe_execute_async
from locale_resolver import resolve_locale
from locales import LocaleStrings, get_strings
from message_fetcher import FetchedMessage, MessageWindowFetcher
from summary_requester import SummaryRequester
from thread_utils import ThreadManager, format_thread_name, post_chunks
from usage_limits import UsageLedger

logger = logging.getLogger('summary_bot.orchestrator')

COUNT_OPTIONS = (10, 30, 50, 100, 200)
DEFAULT_CHOICE_TIMEOUT = 60
DEFAULT_MAX_CONCURRENT = 4

Reporter = Callable[[str], Awaitable[None]]


class InteractionState(Enum):
    IDLE = "idle"
    OPTIONS_PRESENTED = "options_presented"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"


@dataclass(frozen=True)
class SummaryChoice:
    """Either a message count or a named time window."""
    count: Optional[int] = None
    window: Optional[str] = None

    def __post_init__(self):
        if (self.count is None) == (self.window is None):
            raise ValueError("SummaryChoice needs exactly one of count or window")
        if self.window is not None and self.window not in TIME_WINDOW_OPTIONS:
            raise ValueError(f"Unknown time window option: {self.window}")

    def describe(self) -> str:
        return f"last {self.count} messages" if self.count is not None else self.window


class _OptionButton(discord.ui.Button):
    def __init__(self, choice: SummaryChoice, label: str, row: int):
        custom_id = f"summarize_{choice.count}" if choice.count is not None else f"summarize_{choice.window}"
        super().__init__(label=label, style=discord.ButtonStyle.primary, custom_id=custom_id, row=row)
        self.choice = choice

    async def callback(self, interaction: discord.Interaction):
        await self.view.select(interaction, self.choice)


class SummaryOptionsView(discord.ui.View):
    """Ephemeral button menu: message counts on the first row, time windows on the second."""

    def __init__(self, requester_id: int, strings: LocaleStrings, timeout: float = DEFAULT_CHOICE_TIMEOUT):
        super().__init__(timeout=timeout)
        self.requester_id = requester_id
        self.strings = strings
        self.choice: Optional[SummaryChoice] = None

        for count in COUNT_OPTIONS:
            self.add_item(_OptionButton(SummaryChoice(count=count), strings.last_n.format(count=count), row=0))
        for window in TIME_WINDOW_OPTIONS:
            self.add_item(_OptionButton(SummaryChoice(window=window), getattr(strings, window), row=1))

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id != self.requester_id:
            await interaction.response.send_message(self.strings.not_your_menu, ephemeral=True)
            return False
        return True

    async def select(self, interaction: discord.Interaction, choice: SummaryChoice) -> None:
        if self.choice is not None:
            return
        self.choice = choice
        logger.info(f"User {interaction.user.id} selected {choice.describe()}")
        try:
            await interaction.response.edit_message(content=self.strings.generating_summary, view=None)
        except discord.HTTPException as e:
            logger.warning(f"Failed to acknowledge summary option: {e}")
        self.stop()


async def respond_ephemeral(interaction: discord.Interaction, content: str) -> None:
    """Send an ephemeral reply whether or not the interaction was already answered."""
    if interaction.response.is_done():
        await interaction.followup.send(content, ephemeral=True)
    else:
        await interaction.response.send_message(content, ephemeral=True)


class SummaryOrchestrator:
    """Runs /summarize end to end: quota, option menu, fetch, summarize, post."""

    def __init__(
        self,
        storage: StorageService,
        ledger: UsageLedger,
        fetcher: MessageWindowFetcher,
        requester: SummaryRequester,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        choice_timeout: float = DEFAULT_CHOICE_TIMEOUT,
        clock: Callable[[], datetime] = get_utc_now,
    ):
        self.storage = storage
        self.ledger = ledger
        self.fetcher = fetcher
        self.requester = requester
        self.choice_timeout = choice_timeout
        self._clock = clock
        # Process-wide bound on summaries being fetched/generated at once
        self._semaphore = asyncio.Semaphore(max(1, max_concurrent))

    async def handle_summarize(self, interaction: discord.Interaction) -> InteractionState:
        """Entry point for the /summarize slash command."""
        guild = interaction.guild
        if guild is None:
            await respond_ephemeral(interaction, get_strings(interaction.locale).guild_only)
            return InteractionState.IDLE

        user_id = str(interaction.user.id)
        guild_id = str(guild.id)
        strings = get_strings(interaction.locale)

        # Acknowledge before touching storage; Discord allows 3 seconds for the first response
        try:
            await interaction.response.defer(ephemeral=True)
        except discord.HTTPException as e:
            logger.error(f"Failed to acknowledge /summarize for user {user_id}: {e}", exc_info=True)
            return InteractionState.FAILED

        try:
            locale = await resolve_locale(self.storage, user_id, guild_id, interaction.locale)
            strings = get_strings(locale)

            role_ids = [role.id for role in getattr(interaction.user, 'roles', [])]
            exempt = await self.ledger.is_exempt(role_ids, guild_id)
            if not exempt and await self.ledger.has_reached_limit(user_id, guild_id):
                remaining = await self.ledger.remaining_uses(user_id, guild_id)
                logger.info(f"User {user_id} in guild {guild_id} reached the daily limit")
                await respond_ephemeral(interaction, strings.usage_limit_reached.format(remaining=remaining))
                return InteractionState.IDLE
        except Exception as e:
            logger.error(f"Error preparing summary for user {user_id} in guild {guild_id}: {e}", exc_info=True)
            await respond_ephemeral(interaction, strings.error_generating)
            return InteractionState.FAILED

        view = SummaryOptionsView(interaction.user.id, strings, timeout=self.choice_timeout)
        try:
            await interaction.followup.send(strings.choose_messages, view=view, ephemeral=True)
        except discord.HTTPException as e:
            logger.error(f"Failed to send summary options: {e}", exc_info=True)
            view.stop()
            await safe_execute_async(
                respond_ephemeral,
                interaction,
                strings.error_buttons,
                context=f"Failed to report option menu error to user {user_id}",
            )
            return InteractionState.FAILED

        logger.debug(f"Summary options presented to user {user_id} in guild {guild_id}")
        await view.wait()

        if view.choice is None:
            # The menu is left in place; nothing else is sent
            logger.info(f"Summary options for user {user_id} expired without a choice")
            return InteractionState.EXPIRED

        async def report(content: str) -> None:
            await interaction.edit_original_response(content=content)

        return await self.process_choice(
            view.choice, interaction.channel, guild, user_id, locale, report, exempt
        )

    async def _fetch(self, channel, choice: SummaryChoice) -> List[FetchedMessage]:
        if choice.count is not None:
            return await self.fetcher.fetch_latest(channel, choice.count)

        start, end = get_time_window(choice.window, now=self._clock())
        if end is None:
            return await self.fetcher.fetch_since(channel, start)
        return await self.fetcher.fetch_between(channel, start, end)

    async def _report(self, report: Reporter, content: str) -> None:
        await safe_execute_async(report, content, context="Failed to update summary status message")

    async def process_choice(
        self,
        choice: SummaryChoice,
        channel,
        guild,
        user_id: str,
        locale: Optional[str],
        report: Reporter,
        exempt: bool = False,
    ) -> InteractionState:
        """
        Fetch, summarize and post for a selected option.

        A use is recorded only once the summary has been posted, and never for
        exempt users.

        Returns:
            InteractionState: COMPLETED or FAILED
        """
        strings = get_strings(locale)
        guild_id = str(guild.id)

        async with self._semaphore:
            try:
                messages = await self._fetch(channel, choice)
                if not messages:
                    logger.info(f"No messages found for {choice.describe()} in channel {channel.id}")
                    await self._report(report, strings.no_messages)
                    return InteractionState.COMPLETED

                chunks = await self.requester.generate_summary(messages, guild_id, channel.id, locale)
            except (RetrievalError, CompletionError, ValidationError) as e:
                logger.error(f"Summary for {choice.describe()} in channel {channel.id} failed: {e}",
                             exc_info=e.cause or e)
                await self._report(report, strings.error_generating)
                return InteractionState.FAILED
            except Exception as e:
                logger.error(f"Unexpected error generating summary in channel {channel.id}: {e}", exc_info=True)
                await self._report(report, strings.error_generating)
                return InteractionState.FAILED

            thread_name = format_thread_name(strings.thread_name, self._clock())
            thread = await ThreadManager(channel, guild).create_thread(thread_name)
            if thread is None:
                await self._report(report, strings.error_thread)
                return InteractionState.FAILED

            try:
                await post_chunks(thread, chunks)
            except discord.HTTPException as e:
                logger.error(f"Failed to post summary into thread {thread.id}: {e}", exc_info=True)
                await self._report(report, strings.error_thread)
                return InteractionState.FAILED

        logger.info(f"Posted {len(chunks)} summary chunk(s) of {len(messages)} messages into thread {thread.id}")

        if not exempt:
            await safe_execute_async(
                self.ledger.record_use,
                user_id,
                guild_id,
                context=f"Failed to record usage for user {user_id} in guild {guild_id}",
                severity=ErrorSeverity.HIGH,
            )

        await self._report(report, strings.summary_created.format(thread=thread.mention))
        return InteractionState.COMPLETED

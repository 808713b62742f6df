"""
Tests for the /summarize interaction flow.
"""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from error_handler import CompletionError
from fakes import (
    BOT_USER_ID,
    FakeChannel,
    FakeThread,
    make_guild,
    make_http_exception,
    make_interaction,
    make_messages,
)
from locales import ENGLISH_STRINGS, POLISH_STRINGS
from message_fetcher import MessageWindowFetcher
from summary_orchestrator import (
    COUNT_OPTIONS,
    InteractionState,
    SummaryChoice,
    SummaryOptionsView,
    SummaryOrchestrator,
)
from summary_requester import SummaryRequester
from usage_limits import UsageLedger

NOW = datetime(2024, 5, 1, 14, 5, tzinfo=timezone.utc)
TODAY = date(2024, 5, 1)
USER_ID = 1

SUMMARY_TEXT = "- First topic " + "a" * 40 + "\n- Second topic " + "b" * 40 + "\n- Third topic " + "c" * 40


def _completion(text):
    completion = MagicMock()
    completion.choices = [MagicMock()]
    completion.choices[0].message.content = text
    return completion


@pytest.fixture
def client():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=_completion(SUMMARY_TEXT))
    return client


@pytest.fixture
def ledger(storage):
    return UsageLedger(storage, clock=lambda: NOW)


@pytest.fixture
def orchestrator(storage, ledger, client):
    requester = SummaryRequester(client, "test-model", retry_delay=0, max_chunk_length=80)
    return SummaryOrchestrator(
        storage,
        ledger,
        MessageWindowFetcher(BOT_USER_ID),
        requester,
        choice_timeout=1,
        clock=lambda: NOW,
    )


class Reporter:
    def __init__(self):
        self.messages = []

    async def __call__(self, content):
        self.messages.append(content)


def _channel_with_thread(messages):
    channel = FakeChannel(messages)
    thread = FakeThread()
    channel.create_thread.return_value = thread
    return channel, thread


class TestProcessChoice:

    @pytest.mark.asyncio
    async def test_empty_channel_reports_no_messages_without_completion(self, orchestrator, client, storage):
        channel, _ = _channel_with_thread([])
        report = Reporter()

        state = await orchestrator.process_choice(
            SummaryChoice(count=10), channel, make_guild(), str(USER_ID), "en", report
        )

        assert state is InteractionState.COMPLETED
        assert report.messages == [ENGLISH_STRINGS.no_messages]
        client.chat.completions.create.assert_not_called()
        channel.create_thread.assert_not_called()
        assert await storage.get_usage_count(str(USER_ID), str(make_guild().id), TODAY) == 0

    @pytest.mark.asyncio
    async def test_success_posts_chunks_in_order_and_records_use(self, orchestrator, storage):
        channel, thread = _channel_with_thread(make_messages(20))
        guild = make_guild()
        report = Reporter()

        state = await orchestrator.process_choice(
            SummaryChoice(count=10), channel, guild, str(USER_ID), "en", report
        )

        assert state is InteractionState.COMPLETED
        assert len(thread.sent) == 3
        assert thread.sent[0].startswith("- First topic")
        assert thread.sent[2].startswith("- Third topic")
        channel.create_thread.assert_awaited_once_with(
            name="Summary 2024-05-01 14:05 UTC", type=discord.ChannelType.public_thread
        )
        assert report.messages == [ENGLISH_STRINGS.summary_created.format(thread=thread.mention)]
        assert await storage.get_usage_count(str(USER_ID), str(guild.id), TODAY) == 1

    @pytest.mark.asyncio
    async def test_prompt_uses_only_selected_messages(self, orchestrator, client):
        channel, _ = _channel_with_thread(make_messages(20))

        await orchestrator.process_choice(
            SummaryChoice(count=10), channel, make_guild(), str(USER_ID), "en", Reporter()
        )

        user_prompt = client.chat.completions.create.await_args.kwargs["messages"][1]["content"]
        assert "(ID: 1010)" in user_prompt
        assert "(ID: 1009)" not in user_prompt

    @pytest.mark.asyncio
    async def test_time_window_choice(self, orchestrator, client):
        # Messages one hour apart ending at NOW; "today" starts at midnight UTC
        messages = make_messages(
            20, start=datetime(2024, 4, 30, 19, 0, tzinfo=timezone.utc), step=timedelta(hours=1)
        )
        channel, thread = _channel_with_thread(messages)

        state = await orchestrator.process_choice(
            SummaryChoice(window="today"), channel, make_guild(), str(USER_ID), "en", Reporter()
        )

        assert state is InteractionState.COMPLETED
        user_prompt = client.chat.completions.create.await_args.kwargs["messages"][1]["content"]
        assert "(ID: 1004)" not in user_prompt
        assert "(ID: 1005)" in user_prompt

    @pytest.mark.asyncio
    async def test_thread_creation_failure_is_reported(self, orchestrator, storage):
        channel, _ = _channel_with_thread(make_messages(5))
        channel.create_thread.side_effect = make_http_exception(403, "Missing Permissions", cls=discord.Forbidden)
        report = Reporter()

        state = await orchestrator.process_choice(
            SummaryChoice(count=10), channel, make_guild(), str(USER_ID), "en", report
        )

        assert state is InteractionState.FAILED
        assert report.messages == [ENGLISH_STRINGS.error_thread]
        assert await storage.get_usage_count(str(USER_ID), str(make_guild().id), TODAY) == 0

    @pytest.mark.asyncio
    async def test_completion_failure_is_reported(self, orchestrator, client):
        client.chat.completions.create.side_effect = CompletionError("boom")
        channel, _ = _channel_with_thread(make_messages(5))
        report = Reporter()

        state = await orchestrator.process_choice(
            SummaryChoice(count=10), channel, make_guild(), str(USER_ID), "pl", report
        )

        assert state is InteractionState.FAILED
        assert report.messages == [POLISH_STRINGS.error_generating]
        channel.create_thread.assert_not_called()

    @pytest.mark.asyncio
    async def test_retrieval_failure_is_reported(self, orchestrator, client):
        channel = FakeChannel(make_messages(5), fail_on_call=1)
        report = Reporter()

        state = await orchestrator.process_choice(
            SummaryChoice(count=10), channel, make_guild(), str(USER_ID), "en", report
        )

        assert state is InteractionState.FAILED
        assert report.messages == [ENGLISH_STRINGS.error_generating]
        client.chat.completions.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_exempt_user_does_not_consume_uses(self, orchestrator, storage):
        channel, _ = _channel_with_thread(make_messages(5))

        await orchestrator.process_choice(
            SummaryChoice(count=10), channel, make_guild(), str(USER_ID), "en", Reporter(), exempt=True
        )

        assert await storage.get_usage_count(str(USER_ID), str(make_guild().id), TODAY) == 0


class TestHandleSummarize:

    @pytest.mark.asyncio
    async def test_requires_guild(self, orchestrator):
        interaction = make_interaction(guild=None)

        state = await orchestrator.handle_summarize(interaction)

        assert state is InteractionState.IDLE
        interaction.response.send_message.assert_awaited_once_with(ENGLISH_STRINGS.guild_only, ephemeral=True)

    @pytest.mark.asyncio
    async def test_over_quota_user_is_told_remaining_uses(self, orchestrator, ledger, storage):
        guild = make_guild()
        await ledger.set_quota(str(guild.id), 1)
        await ledger.record_use(str(USER_ID), str(guild.id))
        interaction = make_interaction(user_id=USER_ID, guild=guild)

        state = await orchestrator.handle_summarize(interaction)

        assert state is InteractionState.IDLE
        interaction.response.defer.assert_awaited_once_with(ephemeral=True)
        interaction.followup.send.assert_awaited_once_with(
            ENGLISH_STRINGS.usage_limit_reached.format(remaining=0), ephemeral=True
        )
        assert await storage.get_usage_count(str(USER_ID), str(guild.id), TODAY) == 1

    @pytest.mark.asyncio
    async def test_exempt_user_over_quota_gets_options(self, orchestrator, ledger):
        guild = make_guild()
        await ledger.set_quota(str(guild.id), 1)
        await ledger.record_use(str(USER_ID), str(guild.id))
        await ledger.add_exempt_role(str(guild.id), "500")
        interaction = make_interaction(user_id=USER_ID, guild=guild, role_ids=(500,))

        async def expire(content, view=None, ephemeral=False):
            view.stop()

        interaction.followup.send.side_effect = expire

        state = await orchestrator.handle_summarize(interaction)

        assert state is InteractionState.EXPIRED
        assert interaction.followup.send.await_args.args[0] == ENGLISH_STRINGS.choose_messages
        interaction.edit_original_response.assert_not_called()

    @pytest.mark.asyncio
    async def test_stored_locale_is_used_for_options(self, orchestrator, storage):
        guild = make_guild()
        await storage.set_user_locale(str(USER_ID), str(guild.id), "pl")
        interaction = make_interaction(user_id=USER_ID, guild=guild, locale="en-US")
        interaction.followup.send.side_effect = lambda content, view=None, ephemeral=False: view.stop()

        await orchestrator.handle_summarize(interaction)

        assert interaction.followup.send.await_args.args[0] == POLISH_STRINGS.choose_messages

    @pytest.mark.asyncio
    async def test_full_flow_edits_original_response(self, orchestrator, storage):
        guild = make_guild()
        channel, thread = _channel_with_thread(make_messages(15))
        interaction = make_interaction(user_id=USER_ID, guild=guild)
        interaction.channel = channel

        async def choose(content, view=None, ephemeral=False):
            view.choice = SummaryChoice(count=10)
            view.stop()

        interaction.followup.send.side_effect = choose

        state = await orchestrator.handle_summarize(interaction)

        assert state is InteractionState.COMPLETED
        interaction.edit_original_response.assert_awaited_with(
            content=ENGLISH_STRINGS.summary_created.format(thread=thread.mention)
        )
        assert await storage.get_usage_count(str(USER_ID), str(guild.id), TODAY) == 1

    @pytest.mark.asyncio
    async def test_defers_before_reading_storage(self, orchestrator, storage):
        interaction = make_interaction(user_id=USER_ID, guild=make_guild())
        calls = []
        interaction.response.defer.side_effect = lambda ephemeral=False: calls.append("defer")
        original_get_locale = storage.get_user_locale

        async def get_user_locale(*args):
            calls.append("storage")
            return await original_get_locale(*args)

        storage.get_user_locale = get_user_locale
        interaction.followup.send.side_effect = lambda content, view=None, ephemeral=False: view.stop()

        await orchestrator.handle_summarize(interaction)

        assert calls[:2] == ["defer", "storage"]

    @pytest.mark.asyncio
    async def test_menu_send_failure_reports_button_error(self, orchestrator):
        interaction = make_interaction(user_id=USER_ID, guild=make_guild())
        interaction.followup.send.side_effect = [make_http_exception(500, "Internal Server Error"), None]

        state = await orchestrator.handle_summarize(interaction)

        assert state is InteractionState.FAILED
        interaction.followup.send.assert_awaited_with(ENGLISH_STRINGS.error_buttons, ephemeral=True)

    @pytest.mark.asyncio
    async def test_error_report_failure_is_not_raised(self, orchestrator):
        interaction = make_interaction(user_id=USER_ID, guild=make_guild())
        interaction.followup.send.side_effect = make_http_exception(404, "Unknown Webhook", cls=discord.NotFound)

        state = await orchestrator.handle_summarize(interaction)

        assert state is InteractionState.FAILED
        assert interaction.followup.send.await_count == 2


class TestOptionsView:

    @pytest.mark.asyncio
    async def test_buttons_cover_counts_and_windows(self):
        view = SummaryOptionsView(USER_ID, ENGLISH_STRINGS)

        labels = [item.label for item in view.children]

        assert labels[:len(COUNT_OPTIONS)] == [f"Last {count}" for count in COUNT_OPTIONS]
        assert labels[len(COUNT_OPTIONS):] == ["Today", "Yesterday", "Last 3 Days", "Last Week"]
        assert view.timeout == 60

    @pytest.mark.asyncio
    async def test_only_requester_may_press(self):
        view = SummaryOptionsView(USER_ID, ENGLISH_STRINGS)
        stranger = make_interaction(user_id=2)

        assert await view.interaction_check(stranger) is False
        stranger.response.send_message.assert_awaited_once_with(ENGLISH_STRINGS.not_your_menu, ephemeral=True)
        assert await view.interaction_check(make_interaction(user_id=USER_ID)) is True

    @pytest.mark.asyncio
    async def test_select_records_choice_and_clears_buttons(self):
        view = SummaryOptionsView(USER_ID, ENGLISH_STRINGS)
        interaction = make_interaction(user_id=USER_ID)
        interaction.response.edit_message = AsyncMock()

        await view.select(interaction, SummaryChoice(window="yesterday"))

        assert view.choice == SummaryChoice(window="yesterday")
        assert view.is_finished()
        interaction.response.edit_message.assert_awaited_once_with(
            content=ENGLISH_STRINGS.generating_summary, view=None
        )

    def test_choice_requires_exactly_one_option(self):
        with pytest.raises(ValueError):
            SummaryChoice()
        with pytest.raises(ValueError):
            SummaryChoice(count=10, window="today")
        with pytest.raises(ValueError):
            SummaryChoice(window="fortnight")

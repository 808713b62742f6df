"""
Tests for the /config and /admin command handlers.
"""

from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, Mock

import discord
import pytest

from command_handler import (
    handle_admin_addrole,
    handle_admin_removerole,
    handle_admin_setlimit,
    handle_admin_show,
    handle_config_language,
    handle_config_show,
)
from fakes import make_guild, make_http_exception, make_interaction
from locales import ENGLISH_STRINGS, POLISH_STRINGS
from rate_limiter import ActionCooldown
from usage_limits import UsageLedger

NOW = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
ADMIN_ID = 42


def _reply(interaction):
    """The single terminal reply sent after deferring."""
    interaction.followup.send.assert_awaited_once()
    args, kwargs = interaction.followup.send.await_args
    assert kwargs == {"ephemeral": True}
    return args[0]


def _role(role_id, name):
    role = Mock()
    role.id = role_id
    role.name = name
    return role


@pytest.fixture
def ledger(storage):
    return UsageLedger(storage, clock=lambda: NOW)


class TestConfigCommands:

    @pytest.mark.asyncio
    async def test_show_defaults_to_auto(self, storage):
        interaction = make_interaction(guild=make_guild())

        await handle_config_show(interaction, storage)

        interaction.response.defer.assert_awaited_once_with(ephemeral=True)
        assert _reply(interaction) == ENGLISH_STRINGS.config_current.format(language=ENGLISH_STRINGS.language_auto)

    @pytest.mark.asyncio
    async def test_language_update_replies_in_new_language(self, storage):
        guild = make_guild()
        interaction = make_interaction(guild=guild)

        await handle_config_language(interaction, storage, "pl")

        assert _reply(interaction) == POLISH_STRINGS.config_updated.format(language="PL")
        assert await storage.get_user_locale("1", str(guild.id)) == "pl"

    @pytest.mark.asyncio
    async def test_show_after_update(self, storage):
        guild = make_guild()
        await handle_config_language(make_interaction(guild=guild), storage, "pl")
        interaction = make_interaction(guild=guild)

        await handle_config_show(interaction, storage)

        assert _reply(interaction) == POLISH_STRINGS.config_current.format(language="PL")

    @pytest.mark.asyncio
    async def test_auto_clears_preference(self, storage):
        guild = make_guild()
        await storage.set_user_locale("1", str(guild.id), "pl")
        interaction = make_interaction(guild=guild)

        await handle_config_language(interaction, storage, "auto")

        assert _reply(interaction) == ENGLISH_STRINGS.config_updated.format(language=ENGLISH_STRINGS.language_auto)
        assert await storage.get_user_locale("1", str(guild.id)) is None

    @pytest.mark.asyncio
    async def test_invalid_language_reports_error(self, storage):
        interaction = make_interaction(guild=make_guild())

        await handle_config_language(interaction, storage, "xx")

        assert _reply(interaction) == ENGLISH_STRINGS.error_config

    @pytest.mark.asyncio
    async def test_requires_guild(self, storage):
        interaction = make_interaction(guild=None)

        await handle_config_show(interaction, storage)

        interaction.response.defer.assert_not_called()
        interaction.response.send_message.assert_awaited_once_with(ENGLISH_STRINGS.guild_only, ephemeral=True)


class TestAdminCommands:

    @pytest.mark.asyncio
    async def test_setlimit(self, ledger, storage):
        guild = make_guild()
        interaction = make_interaction(user_id=ADMIN_ID, guild=guild)

        await handle_admin_setlimit(interaction, ledger, 5)

        assert _reply(interaction) == ENGLISH_STRINGS.admin_limit_set.format(limit=5)
        assert await storage.get_max_daily_uses(str(guild.id)) == 5

    @pytest.mark.asyncio
    async def test_setlimit_rejects_zero(self, ledger, storage):
        guild = make_guild()
        interaction = make_interaction(user_id=ADMIN_ID, guild=guild)

        await handle_admin_setlimit(interaction, ledger, 0)

        assert _reply(interaction) == ENGLISH_STRINGS.admin_invalid_limit
        assert await storage.get_max_daily_uses(str(guild.id)) == 10

    @pytest.mark.asyncio
    async def test_cooldown_message(self, storage):
        ledger = UsageLedger(storage, admin_cooldown=ActionCooldown(5, clock=lambda: 100.0), clock=lambda: NOW)
        guild = make_guild()
        role = _role(500, "VIP")

        await handle_admin_setlimit(make_interaction(user_id=ADMIN_ID, guild=guild), ledger, 4)
        interaction = make_interaction(user_id=ADMIN_ID, guild=guild)
        await handle_admin_addrole(interaction, ledger, role)

        assert _reply(interaction) == ENGLISH_STRINGS.admin_cooldown.format(seconds=5.0)
        assert await storage.get_unlimited_roles(str(guild.id)) == []

    @pytest.mark.asyncio
    async def test_add_and_remove_role(self, ledger):
        guild = make_guild()
        role = _role(500, "VIP")

        first = make_interaction(user_id=ADMIN_ID, guild=guild)
        await handle_admin_addrole(first, ledger, role)
        again = make_interaction(user_id=ADMIN_ID, guild=guild)
        await handle_admin_addrole(again, ledger, role)
        removed = make_interaction(user_id=ADMIN_ID, guild=guild)
        await handle_admin_removerole(removed, ledger, role)
        missing = make_interaction(user_id=ADMIN_ID, guild=guild)
        await handle_admin_removerole(missing, ledger, role)

        assert _reply(first) == ENGLISH_STRINGS.admin_role_added.format(role="VIP")
        assert _reply(again) == ENGLISH_STRINGS.admin_role_already_added.format(role="VIP")
        assert _reply(removed) == ENGLISH_STRINGS.admin_role_removed.format(role="VIP")
        assert _reply(missing) == ENGLISH_STRINGS.admin_role_not_found.format(role="VIP")

    @pytest.mark.asyncio
    async def test_storage_failure_reports_generic_error(self, ledger):
        ledger.set_quota = AsyncMock(side_effect=RuntimeError("db gone"))
        interaction = make_interaction(user_id=ADMIN_ID, guild=make_guild())

        await handle_admin_setlimit(interaction, ledger, 3)

        assert _reply(interaction) == ENGLISH_STRINGS.admin_error


class TestAdminShow:

    @pytest.mark.asyncio
    async def test_show_lists_roles_and_usage(self, ledger, storage):
        guild = make_guild(roles={500: _role(500, "VIP")})
        await ledger.set_quota(str(guild.id), 3)
        await ledger.add_exempt_role(str(guild.id), "500")
        await ledger.add_exempt_role(str(guild.id), "600")
        await ledger.record_use("7", str(guild.id))
        await ledger.record_use("8", str(guild.id))
        await ledger.record_use("8", str(guild.id))

        interaction = make_interaction(user_id=ADMIN_ID, guild=guild)
        known = Mock()
        known.name = "carol"

        async def fetch_user(user_id):
            if user_id == 8:
                return known
            raise make_http_exception(404, "Unknown User", cls=discord.NotFound)

        interaction.client.fetch_user = AsyncMock(side_effect=fetch_user)

        await handle_admin_show(interaction, ledger)

        lines = _reply(interaction).split("\n")
        assert lines[0] == ENGLISH_STRINGS.admin_settings_header
        assert lines[1] == ENGLISH_STRINGS.admin_settings_limit.format(limit=3)
        assert "VIP" in lines[2]
        assert ENGLISH_STRINGS.admin_unknown_role in lines[2]
        assert lines[4] == ENGLISH_STRINGS.admin_settings_usage_header.format(date=date(2024, 5, 1).isoformat())
        assert lines[5] == "carol: 2/3 uses"
        assert lines[6] == "User 7: 1/3 uses"

    @pytest.mark.asyncio
    async def test_show_without_usage(self, ledger):
        interaction = make_interaction(user_id=ADMIN_ID, guild=make_guild())

        await handle_admin_show(interaction, ledger)

        content = _reply(interaction)
        assert ENGLISH_STRINGS.admin_settings_roles.format(roles=ENGLISH_STRINGS.admin_none) in content
        assert content.endswith(ENGLISH_STRINGS.admin_settings_no_usage)

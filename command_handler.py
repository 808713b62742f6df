"""
Command handlers for the /config and /admin slash commands.

Every handler defers the interaction ephemerally and then sends exactly one
follow-up: the result or a localized error.
"""

from typing import Awaitable, Callable, Optional

import discord

from database import StorageService
from error_handler import AdminCooldownError, ValidationError, safe_execute_async
from locale_resolver import AUTO_LOCALE, get_locale_setting, resolve_locale, update_locale_setting
from locales import LocaleStrings, get_strings
from logging_config import logger
from usage_limits import UsageLedger


async def _send_reply(interaction: discord.Interaction, content: str) -> None:
    """Send the single terminal reply of a deferred command."""
    if interaction.response.is_done():
        await interaction.followup.send(content, ephemeral=True)
    else:
        await interaction.response.send_message(content, ephemeral=True)


async def _resolve_strings(storage: StorageService, interaction: discord.Interaction) -> LocaleStrings:
    """Localized strings for the invoking user, falling back to the Discord locale."""
    locale = await safe_execute_async(
        resolve_locale,
        storage,
        str(interaction.user.id),
        str(interaction.guild.id),
        interaction.locale,
        context="Error resolving locale for command reply",
        default_return=interaction.locale,
    )
    return get_strings(locale)


def _format_language(strings: LocaleStrings, setting: Optional[str]) -> str:
    if not setting or setting == AUTO_LOCALE:
        return strings.language_auto
    return setting.upper()


async def handle_config_show(interaction: discord.Interaction, storage: StorageService) -> None:
    """Handle /config show: display the stored language preference."""
    if interaction.guild is None:
        await _send_reply(interaction, get_strings(interaction.locale).guild_only)
        return

    await interaction.response.defer(ephemeral=True)
    strings = get_strings(interaction.locale)
    try:
        setting = await get_locale_setting(storage, str(interaction.user.id), str(interaction.guild.id))
        strings = await _resolve_strings(storage, interaction)
        content = strings.config_current.format(language=_format_language(strings, setting))
    except Exception as e:
        logger.error(f"Error in /config show for user {interaction.user.id}: {e}", exc_info=True)
        content = strings.error_config

    await _send_reply(interaction, content)


async def handle_config_language(interaction: discord.Interaction, storage: StorageService, language: str) -> None:
    """Handle /config language: store a language or "auto"."""
    if interaction.guild is None:
        await _send_reply(interaction, get_strings(interaction.locale).guild_only)
        return

    await interaction.response.defer(ephemeral=True)
    strings = get_strings(interaction.locale)
    try:
        stored = await update_locale_setting(storage, str(interaction.user.id), str(interaction.guild.id), language)
        # Answer in the language that is now in effect
        strings = get_strings(stored or interaction.locale)
        content = strings.config_updated.format(language=_format_language(strings, stored))
    except ValidationError as e:
        logger.warning(f"Rejected /config language value from user {interaction.user.id}: {e}")
        content = strings.error_config
    except Exception as e:
        logger.error(f"Error in /config language for user {interaction.user.id}: {e}", exc_info=True)
        content = strings.error_config

    await _send_reply(interaction, content)


async def _run_admin_command(
    interaction: discord.Interaction,
    ledger: UsageLedger,
    name: str,
    action: Callable[[LocaleStrings], Awaitable[str]],
) -> None:
    """Defer, run an admin action and send its result or a localized error."""
    if interaction.guild is None:
        await _send_reply(interaction, get_strings(interaction.locale).guild_only)
        return

    await interaction.response.defer(ephemeral=True)
    strings = await _resolve_strings(ledger.storage, interaction)

    try:
        content = await action(strings)
    except AdminCooldownError as e:
        content = strings.admin_cooldown.format(seconds=e.retry_after)
    except ValidationError as e:
        logger.info(f"Invalid /admin {name} input in guild {interaction.guild.id}: {e}")
        content = strings.admin_invalid_limit
    except Exception as e:
        logger.error(f"Error in /admin {name} for guild {interaction.guild.id}: {e}", exc_info=True)
        content = strings.admin_error

    await _send_reply(interaction, content)


async def handle_admin_setlimit(interaction: discord.Interaction, ledger: UsageLedger, limit: int) -> None:
    async def action(strings: LocaleStrings) -> str:
        await ledger.set_quota(str(interaction.guild.id), limit, str(interaction.user.id))
        return strings.admin_limit_set.format(limit=limit)

    await _run_admin_command(interaction, ledger, "setlimit", action)


async def handle_admin_addrole(interaction: discord.Interaction, ledger: UsageLedger, role: discord.Role) -> None:
    async def action(strings: LocaleStrings) -> str:
        added = await ledger.add_exempt_role(str(interaction.guild.id), str(role.id), str(interaction.user.id))
        template = strings.admin_role_added if added else strings.admin_role_already_added
        return template.format(role=role.name)

    await _run_admin_command(interaction, ledger, "addrole", action)


async def handle_admin_removerole(interaction: discord.Interaction, ledger: UsageLedger, role: discord.Role) -> None:
    async def action(strings: LocaleStrings) -> str:
        removed = await ledger.remove_exempt_role(str(interaction.guild.id), str(role.id), str(interaction.user.id))
        template = strings.admin_role_removed if removed else strings.admin_role_not_found
        return template.format(role=role.name)

    await _run_admin_command(interaction, ledger, "removerole", action)


async def _display_name(interaction: discord.Interaction, user_id: str, strings: LocaleStrings) -> str:
    user = await safe_execute_async(
        interaction.client.fetch_user,
        int(user_id),
        context=f"Error fetching user {user_id} for /admin show",
    )
    if user is None:
        return strings.admin_settings_unknown_user.format(user_id=user_id)
    return user.name


async def handle_admin_show(interaction: discord.Interaction, ledger: UsageLedger) -> None:
    """Handle /admin show: daily limit, unlimited roles and today's usage."""
    async def action(strings: LocaleStrings) -> str:
        guild = interaction.guild
        settings = await ledger.get_settings(str(guild.id))

        role_names = []
        for role_id in settings.unlimited_roles:
            role = guild.get_role(int(role_id))
            role_names.append(role.name if role else strings.admin_unknown_role)

        lines = [
            strings.admin_settings_header,
            strings.admin_settings_limit.format(limit=settings.max_daily_uses),
            strings.admin_settings_roles.format(roles=", ".join(role_names) if role_names else strings.admin_none),
            "",
            strings.admin_settings_usage_header.format(date=settings.day.isoformat()),
        ]

        if settings.usage:
            for row in settings.usage:
                name = await _display_name(interaction, row['user_id'], strings)
                lines.append(strings.admin_settings_usage_row.format(
                    user=name, count=row['usage_count'], limit=settings.max_daily_uses
                ))
        else:
            lines.append(strings.admin_settings_no_usage)

        return "\n".join(lines)

    await _run_admin_command(interaction, ledger, "show", action)

"""
Locale resolution for user-facing strings and summary prompts.

A user's stored preference wins; without one the Discord client locale of the
interaction is used.
"""

import logging
from typing import Optional

from database import StorageService
from error_handler import ValidationError
from locales import Language

logger = logging.getLogger('summary_bot.locale_resolver')

# Value accepted by /config language that clears the stored preference
AUTO_LOCALE = "auto"


async def resolve_locale(
    storage: StorageService,
    user_id: str,
    guild_id: str,
    platform_locale: Optional[str],
) -> Optional[str]:
    """
    Resolve the effective language tag for a user.

    Args:
        storage (StorageService): Storage handle
        user_id (str): Discord user ID
        guild_id (str): Discord guild ID
        platform_locale (Optional[str]): Locale reported by Discord for the interaction

    Returns:
        Optional[str]: The stored locale, or platform_locale when none is stored
    """
    stored = await storage.get_user_locale(user_id, guild_id)
    if stored:
        return stored
    return str(getattr(platform_locale, 'value', platform_locale)) if platform_locale else None


async def get_locale_setting(storage: StorageService, user_id: str, guild_id: str) -> str:
    """Get the stored preference as shown by /config show ("auto" when unset)."""
    stored = await storage.get_user_locale(user_id, guild_id)
    return stored or AUTO_LOCALE


async def update_locale_setting(
    storage: StorageService,
    user_id: str,
    guild_id: str,
    choice: str,
) -> Optional[str]:
    """
    Store a /config language choice.

    Args:
        choice (str): A supported language tag or "auto"

    Returns:
        Optional[str]: The stored value (None for "auto")

    Raises:
        ValidationError: If the choice is not a supported language
    """
    choice = (choice or "").strip().lower()
    if choice == AUTO_LOCALE:
        locale = None
    else:
        try:
            locale = Language(choice).value
        except ValueError:
            raise ValidationError(f"Unsupported language: {choice!r}")

    await storage.set_user_locale(user_id, guild_id, locale)
    logger.info(f"User {user_id} in guild {guild_id} set locale to {locale or AUTO_LOCALE}")
    return locale

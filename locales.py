"""
Localized user-facing strings.

Supported languages form a closed enum; every language maps to one frozen
table of format strings. Unknown tags resolve to the default language when a
table is looked up, the stored preference itself is never rewritten.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class Language(str, Enum):
    ENGLISH = "en"
    POLISH = "pl"


DEFAULT_LANGUAGE = Language.ENGLISH


@dataclass(frozen=True)
class LocaleStrings:
    # Summarize flow
    choose_messages: str
    generating_summary: str
    no_messages: str
    summary_created: str
    error_generating: str
    error_thread: str
    error_buttons: str
    usage_limit_reached: str
    not_your_menu: str
    thread_name: str
    # Option buttons
    last_n: str
    today: str
    yesterday: str
    last_3_days: str
    last_week: str
    # /config
    config_current: str
    config_updated: str
    error_config: str
    language_auto: str
    # /admin
    admin_limit_set: str
    admin_invalid_limit: str
    admin_role_added: str
    admin_role_already_added: str
    admin_role_removed: str
    admin_role_not_found: str
    admin_cooldown: str
    admin_settings_header: str
    admin_settings_limit: str
    admin_settings_roles: str
    admin_settings_usage_header: str
    admin_settings_usage_row: str
    admin_settings_unknown_user: str
    admin_settings_no_usage: str
    admin_none: str
    admin_unknown_role: str
    admin_error: str
    guild_only: str


ENGLISH_STRINGS = LocaleStrings(
    choose_messages="Choose how many messages to summarize:",
    generating_summary="Generating summary...",
    no_messages="No messages found in the selected time period.",
    summary_created="Summary has been created in thread: {thread}",
    error_generating="Sorry, there was an error generating the summary. Please try again later.",
    error_thread="Sorry, the summary thread could not be created. Please check my permissions and try again.",
    error_buttons="Sorry, there was an error creating the buttons. Please try again later.",
    usage_limit_reached="You have reached your daily usage limit. You have {remaining} uses remaining.",
    not_your_menu="Only the person who ran this command can use these buttons.",
    thread_name="Summary {date} UTC",
    last_n="Last {count}",
    today="Today",
    yesterday="Yesterday",
    last_3_days="Last 3 Days",
    last_week="Last Week",
    config_current="Your current configuration:\nLanguage: {language}",
    config_updated="Configuration updated!\nLanguage set to: {language}",
    error_config="An error occurred while updating your configuration. Please try again.",
    language_auto="Auto (Discord)",
    admin_limit_set="Daily usage limit set to {limit} uses per user.",
    admin_invalid_limit="The daily usage limit must be a positive whole number.",
    admin_role_added="Added {role} to unlimited usage roles.",
    admin_role_already_added="{role} already has unlimited usage.",
    admin_role_removed="Removed {role} from unlimited usage roles.",
    admin_role_not_found="{role} was not an unlimited usage role.",
    admin_cooldown="Please wait {seconds:.1f} seconds before using another admin command.",
    admin_settings_header="**Current Usage Limit Settings**",
    admin_settings_limit="Daily Limit: {limit} uses per user",
    admin_settings_roles="Unlimited Roles: {roles}",
    admin_settings_usage_header="**Current Usage ({date})**",
    admin_settings_usage_row="{user}: {count}/{limit} uses",
    admin_settings_unknown_user="User {user_id}",
    admin_settings_no_usage="No usage recorded today.",
    admin_none="None",
    admin_unknown_role="Unknown Role",
    admin_error="❌ An error occurred while executing this command.",
    guild_only="This command can only be used in a server.",
)

POLISH_STRINGS = LocaleStrings(
    choose_messages="Wybierz ile wiadomości podsumować:",
    generating_summary="Generowanie podsumowania...",
    no_messages="Nie znaleziono wiadomości w wybranym okresie.",
    summary_created="Podsumowanie zostało utworzone w wątku: {thread}",
    error_generating="Przepraszam, wystąpił błąd podczas generowania podsumowania. Spróbuj ponownie później.",
    error_thread="Przepraszam, nie udało się utworzyć wątku z podsumowaniem. Sprawdź moje uprawnienia i spróbuj ponownie.",
    error_buttons="Przepraszam, wystąpił błąd podczas tworzenia przycisków. Spróbuj ponownie później.",
    usage_limit_reached="Osiągnąłeś dzienny limit użycia. Pozostało Ci {remaining} użyć.",
    not_your_menu="Tylko osoba, która użyła tej komendy, może korzystać z tych przycisków.",
    thread_name="Podsumowanie {date} UTC",
    last_n="Ostatnie {count}",
    today="Dzisiaj",
    yesterday="Wczoraj",
    last_3_days="Ostatnie 3 dni",
    last_week="Ostatni tydzień",
    config_current="Twoja aktualna konfiguracja:\nJęzyk: {language}",
    config_updated="Konfiguracja zaktualizowana!\nJęzyk ustawiony na: {language}",
    error_config="Wystąpił błąd podczas aktualizacji konfiguracji. Spróbuj ponownie.",
    language_auto="Automatyczny (Discord)",
    admin_limit_set="Dzienny limit ustawiony na {limit} użyć na użytkownika.",
    admin_invalid_limit="Dzienny limit musi być dodatnią liczbą całkowitą.",
    admin_role_added="Dodano {role} do ról bez limitu.",
    admin_role_already_added="{role} już ma nielimitowany dostęp.",
    admin_role_removed="Usunięto {role} z ról bez limitu.",
    admin_role_not_found="{role} nie była rolą bez limitu.",
    admin_cooldown="Poczekaj {seconds:.1f} s przed użyciem kolejnej komendy administracyjnej.",
    admin_settings_header="**Aktualne ustawienia limitów**",
    admin_settings_limit="Dzienny limit: {limit} użyć na użytkownika",
    admin_settings_roles="Role bez limitu: {roles}",
    admin_settings_usage_header="**Bieżące użycie ({date})**",
    admin_settings_usage_row="{user}: {count}/{limit} użyć",
    admin_settings_unknown_user="Użytkownik {user_id}",
    admin_settings_no_usage="Brak użycia w dniu dzisiejszym.",
    admin_none="Brak",
    admin_unknown_role="Nieznana rola",
    admin_error="❌ Wystąpił błąd podczas wykonywania komendy.",
    guild_only="Tej komendy można używać tylko na serwerze.",
)

LOCALE_TABLES = {
    Language.ENGLISH: ENGLISH_STRINGS,
    Language.POLISH: POLISH_STRINGS,
}


def normalize_language(tag: Optional[Union[str, Language]]) -> Language:
    """
    Map a language tag to a supported Language.

    Accepts bare tags ("pl"), Discord locales ("en-US", "pl") and discord.Locale
    values; anything unsupported or empty maps to DEFAULT_LANGUAGE.
    """
    if isinstance(tag, Language):
        return tag
    if tag is None:
        return DEFAULT_LANGUAGE

    # discord.Locale is a str-valued enum, use its value
    value = str(getattr(tag, 'value', tag)).strip().lower()
    if not value:
        return DEFAULT_LANGUAGE

    primary = value.replace('_', '-').split('-')[0]
    try:
        return Language(primary)
    except ValueError:
        return DEFAULT_LANGUAGE


def get_strings(tag: Optional[Union[str, Language]]) -> LocaleStrings:
    """Get the string table for a language tag, falling back to the default language."""
    return LOCALE_TABLES[normalize_language(tag)]

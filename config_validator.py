from logging_config import logger
from message_fetcher import BotMessagePolicy

# attr_name -> (default, minimum allowed value)
_OPTIONAL_INTEGERS = {
    "llm_max_tokens": (2000, 1),
    "llm_max_retries": (3, 0),
    "summary_chunk_length": (1000, 100),
    "default_max_daily_uses": (10, 1),
    "usage_retention_days": (30, 1),
    "max_concurrent_summaries": (4, 1),
    "max_backups": (7, 1),
}

_OPTIONAL_NUMBERS = {
    "llm_timeout_seconds": (30.0, 1.0),
    "llm_retry_delay_seconds": (1.0, 0.0),
    "admin_cooldown_seconds": (5.0, 0.0),
    "choice_timeout_seconds": (60.0, 1.0),
    "backup_interval_hours": (24.0, 1.0),
}


def _validate_required_string(config_module, attr_name, min_length=10, display_name=None):
    """Validate a required string configuration attribute."""
    if display_name is None:
        display_name = attr_name.replace('_', ' ').title()

    if not hasattr(config_module, attr_name) or not getattr(config_module, attr_name):
        logger.error(f"{display_name} not found in configuration or is empty")
        raise ValueError(f"{display_name} is missing or empty")

    value = getattr(config_module, attr_name)
    if not isinstance(value, str) or len(value) < min_length:
        logger.warning(f"{display_name} appears to be invalid (too short or not a string).")


def _validate_url(config_module, attr_name, display_name=None):
    """Validate a URL configuration attribute."""
    if display_name is None:
        display_name = attr_name.replace('_', ' ').title()

    value = getattr(config_module, attr_name, "")
    if not isinstance(value, str) or not value.startswith("http"):
        logger.warning(f"{display_name} appears to be invalid (should be a valid HTTP/HTTPS URL).")


def _validate_number(config_module, attr_name, default, minimum, cast):
    """Reset a numeric setting to its default when it is missing, malformed or too small."""
    raw_value = getattr(config_module, attr_name, default)
    try:
        value = cast(raw_value)
        if value < minimum:
            logger.warning(f"{attr_name} in config ('{raw_value}') must be at least {minimum}. Using default {default}.")
            value = default
    except (ValueError, TypeError):
        logger.warning(f"Invalid {attr_name} in config ('{raw_value}'), using default {default}.")
        value = default

    setattr(config_module, attr_name, value)


def _validate_bot_message_filter(config_module):
    raw_value = getattr(config_module, "bot_message_filter", BotMessagePolicy.SELF.value)
    try:
        policy = BotMessagePolicy(str(raw_value).strip().lower())
    except ValueError:
        logger.warning(f"Invalid bot_message_filter in config ('{raw_value}'), using '{BotMessagePolicy.SELF.value}'.")
        policy = BotMessagePolicy.SELF

    config_module.bot_message_filter = policy.value
    logger.info(f"Bot message filter: {policy.value}")


def validate_config(config_module):
    """
    Validate the loaded configuration module.

    Optional numeric settings that are invalid are logged and replaced by
    their defaults in place.

    Args:
        config_module: The imported config module

    Returns:
        bool: True if the configuration is valid

    Raises:
        ValueError: If critical configuration is invalid or missing
    """
    # Validate Discord token
    _validate_required_string(config_module, "token", min_length=50, display_name="Discord token")

    # Validate LLM configuration
    _validate_required_string(config_module, "llm_api_key", display_name="LLM API key")
    _validate_required_string(config_module, "llm_base_url", display_name="LLM Base URL")
    _validate_url(config_module, "llm_base_url", display_name="LLM Base URL")
    _validate_required_string(config_module, "llm_model", min_length=1, display_name="LLM Model")

    # Log LLM configuration
    logger.info(f"Using LLM model: {config_module.llm_model} at {config_module.llm_base_url}")

    for attr_name, (default, minimum) in _OPTIONAL_INTEGERS.items():
        _validate_number(config_module, attr_name, default, minimum, int)
    for attr_name, (default, minimum) in _OPTIONAL_NUMBERS.items():
        _validate_number(config_module, attr_name, default, minimum, float)

    _validate_bot_message_filter(config_module)

    return True

"""
Discord bot configuration using environment variables and .env file support.

This module loads configuration from environment variables with .env file taking precedence.
The .env file values override system environment variables to ensure consistent configuration.
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
# Use override=True to prioritize .env file over system environment variables
load_dotenv(override=True)

# Discord Bot Token (required)
# Environment variable: DISCORD_BOT_TOKEN
token = os.getenv('DISCORD_BOT_TOKEN')
if not token:
    raise ValueError("DISCORD_BOT_TOKEN environment variable is required")

# LLM API Key (required)
# Environment variable: LLM_API_KEY (OPENROUTER_API_KEY is accepted as a fallback)
llm_api_key = os.getenv('LLM_API_KEY') or os.getenv('OPENROUTER_API_KEY')
if not llm_api_key:
    raise ValueError("LLM_API_KEY (or OPENROUTER_API_KEY) environment variable is required")

# LLM endpoint configuration (optional)
# Works with any OpenAI-compatible API
llm_base_url = os.getenv('LLM_BASE_URL', 'https://openrouter.ai/api/v1')
llm_model = os.getenv('LLM_MODEL', 'google/gemini-2.5-pro-preview-03-25')
llm_temperature = float(os.getenv('LLM_TEMPERATURE', '0.7'))
llm_max_tokens = int(os.getenv('LLM_MAX_TOKENS', '2000'))

# Completion request policy (optional)
# Default: 30 second timeout, 3 retries on timeout/5xx, 1 second fixed backoff
llm_timeout_seconds = float(os.getenv('LLM_TIMEOUT_SECONDS', '30'))
llm_max_retries = int(os.getenv('LLM_MAX_RETRIES', '3'))
llm_retry_delay_seconds = float(os.getenv('LLM_RETRY_DELAY_SECONDS', '1'))

# Maximum length of each summary message posted into the thread
summary_chunk_length = int(os.getenv('SUMMARY_CHUNK_LENGTH', '1000'))

# Usage Limits Configuration (optional)
# Environment variables: DEFAULT_MAX_DAILY_USES, USAGE_RETENTION_DAYS
default_max_daily_uses = int(os.getenv('DEFAULT_MAX_DAILY_USES', '10'))
usage_retention_days = int(os.getenv('USAGE_RETENTION_DAYS', '30'))

# Admin command cooldown in seconds (0 disables the cooldown)
admin_cooldown_seconds = float(os.getenv('ADMIN_COOLDOWN_SECONDS', '5'))

# Record admin actions in the admin_audit_log table
admin_audit_log = os.getenv('ADMIN_AUDIT_LOG', 'true').strip().lower() in ('1', 'true', 'yes', 'on')

# Maximum number of summarize operations running at the same time (process-wide)
max_concurrent_summaries = int(os.getenv('MAX_CONCURRENT_SUMMARIES', '4'))

# Seconds to wait for the user to pick a summary option
choice_timeout_seconds = float(os.getenv('CHOICE_TIMEOUT_SECONDS', '60'))

# Which bot-authored messages are left out of summaries
# "self" drops only this bot's own messages, "all" drops every bot's messages
bot_message_filter = os.getenv('BOT_MESSAGE_FILTER', 'self').strip().lower()

# Database and backup configuration (optional)
db_file = os.getenv('DB_FILE', os.path.join('data', 'bot.db'))
backup_directory = os.getenv('BACKUP_DIRECTORY', os.path.join('data', 'backups'))
max_backups = int(os.getenv('MAX_BACKUPS', '7'))
backup_interval_hours = float(os.getenv('BACKUP_INTERVAL_HOURS', '24'))

# Error Messages (logged or shown where no locale is available)
ERROR_MESSAGES = {
    'guild_only': "This command can only be used in a server.",
    'command_error': "There was an error executing this command!",
}

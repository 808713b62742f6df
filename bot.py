import discord
from discord import app_commands
from discord.ext import commands

import config
from command_handler import (
    handle_admin_addrole,
    handle_admin_removerole,
    handle_admin_setlimit,
    handle_admin_show,
    handle_config_language,
    handle_config_show,
)
from config_validator import validate_config
from database import StorageService
from logging_config import logger
from maintenance_tasks import MaintenanceTasks
from message_fetcher import BotMessagePolicy, MessageWindowFetcher
from rate_limiter import ActionCooldown
from summary_orchestrator import SummaryOrchestrator
from summary_requester import SummaryRequester, create_client
from usage_limits import UsageLedger

LANGUAGE_CHOICES = [
    app_commands.Choice(name="English", value="en"),
    app_commands.Choice(name="Polski", value="pl"),
    app_commands.Choice(name="Auto (Discord)", value="auto"),
]


class SummaryBot(commands.Bot):
    """Bot that owns the storage handle and the summary services built on it."""

    def __init__(self):
        intents = discord.Intents.default()
        intents.message_content = True  # This is required to read message content in guild channels
        super().__init__(command_prefix='!', intents=intents)
        self.storage = None
        self.ledger = None
        self.orchestrator = None
        self.maintenance = None

    async def setup_hook(self):
        # Migrations run once, before any component touches storage
        self.storage = StorageService(
            db_file=config.db_file,
            default_max_daily_uses=config.default_max_daily_uses,
        )
        applied = self.storage.initialize()
        if applied:
            logger.info(f"Applied database migrations: {applied}")

        self.ledger = UsageLedger(
            self.storage,
            admin_cooldown=ActionCooldown(config.admin_cooldown_seconds),
            audit_log=config.admin_audit_log,
        )
        fetcher = MessageWindowFetcher(
            self.user.id if self.user else None,
            policy=BotMessagePolicy(config.bot_message_filter),
        )
        requester = SummaryRequester(
            create_client(config.llm_api_key, config.llm_base_url, config.llm_timeout_seconds),
            model=config.llm_model,
            temperature=config.llm_temperature,
            max_tokens=config.llm_max_tokens,
            timeout=config.llm_timeout_seconds,
            max_retries=config.llm_max_retries,
            retry_delay=config.llm_retry_delay_seconds,
            max_chunk_length=config.summary_chunk_length,
        )
        self.orchestrator = SummaryOrchestrator(
            self.storage,
            self.ledger,
            fetcher,
            requester,
            max_concurrent=config.max_concurrent_summaries,
            choice_timeout=config.choice_timeout_seconds,
        )

        self.maintenance = MaintenanceTasks(
            self,
            self.storage,
            self.ledger,
            retention_days=config.usage_retention_days,
            backup_directory=config.backup_directory,
            max_backups=config.max_backups,
            backup_interval_hours=config.backup_interval_hours,
        )
        self.maintenance.start()

        # Sync slash commands with Discord
        try:
            synced = await self.tree.sync()
            logger.info(f'Synced {len(synced)} command(s)')
        except discord.HTTPException as e:
            logger.error(f'Failed to sync commands: {e}')

    async def close(self):
        if self.maintenance:
            self.maintenance.stop()
        if self.storage:
            self.storage.close()
        await super().close()


bot = SummaryBot()


# Global error handler for app commands (slash commands)
@bot.tree.error
async def on_app_command_error(interaction: discord.Interaction, error: app_commands.AppCommandError):
    """Answer any unhandled command failure with a generic ephemeral error."""
    if isinstance(error, app_commands.MissingPermissions):
        message = "You don't have permission to use this command."
    elif isinstance(error, app_commands.NoPrivateMessage):
        message = config.ERROR_MESSAGES['guild_only']
    else:
        logger.error(f"App command error: {error}", exc_info=error)
        message = config.ERROR_MESSAGES['command_error']

    try:
        if interaction.response.is_done():
            await interaction.followup.send(message, ephemeral=True)
        else:
            await interaction.response.send_message(message, ephemeral=True)
    except discord.HTTPException as e:
        logger.warning(f"Could not report command error to user: {e}")


@bot.event
async def on_ready():
    logger.info(f'Bot has successfully connected as {bot.user}')
    logger.info(f'Bot ID: {bot.user.id}')
    logger.info(f'Connected to {len(bot.guilds)} guilds')


@bot.event
async def on_guild_join(guild):
    """Log when the bot joins a new guild"""
    logger.info(f'Bot joined new guild: {guild.name} (ID: {guild.id})')


@bot.event
async def on_guild_remove(guild):
    """Log when the bot is removed from a guild"""
    logger.info(f'Bot removed from guild: {guild.name} (ID: {guild.id})')


@bot.tree.command(name="summarize", description="Summarize recent messages in this channel")
@app_commands.guild_only()
async def summarize_slash(interaction: discord.Interaction):
    await bot.orchestrator.handle_summarize(interaction)


config_group = app_commands.Group(
    name="config",
    description="Manage your personal settings",
    guild_only=True,
)


@config_group.command(name="show", description="Show your current configuration")
async def config_show_slash(interaction: discord.Interaction):
    await handle_config_show(interaction, bot.storage)


@config_group.command(name="language", description="Set the language of your summaries")
@app_commands.describe(locale="The language to use")
@app_commands.choices(locale=LANGUAGE_CHOICES)
async def config_language_slash(interaction: discord.Interaction, locale: app_commands.Choice[str]):
    await handle_config_language(interaction, bot.storage, locale.value)


admin_group = app_commands.Group(
    name="admin",
    description="Admin commands for managing the summarizer",
    guild_only=True,
    default_permissions=discord.Permissions(administrator=True),
)


@admin_group.command(name="setlimit", description="Set the maximum number of daily uses per user")
@app_commands.describe(limit="The new daily usage limit")
async def admin_setlimit_slash(interaction: discord.Interaction, limit: app_commands.Range[int, 1]):
    await handle_admin_setlimit(interaction, bot.ledger, limit)


@admin_group.command(name="addrole", description="Add a role that has unlimited usage")
@app_commands.describe(role="The role to add")
async def admin_addrole_slash(interaction: discord.Interaction, role: discord.Role):
    await handle_admin_addrole(interaction, bot.ledger, role)


@admin_group.command(name="removerole", description="Remove a role from unlimited usage")
@app_commands.describe(role="The role to remove")
async def admin_removerole_slash(interaction: discord.Interaction, role: discord.Role):
    await handle_admin_removerole(interaction, bot.ledger, role)


@admin_group.command(name="show", description="Show current usage limit settings")
async def admin_show_slash(interaction: discord.Interaction):
    await handle_admin_show(interaction, bot.ledger)


bot.tree.add_command(config_group)
bot.tree.add_command(admin_group)


def main():
    try:
        logger.info("Starting bot...")

        # Validate configuration using the imported function
        validate_config(config)

        # Log startup (but mask the actual token)
        token_preview = config.token[:5] + "..." + config.token[-5:] if len(config.token) > 10 else "***masked***"
        logger.info(f"Bot token loaded: {token_preview}")
        logger.info("Connecting to Discord...")

        bot.run(config.token, log_handler=None)
    except discord.LoginFailure:
        logger.critical("Invalid Discord token. Please check DISCORD_BOT_TOKEN", exc_info=True)
    except Exception as e:
        logger.critical(f"Unexpected error during bot startup: {e}", exc_info=True)


if __name__ == "__main__":
    main()

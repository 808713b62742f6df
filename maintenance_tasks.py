from datetime import datetime
from typing import Optional

from discord.ext import tasks

from database import StorageService
from logging_config import logger
from usage_limits import UsageLedger

DEFAULT_INTERVAL_HOURS = 24


class MaintenanceTasks:
    """
    Daily usage cleanup and periodic database backups.

    Each instance gets its own copies of the loops, bound to the services it
    was constructed with.
    """

    def __init__(
        self,
        client,
        storage: StorageService,
        ledger: UsageLedger,
        retention_days: int = 30,
        backup_directory: str = 'data/backups',
        max_backups: int = 7,
        backup_interval_hours: float = DEFAULT_INTERVAL_HOURS,
    ):
        self.client = client
        self.storage = storage
        self.ledger = ledger
        self.retention_days = retention_days
        self.backup_directory = backup_directory
        self.max_backups = max_backups
        self.backup_interval_hours = backup_interval_hours

    async def run_usage_cleanup_once(self) -> int:
        """Delete usage rows older than the retention period a single time.

        Returns:
            int: Number of rows deleted (0 when cleanup failed)
        """
        try:
            deleted = await self.ledger.cleanup_old_usage(self.retention_days)
            logger.info(f"Usage cleanup complete: {deleted} rows older than {self.retention_days} days removed")
            return deleted
        except Exception as e:
            logger.error(f"Error cleaning up old usage data: {str(e)}", exc_info=True)
            return 0

    async def run_backup_once(self, now: Optional[datetime] = None) -> Optional[str]:
        """Write one rotating database backup.

        Returns:
            Optional[str]: Path of the new backup, or None if it failed
        """
        try:
            return await self.storage.backup(self.backup_directory, max_backups=self.max_backups, now=now)
        except Exception as e:
            logger.error(f"Error creating database backup: {str(e)}", exc_info=True)
            return None

    @tasks.loop(hours=DEFAULT_INTERVAL_HOURS)
    async def daily_usage_cleanup(self):
        await self.run_usage_cleanup_once()

    @daily_usage_cleanup.before_loop
    async def before_daily_usage_cleanup(self):
        if self.client:
            await self.client.wait_until_ready()

    @tasks.loop(hours=DEFAULT_INTERVAL_HOURS)
    async def database_backup(self):
        await self.run_backup_once()

    @database_backup.before_loop
    async def before_database_backup(self):
        if self.client:
            await self.client.wait_until_ready()

    def start(self):
        """Start both loops, applying the configured backup interval."""
        if self.backup_interval_hours != DEFAULT_INTERVAL_HOURS:
            self.database_backup.change_interval(hours=self.backup_interval_hours)

        if not self.daily_usage_cleanup.is_running():
            self.daily_usage_cleanup.start()
            logger.info("Started daily usage cleanup task")
        if not self.database_backup.is_running():
            self.database_backup.start()
            logger.info(f"Started database backup task (every {self.backup_interval_hours} hours)")

    def stop(self):
        for loop in (self.daily_usage_cleanup, self.database_backup):
            if loop.is_running():
                loop.cancel()

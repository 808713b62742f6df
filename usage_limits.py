"""
Per-guild daily usage quotas.

Each non-exempt summarize invocation counts against the user's quota for the
current UTC day. Members holding one of the guild's unlimited roles bypass the
quota entirely. The limit is checked before work starts and recorded
afterwards; concurrent invocations by the same user may therefore overshoot by
the number of requests in flight, which is accepted.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from database import StorageService
from datetime_utils import get_utc_now, utc_today
from error_handler import AdminCooldownError, ValidationError, safe_execute_async
from rate_limiter import ActionCooldown

logger = logging.getLogger('summary_bot.usage_limits')

DEFAULT_RETENTION_DAYS = 30


@dataclass
class GuildUsageSettings:
    """Snapshot shown by /admin show."""
    max_daily_uses: int
    unlimited_roles: List[str]
    usage: List[Dict[str, Any]] = field(default_factory=list)
    day: Optional[date] = None


class UsageLedger:
    """Reads and updates quotas, exemptions and usage counters."""

    def __init__(
        self,
        storage: StorageService,
        admin_cooldown: Optional[ActionCooldown] = None,
        audit_log: bool = True,
        clock: Callable[[], datetime] = get_utc_now,
    ):
        self.storage = storage
        self.admin_cooldown = admin_cooldown
        self.audit_log = audit_log
        self._clock = clock

    def today(self) -> date:
        return utc_today(self._clock())

    async def is_exempt(self, member_role_ids: Iterable, guild_id: str) -> bool:
        """True if any of the member's roles is one of the guild's unlimited roles."""
        role_ids = {str(role_id) for role_id in member_role_ids}
        if not role_ids:
            return False
        unlimited_roles = set(await self.storage.get_unlimited_roles(guild_id))
        return not role_ids.isdisjoint(unlimited_roles)

    async def has_reached_limit(self, user_id: str, guild_id: str, today: Optional[date] = None) -> bool:
        today = today or self.today()
        max_daily_uses = await self.storage.get_max_daily_uses(guild_id)
        uses = await self.storage.get_usage_count(user_id, guild_id, today)
        return uses >= max_daily_uses

    async def remaining_uses(self, user_id: str, guild_id: str, today: Optional[date] = None) -> int:
        today = today or self.today()
        max_daily_uses = await self.storage.get_max_daily_uses(guild_id)
        uses = await self.storage.get_usage_count(user_id, guild_id, today)
        return max(0, max_daily_uses - uses)

    async def record_use(self, user_id: str, guild_id: str, today: Optional[date] = None) -> None:
        today = today or self.today()
        await self.storage.increment_usage(user_id, guild_id, today)
        logger.debug(f"Recorded use for user {user_id} in guild {guild_id} on {today.isoformat()}")

    # ------------------------------------------------------------------
    # Admin mutations
    # ------------------------------------------------------------------

    def _check_admin_cooldown(self, admin_user_id: Optional[str]) -> None:
        if self.admin_cooldown is None or admin_user_id is None:
            return
        on_cooldown, wait_time = self.admin_cooldown.check(str(admin_user_id))
        if on_cooldown:
            logger.info(f"Admin {admin_user_id} on cooldown for another {wait_time:.1f}s")
            raise AdminCooldownError(wait_time)

    async def _audit(self, guild_id: str, admin_user_id: Optional[str], action: str, details: Dict[str, Any]) -> None:
        if not self.audit_log or admin_user_id is None:
            return
        # A failed audit write must never fail the admin action itself
        await safe_execute_async(
            self.storage.log_admin_action,
            guild_id,
            admin_user_id,
            action,
            details,
            self._clock(),
            context=f"Error logging admin action {action} in guild {guild_id}",
        )

    async def set_quota(self, guild_id: str, max_daily_uses: int, admin_user_id: Optional[str] = None) -> None:
        """
        Set the guild's daily limit.

        Raises:
            ValidationError: If the limit is not a positive integer
            AdminCooldownError: If the admin acted too recently
        """
        if isinstance(max_daily_uses, bool) or not isinstance(max_daily_uses, int) or max_daily_uses < 1:
            raise ValidationError(f"max_daily_uses must be a positive integer, got {max_daily_uses!r}")

        self._check_admin_cooldown(admin_user_id)
        await self.storage.set_max_daily_uses(guild_id, max_daily_uses)
        logger.info(f"Guild {guild_id} daily limit set to {max_daily_uses} by {admin_user_id}")
        await self._audit(guild_id, admin_user_id, "set_max_daily_uses", {"maxUses": max_daily_uses})

    async def add_exempt_role(self, guild_id: str, role_id: str, admin_user_id: Optional[str] = None) -> bool:
        """
        Returns:
            bool: True if the role was newly added
        """
        self._check_admin_cooldown(admin_user_id)
        added = await self.storage.add_unlimited_role(guild_id, role_id)
        logger.info(f"Guild {guild_id} unlimited role {role_id} added={added} by {admin_user_id}")
        await self._audit(guild_id, admin_user_id, "add_unlimited_role", {"roleId": str(role_id)})
        return added

    async def remove_exempt_role(self, guild_id: str, role_id: str, admin_user_id: Optional[str] = None) -> bool:
        """
        Returns:
            bool: True if the role was in the unlimited set
        """
        self._check_admin_cooldown(admin_user_id)
        removed = await self.storage.remove_unlimited_role(guild_id, role_id)
        logger.info(f"Guild {guild_id} unlimited role {role_id} removed={removed} by {admin_user_id}")
        await self._audit(guild_id, admin_user_id, "remove_unlimited_role", {"roleId": str(role_id)})
        return removed

    async def get_settings(self, guild_id: str, today: Optional[date] = None) -> GuildUsageSettings:
        today = today or self.today()
        return GuildUsageSettings(
            max_daily_uses=await self.storage.get_max_daily_uses(guild_id),
            unlimited_roles=await self.storage.get_unlimited_roles(guild_id),
            usage=await self.storage.get_guild_usage(guild_id, today),
            day=today,
        )

    async def cleanup_old_usage(self, retention_days: int = DEFAULT_RETENTION_DAYS) -> int:
        """Delete usage rows older than retention_days UTC calendar days."""
        cutoff = self.today() - timedelta(days=retention_days)
        return await self.storage.delete_usage_older_than(cutoff)

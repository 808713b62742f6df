import time
import threading
import logging
from typing import Callable, Dict, Tuple

logger = logging.getLogger('summary_bot.rate_limiter')

# Default cooldown configuration
DEFAULT_COOLDOWN_SECONDS = 5  # One admin action per user every 5 seconds
CLEANUP_INTERVAL = 3600  # Clean up old cooldown data every hour (in seconds)
MAX_USERS_TRACKED = 10000  # Maximum number of users to track before aggressive cleanup


class ActionCooldown:
    """
    Per-user cooldown between actions.

    A call to check() that is allowed also starts the user's next cooldown.
    """

    def __init__(self, cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._lock = threading.Lock()  # Lock for thread safety
        self._last_action: Dict[str, float] = {}
        self._last_cleanup = clock()

    def check(self, user_id: str) -> Tuple[bool, float]:
        """
        Check whether a user is still on cooldown.

        Args:
            user_id (str): The Discord user ID

        Returns:
            tuple: (is_on_cooldown, seconds_to_wait)
        """
        if self.cooldown_seconds <= 0:
            return False, 0

        user_id = str(user_id)
        current_time = self._clock()

        with self._lock:
            if len(self._last_action) > MAX_USERS_TRACKED:
                logger.warning(f"Cooldown tracker holding {len(self._last_action)} users, performing aggressive cleanup")
                self._cleanup(current_time, aggressive=True)
                self._last_cleanup = current_time
            elif current_time - self._last_cleanup > CLEANUP_INTERVAL:
                self._cleanup(current_time, aggressive=False)
                self._last_cleanup = current_time

            last = self._last_action.get(user_id)
            if last is not None:
                elapsed = current_time - last
                if elapsed < self.cooldown_seconds:
                    return True, self.cooldown_seconds - elapsed

            self._last_action[user_id] = current_time

        return False, 0

    def _cleanup(self, current_time: float, aggressive: bool = False) -> None:
        """
        Drop users whose cooldown expired long ago. Caller holds the lock.

        Args:
            current_time (float): The current clock value
            aggressive (bool): Whether to also trim the oldest entries down to half capacity
        """
        inactive_threshold = current_time - max(self.cooldown_seconds, 1800 if aggressive else 3600)

        inactive_users = [user_id for user_id, last in self._last_action.items()
                          if last < inactive_threshold]
        for user_id in inactive_users:
            del self._last_action[user_id]

        if aggressive and len(self._last_action) > MAX_USERS_TRACKED:
            sorted_users = sorted(self._last_action.items(), key=lambda item: item[1])
            users_to_remove = sorted_users[:len(self._last_action) - MAX_USERS_TRACKED // 2]
            for user_id, _ in users_to_remove:
                del self._last_action[user_id]
            logger.warning(f"Aggressive cleanup removed {len(users_to_remove)} additional users")

        if inactive_users:
            cleanup_type = "aggressive" if aggressive else "normal"
            logger.info(f"Cooldown {cleanup_type} cleanup: removed {len(inactive_users)} inactive users, tracking {len(self._last_action)} users")

"""
Shared pytest setup.

config.py refuses to import without credentials, so dummy values are put in
place before any test module imports it.
"""

import os

os.environ.setdefault("DISCORD_BOT_TOKEN", "test-token-" + "x" * 60)
os.environ.setdefault("LLM_API_KEY", "test-llm-api-key")

import pytest  # noqa: E402

from database import StorageService  # noqa: E402


@pytest.fixture
def storage(tmp_path):
    """A migrated StorageService backed by a temporary database file."""
    service = StorageService(db_file=str(tmp_path / "data" / "bot.db"), retry_delay=0)
    service.initialize()
    yield service
    service.close()

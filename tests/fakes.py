"""Small stand-ins for the Discord objects the summary pipeline touches."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, Mock

import discord

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
BOT_USER_ID = 999
OTHER_BOT_ID = 555
GUILD_ID = 111111111111
CHANNEL_ID = 222222222222


class FakeAuthor:
    def __init__(self, user_id, name, bot=False):
        self.id = user_id
        self.name = name
        self.display_name = name
        self.bot = bot


class FakeMessage:
    def __init__(self, message_id, author, content, created_at):
        self.id = message_id
        self.author = author
        self.content = content
        self.created_at = created_at


def make_http_exception(status=500, text="Internal Server Error", cls=discord.HTTPException):
    response = Mock(status=status, reason=text)
    return cls(response, text)


def make_messages(count, bot_every=None, other_bot_every=None, start=BASE_TIME, step=timedelta(minutes=1)):
    """Build ``count`` messages, oldest first, one per ``step``."""
    alice = FakeAuthor(1, "alice")
    bob = FakeAuthor(2, "bob")
    bot = FakeAuthor(BOT_USER_ID, "summary-bot", bot=True)
    other_bot = FakeAuthor(OTHER_BOT_ID, "other-bot", bot=True)

    messages = []
    for i in range(count):
        if bot_every and i % bot_every == bot_every - 1:
            author = bot
        elif other_bot_every and i % other_bot_every == other_bot_every - 1:
            author = other_bot
        else:
            author = alice if i % 2 == 0 else bob
        messages.append(FakeMessage(1000 + i, author, f"message {i}", start + step * i))
    return messages


class FakeChannel:
    """Channel whose history() behaves like Discord's: newest first, ``before`` exclusive."""

    def __init__(self, messages, channel_id=CHANNEL_ID, fail_on_call=None, error=None):
        self.id = channel_id
        self.messages = sorted(messages, key=lambda m: m.id)
        self.history_calls = []
        self.fail_on_call = fail_on_call
        self.error = error or make_http_exception()
        self.create_thread = AsyncMock()

    def history(self, limit=100, before=None):
        return self._history(limit, before)

    async def _history(self, limit, before):
        self.history_calls.append((limit, before.id if before is not None else None))
        if self.fail_on_call is not None and len(self.history_calls) >= self.fail_on_call:
            raise self.error

        newest_first = [m for m in reversed(self.messages) if before is None or m.id < before.id]
        for message in newest_first[:limit]:
            yield message


class FakeThread:
    def __init__(self, thread_id=333333333333):
        self.id = thread_id
        self.mention = f"<#{thread_id}>"
        self.sent = []
        self.send = AsyncMock(side_effect=self._record)

    async def _record(self, content, **kwargs):
        self.sent.append(content)


def make_guild(guild_id=GUILD_ID, roles=None):
    guild = MagicMock()
    guild.id = guild_id
    roles = roles or {}
    guild.get_role = Mock(side_effect=lambda role_id: roles.get(role_id))
    return guild


def make_interaction(user_id=1, guild=None, locale="en-US", role_ids=()):
    """Interaction mock whose response tracks whether it has been answered."""
    interaction = MagicMock()
    interaction.user.id = user_id
    interaction.user.roles = [Mock(id=role_id) for role_id in role_ids]
    interaction.guild = guild
    interaction.locale = locale

    state = {"done": False}

    async def _answer(*args, **kwargs):
        state["done"] = True

    interaction.response.is_done = Mock(side_effect=lambda: state["done"])
    interaction.response.defer = AsyncMock(side_effect=_answer)
    interaction.response.send_message = AsyncMock(side_effect=_answer)
    interaction.followup.send = AsyncMock()
    interaction.edit_original_response = AsyncMock()
    return interaction

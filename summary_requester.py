"""
Summary generation through an OpenAI-compatible chat completion API.

Builds the locale-specific prompt from fetched messages, calls the completion
service with a bounded timeout and fixed-backoff retries, and splits the
answer into Discord-sized chunks without breaking bullet points apart.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import timezone
from typing import Dict, List, Optional, Sequence, Union

import openai
from openai import AsyncOpenAI

from error_handler import CompletionError, ValidationError
from locales import Language, normalize_language
from message_fetcher import FetchedMessage

logger = logging.getLogger('summary_bot.requester')

DISCORD_MESSAGE_LINK = "https://discord.com/channels/{guild_id}/{channel_id}/{{message_id}}"

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_SECONDS = 1.0
DEFAULT_MAX_CHUNK_LENGTH = 1000

SECTION_SEPARATOR = "\n\n"

_ENGLISH_SYSTEM_PROMPT = """You are a helpful assistant that summarizes Discord conversations in English.
Create a clear, structured summary using Markdown list syntax, where each point represents a distinct topic or interaction.

IMPORTANT: NEVER mention users or roles in the summary. Instead, use general descriptions.

Format requirements:
1. Start each point with "- " (hyphen followed by space)
2. Place each point on a new line
3. Add an empty line between points
4. For each point, include a link to the most relevant message using the format: {link}
5. Use this exact format:

- First point here {link}

- Second point here {link}

- Third point here {link}

Example points:
- Started a discussion about [topic], sharing [specific detail] {link}

- Exchanged experiences about [topic], focusing on [specific aspect] {link}

- In response to a question about [topic], it was explained that [explanation] {link}

- Shared a link to [resource] regarding [topic] {link}

Make each point focused and concise, capturing one clear thought or interaction.
Keep the tone conversational but informative.
Always write in English.
Always maintain proper spacing between points.
Always include a message link for each point.
NEVER mention users or roles in the summary."""

_POLISH_SYSTEM_PROMPT = """Jesteś pomocnym asystentem, który podsumowuje konwersacje z Discorda w języku polskim.
Stwórz przejrzyste, uporządkowane podsumowanie używając składni listy Markdown, gdzie każdy punkt reprezentuje odrębny temat lub interakcję.

WAŻNE: NIGDY nie wymieniaj użytkowników ani ról w podsumowaniu. Zamiast tego używaj ogólnych opisów.

Wymagania formatowania:
1. Rozpocznij każdy punkt od "- " (myślnik i spacja)
2. Umieść każdy punkt w nowej linii
3. Dodaj pustą linię między punktami
4. Dla każdego punktu dodaj link do najbardziej odpowiedniej wiadomości używając formatu: {link}
5. Użyj dokładnie tego formatu:

- Pierwszy punkt tutaj {link}

- Drugi punkt tutaj {link}

- Trzeci punkt tutaj {link}

Przykładowe punkty:
- Rozpoczęto dyskusję na temat [temat], dzieląc się [szczegół] {link}

- Wymieniono się doświadczeniami odnośnie [temat], skupiając się na [aspekt] {link}

- W odpowiedzi na pytanie o [temat], wyjaśniono że [wyjaśnienie] {link}

- Udostępniono link do [zasób] dotyczący [temat] {link}

Każdy punkt powinien być zwięzły i skupiony na jednej myśli lub interakcji.
Zachowaj konwersacyjny, ale informacyjny ton.
Zawsze pisz w języku polskim.
Zawsze zachowuj odpowiednie odstępy między punktami.
Zawsze dołączaj link do wiadomości dla każdego punktu.
NIGDY nie wymieniaj użytkowników ani ról w podsumowaniu."""

SYSTEM_PROMPTS: Dict[Language, str] = {
    Language.ENGLISH: _ENGLISH_SYSTEM_PROMPT,
    Language.POLISH: _POLISH_SYSTEM_PROMPT,
}

USER_PROMPT_INTROS: Dict[Language, str] = {
    Language.ENGLISH: (
        "Please summarize this Discord conversation with proper line spacing between points "
        "and message links. Here are the messages in chronological order:"
    ),
    Language.POLISH: (
        "Podsumuj tę konwersację z Discorda, zachowując odstępy między punktami "
        "i linki do wiadomości. Oto wiadomości w kolejności chronologicznej:"
    ),
}


@dataclass(frozen=True)
class SummaryPrompt:
    system_prompt: str
    user_prompt: str

    def as_messages(self) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": self.user_prompt},
        ]


def validate_ids(guild_id: Union[str, int, None], channel_id: Union[str, int, None]) -> None:
    """
    Make sure both IDs are usable Discord snowflakes.

    Raises:
        ValidationError: If either ID is missing or not numeric
    """
    for name, value in (("guild_id", guild_id), ("channel_id", channel_id)):
        if isinstance(value, bool) or value is None:
            raise ValidationError(f"Missing required {name}")
        text = str(value).strip()
        if not text or not text.isdigit():
            raise ValidationError(f"Invalid {name}: {value!r}")


def format_message_line(message: FetchedMessage) -> str:
    """Render one message as ``[HH:MM:SS] author: content (ID: id)``."""
    time_str = message.created_at.astimezone(timezone.utc).strftime('%H:%M:%S')
    return f"[{time_str}] {message.author_display_name}: {message.content} (ID: {message.id})"


def build_prompt(
    messages: Sequence[FetchedMessage],
    locale: Optional[str],
    guild_id: Union[str, int],
    channel_id: Union[str, int],
) -> SummaryPrompt:
    """
    Build the system and user prompts for a summary.

    Args:
        messages: Messages in chronological order
        locale: Language tag; unsupported tags use English
        guild_id: Guild of the summarized channel
        channel_id: Summarized channel

    Returns:
        SummaryPrompt: The prompt pair
    """
    validate_ids(guild_id, channel_id)
    language = normalize_language(locale)
    link = DISCORD_MESSAGE_LINK.format(guild_id=str(guild_id).strip(), channel_id=str(channel_id).strip())

    system_prompt = SYSTEM_PROMPTS[language].format(link=link)
    lines = "\n".join(format_message_line(message) for message in messages)
    user_prompt = f"{USER_PROMPT_INTROS[language]}\n\n{lines}"

    return SummaryPrompt(system_prompt=system_prompt, user_prompt=user_prompt)


def normalize_summary(raw_text: str) -> str:
    """Put every bullet in its own paragraph and collapse runs of blank lines."""
    text = re.sub(r'^-', '\n-', raw_text or "", flags=re.MULTILINE).strip()
    return re.sub(r'\n\n\n+', '\n\n', text)


def split_into_chunks(text: str, max_chunk_length: int = DEFAULT_MAX_CHUNK_LENGTH) -> List[str]:
    """
    Pack blank-line separated sections greedily into chunks.

    A chunk never exceeds max_chunk_length unless it consists of a single
    section that is longer than the limit on its own; such a section is
    emitted whole rather than truncated.

    Args:
        text (str): Normalized summary text
        max_chunk_length (int): Maximum characters per chunk

    Returns:
        List[str]: Chunks in original order
    """
    chunks: List[str] = []
    current = ""

    for section in text.split(SECTION_SEPARATOR):
        section = section.strip()
        if not section:
            continue

        if not current:
            current = section
        elif len(current) + len(SECTION_SEPARATOR) + len(section) > max_chunk_length:
            chunks.append(current)
            current = section
        else:
            current = f"{current}{SECTION_SEPARATOR}{section}"

    if current:
        chunks.append(current)

    return chunks


def normalize_and_chunk(raw_text: str, max_chunk_length: int = DEFAULT_MAX_CHUNK_LENGTH) -> List[str]:
    return split_into_chunks(normalize_summary(raw_text), max_chunk_length)


def _is_retryable(error: Exception) -> bool:
    # APITimeoutError subclasses APIConnectionError, so test it first
    if isinstance(error, (openai.APITimeoutError, asyncio.TimeoutError)):
        return True
    if isinstance(error, openai.APIStatusError):
        return error.status_code >= 500
    return False


def get_headers() -> Dict[str, str]:
    """Headers OpenRouter uses to attribute requests."""
    return {
        "HTTP-Referer": "https://discord.com",
        "X-Title": "Discord Summary Bot",
    }


def create_client(api_key: str, base_url: str, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> AsyncOpenAI:
    """
    Create the completion client.

    SDK-level retries are disabled; SummaryRequester applies its own policy.
    """
    client = AsyncOpenAI(
        base_url=base_url,
        api_key=api_key,
        timeout=timeout,
        max_retries=0,
    )
    logger.debug(f"OpenAI client created for {base_url}")
    return client


class SummaryRequester:
    """Turns fetched messages into summary chunks."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS,
        max_chunk_length: int = DEFAULT_MAX_CHUNK_LENGTH,
    ):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.retry_delay = retry_delay
        self.max_chunk_length = max_chunk_length

    async def request_completion(self, system_prompt: str, user_prompt: str) -> str:
        """
        Call the completion service.

        Timeouts and 5xx responses are retried up to max_retries times with a
        fixed delay; any other failure is raised immediately.

        Returns:
            str: The raw completion text

        Raises:
            CompletionError: On a non-retryable failure, an empty answer or exhausted retries
        """
        messages = SummaryPrompt(system_prompt, user_prompt).as_messages()
        attempts = 0

        while True:
            attempts += 1
            try:
                completion = await self.client.chat.completions.create(
                    extra_headers=get_headers(),
                    model=self.model,
                    messages=messages,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                    timeout=self.timeout,
                )
            except Exception as e:
                if not _is_retryable(e):
                    logger.error(f"Completion request failed with a non-retryable error: {e}", exc_info=True)
                    raise CompletionError("Completion request failed", cause=e, attempts=attempts) from e
                if attempts > self.max_retries:
                    logger.error(f"Completion request failed after {attempts} attempts: {e}")
                    raise CompletionError(
                        f"Completion request failed after {attempts} attempts", cause=e, attempts=attempts
                    ) from e
                logger.warning(f"Retrying completion request ({attempts}/{self.max_retries}) after: {e}")
                await asyncio.sleep(self.retry_delay)
                continue

            content = completion.choices[0].message.content if completion.choices else None
            if not content or not content.strip():
                raise CompletionError("Completion service returned an empty answer", attempts=attempts)

            logger.info(f"Completion received after {attempts} attempt(s): "
                        f"{content[:50]}{'...' if len(content) > 50 else ''}")
            return content

    async def generate_summary(
        self,
        messages: Sequence[FetchedMessage],
        guild_id: Union[str, int],
        channel_id: Union[str, int],
        locale: Optional[str] = None,
    ) -> List[str]:
        """
        Summarize messages into Discord-sized chunks.

        Raises:
            ValidationError: If guild_id or channel_id is missing or malformed (before any request)
            CompletionError: If the completion service fails
        """
        prompt = build_prompt(messages, locale, guild_id, channel_id)
        logger.info(f"Generating summary of {len(messages)} messages for channel {channel_id} "
                    f"in guild {guild_id} ({normalize_language(locale).value})")

        raw_text = await self.request_completion(prompt.system_prompt, prompt.user_prompt)
        chunks = normalize_and_chunk(raw_text, self.max_chunk_length)
        if not chunks:
            raise CompletionError("Completion produced no summary text")
        return chunks

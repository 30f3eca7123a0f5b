import logging

from studytree.clients import CompletionClient
from studytree.errors import AIResponseError, ServiceError
from studytree.services.text import TRUNCATED_MARKER, is_usable_response, truncate

logger = logging.getLogger(__name__)

MAX_INPUT_CHARS = 8000
MAX_TOKENS = 3000


class TranscriptFormatter:
    """Reflow a raw transcript into readable paragraphs.

    Formatting is cosmetic: any failure returns the raw transcript unchanged.
    """

    def __init__(self, client: CompletionClient | None = None) -> None:
        self.client = client or CompletionClient()

    async def format(self, raw_transcript: str) -> str:
        if len(raw_transcript) > MAX_INPUT_CHARS:
            logger.warning(
                "Transcript too long (%d chars), truncating to %d for formatting",
                len(raw_transcript),
                MAX_INPUT_CHARS,
            )
        excerpt = truncate(raw_transcript, MAX_INPUT_CHARS, TRUNCATED_MARKER)

        messages = [
            {
                "role": "user",
                "content": (
                    "Format this raw transcript by adding paragraph breaks for "
                    f"readability. Do not change any words:\n\n{excerpt}"
                ),
            }
        ]
        try:
            formatted = await self.client.complete(messages, MAX_TOKENS)
            if not is_usable_response(formatted):
                raise AIResponseError("formatted transcript is empty or too short")
        except AIResponseError as exc:
            logger.warning("Using raw transcript: %s", exc)
            return raw_transcript
        except ServiceError as exc:
            logger.error("Transcript formatting failed: %s", exc)
            return raw_transcript
        return formatted

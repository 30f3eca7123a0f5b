import logging

from studytree.clients import CompletionClient
from studytree.errors import AIResponseError, ServiceError
from studytree.services.text import (
    CONTINUES_MARKER,
    is_usable_response,
    split_sentences,
    truncate,
)

logger = logging.getLogger(__name__)

MAX_INPUT_CHARS = 6000
MAX_TOKENS = 1500
FALLBACK_SENTENCES = 5
# Used when the transcript has no terminated sentence at all.
FALLBACK_RAW_CHARS = 500


def fallback_summary(transcript: str) -> str:
    """Extractive summary built from the first few sentences of *transcript*.

    Pure string manipulation; never raises and never returns an empty string.
    """
    sentences = [s.strip() for s in split_sentences(transcript)]
    sentences = [s for s in sentences if s][:FALLBACK_SENTENCES]
    if not sentences and transcript.strip():
        sentences = [transcript.strip()[:FALLBACK_RAW_CHARS]]
    first_few = " ".join(sentences)
    return (
        "## Summary\n\n"
        "This lecture covers the following topics:\n\n"
        f"{first_few}\n\n"
        "*Note: Full AI summary unavailable. "
        "Please refer to the transcript for complete details.*"
    )


class Summarizer:
    """Produce a markdown summary (headings and bullets) of a transcript."""

    def __init__(self, client: CompletionClient | None = None) -> None:
        self.client = client or CompletionClient()

    async def summarize(self, transcript: str) -> str:
        if len(transcript) > MAX_INPUT_CHARS:
            logger.warning(
                "Transcript too long for summary (%d chars), using first %d",
                len(transcript),
                MAX_INPUT_CHARS,
            )
        excerpt = truncate(transcript, MAX_INPUT_CHARS, CONTINUES_MARKER)

        messages = [
            {
                "role": "user",
                "content": (
                    "Create a comprehensive summary of this transcript. Use markdown "
                    f"headings (##) and bullet points (-):\n\n{excerpt}"
                ),
            }
        ]
        try:
            summary = await self.client.complete(messages, MAX_TOKENS)
            if not is_usable_response(summary):
                raise AIResponseError("summary is empty or too short")
        except AIResponseError as exc:
            logger.warning("AI returned invalid summary, generating fallback: %s", exc)
            return fallback_summary(transcript[:MAX_INPUT_CHARS])
        except ServiceError as exc:
            logger.error("Summary generation failed: %s", exc)
            return fallback_summary(transcript[:MAX_INPUT_CHARS])

        logger.info("Summary generated successfully")
        return summary

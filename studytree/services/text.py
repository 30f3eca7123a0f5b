"""Small text helpers shared by the formatter, summarizer, quiz and slide code."""

import re

import markdown

# A sentence is a run of non-terminators followed by one or more terminators.
_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]+")
_JUNK_RE = re.compile(r"^[;:.\-_\s]+$")

MIN_RESPONSE_CHARS = 50

TRUNCATED_MARKER = "\n\n[... transcript truncated ...]"
CONTINUES_MARKER = "\n\n[... content continues ...]"


def split_sentences(text: str) -> list[str]:
    """Split *text* on ``.``, ``!`` and ``?`` boundaries.

    Trailing text with no terminator is dropped.
    """
    return _SENTENCE_RE.findall(text)


def truncate(text: str, limit: int, marker: str) -> str:
    """Return *text* cut to *limit* characters with *marker* appended if cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + marker


def is_usable_response(text: str | None) -> bool:
    """Reject empty, too-short or punctuation-only completions."""
    if not text or len(text.strip()) < MIN_RESPONSE_CHARS:
        return False
    return _JUNK_RE.match(text) is None


def render_markdown(text: str) -> str:
    """Render markdown to an HTML fragment."""
    return markdown.markdown(text, extensions=["extra", "sane_lists"])

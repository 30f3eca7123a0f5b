import json
import logging
import random

from studytree.clients import CompletionClient
from studytree.errors import AIResponseError, ServiceError
from studytree.models import QuizItem
from studytree.services.text import CONTINUES_MARKER, truncate

logger = logging.getLogger(__name__)

MAX_INPUT_CHARS = 4000
MAX_TOKENS = 1500
MAX_ATTEMPTS = 3
MAX_QUESTIONS = 5
OPTION_COUNT = 4
DEFAULT_EXPLANATION = "Refer to the lecture for details."

QUIZ_PROMPT = """Based on this transcript, create 5 multiple-choice questions to test understanding.

**RULES:**
1. Focus on key concepts and main ideas
2. Each question must have exactly 4 options
3. correctAnswer must be a number (0, 1, 2, or 3)
4. Provide a brief explanation

Return ONLY a valid JSON array:
[{{"question": "...", "options": ["A", "B", "C", "D"], "correctAnswer": 0, "explanation": "..."}}]

Transcript: {transcript}"""

REPAIR_PROMPT = "Fix this JSON and return ONLY the corrected array:\n\n{previous}"


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def _extract_json_span(response: str) -> str:
    """Return the text between the first ``{`` and the last ``}``, as an array."""
    start = response.find("{")
    end = response.rfind("}")
    if start == -1 or end == -1 or end < start:
        raise AIResponseError("No JSON found")
    span = response[start : end + 1].strip()
    if not span.startswith("["):
        span = f"[{span}]"
    return span


def _coerce_index(value) -> int:
    """Turn an AI-supplied ``correctAnswer`` into a valid option index (default 0)."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            return 0
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, int) and 0 <= value < OPTION_COUNT:
        return value
    return 0


def parse_quiz_response(response: str) -> list[QuizItem]:
    """Validate a raw completion into at most five :class:`QuizItem` objects.

    Raises :class:`AIResponseError` when nothing usable can be recovered.
    """
    span = _extract_json_span(response)
    try:
        data = json.loads(span)
    except ValueError as exc:  # JSONDecodeError, or an over-long integer literal
        raise AIResponseError(f"Invalid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise AIResponseError("Quiz payload is not an array")

    items: list[QuizItem] = []
    for raw in data:
        if not isinstance(raw, dict):
            continue
        question = raw.get("question")
        options = raw.get("options")
        if not question or not isinstance(options, list):
            continue
        if len(options) != OPTION_COUNT:
            continue
        items.append(
            QuizItem(
                question=str(question),
                options=[str(o) for o in options],
                correct_answer=_coerce_index(raw.get("correctAnswer")),
                explanation=str(raw.get("explanation") or DEFAULT_EXPLANATION),
            )
        )

    items = items[:MAX_QUESTIONS]
    if not items:
        raise AIResponseError("No valid quizzes")
    return items


def shuffle_options(item: QuizItem, rng: random.Random) -> QuizItem:
    """Return *item* with its options permuted and the answer index relocated.

    The correct option travels through the shuffle as text, and its new index
    is looked up afterwards.
    """
    correct_text = item.options[item.correct_answer]
    options = list(item.options)
    rng.shuffle(options)
    return QuizItem(
        question=item.question,
        options=options,
        correct_answer=options.index(correct_text),
        explanation=item.explanation,
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class QuizGenerator:
    """Generate a validated multiple-choice quiz with a bounded repair loop."""

    def __init__(
        self,
        client: CompletionClient | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.client = client or CompletionClient()
        self.rng = rng or random.Random()

    async def generate(self, transcript: str) -> list[QuizItem]:
        """Return up to five quiz items, or ``[]`` after three failed attempts."""
        if len(transcript) > MAX_INPUT_CHARS:
            logger.warning(
                "Transcript too long for quiz (%d chars), using first %d",
                len(transcript),
                MAX_INPUT_CHARS,
            )
        excerpt = truncate(transcript, MAX_INPUT_CHARS, CONTINUES_MARKER)

        last_response = ""
        for attempt in range(MAX_ATTEMPTS):
            # nothing to repair after a service error on the first call
            if not last_response:
                prompt = QUIZ_PROMPT.format(transcript=excerpt)
            else:
                prompt = REPAIR_PROMPT.format(previous=last_response)
            try:
                response = await self.client.complete(
                    [{"role": "user", "content": prompt}], MAX_TOKENS
                )
                last_response = response
                items = parse_quiz_response(response)
            except (AIResponseError, ServiceError) as exc:
                logger.warning("Quiz attempt %d failed: %s", attempt + 1, exc)
                continue

            quiz = [shuffle_options(item, self.rng) for item in items]
            logger.info("Generated %d valid quizzes", len(quiz))
            return quiz

        logger.error("All quiz attempts failed")
        return []

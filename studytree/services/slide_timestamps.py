"""Choose the timestamps at which slide images are captured.

Three strategies are tried in order, each cheaper in quality than the last:

1. :class:`AISemanticStrategy` asks the completion service where topics change.
2. :class:`RuleBasedStrategy` looks for spoken transition cues ("now", "next",
   "in conclusion", ...) and interpolates their position in the video.
3. :class:`PeriodicStrategy` spaces slides evenly and cannot fail.

The first strategy whose result has at least ``MIN_SLIDES`` timestamps wins;
results are never merged across strategies.
"""

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Protocol

from studytree.clients import CompletionClient
from studytree.errors import AIResponseError, ServiceError
from studytree.services.text import split_sentences

logger = logging.getLogger(__name__)

MIN_SLIDES = 4


@dataclass(frozen=True)
class SlideContext:
    raw_transcript: str
    transcript: str  # formatted transcript
    duration: float


class SlideStrategy(Protocol):
    name: str

    async def propose(self, ctx: SlideContext) -> list[int]: ...


def _fmt(timestamps: list[int]) -> str:
    return ", ".join(f"{t}s" for t in timestamps)


# ---------------------------------------------------------------------------
# Strategy A: AI semantic
# ---------------------------------------------------------------------------

AI_PROMPT = """Analyze this lecture transcript and identify 8-12 key moments where a new slide or topic begins.

For each transition point, estimate its position as a percentage (0-100) of the lecture.

Return ONLY a JSON array of percentages (numbers between 0 and 100).

Example: [0, 15, 28, 42, 58, 67, 81, 95]

Transcript:
{transcript}"""


def _as_percentage(value) -> float | None:
    # json.loads accepts NaN, Infinity, 1e999 and arbitrarily long integers
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        p = float(value)
    except OverflowError:
        return None
    return p if math.isfinite(p) else None


def parse_percentages(response: str) -> list[float]:
    """Pull the JSON array of numbers out of a completion."""
    start = response.find("[")
    end = response.rfind("]")
    if start == -1 or end == -1 or end < start:
        raise AIResponseError("No array found")
    try:
        data = json.loads(response[start : end + 1])
    except ValueError as exc:  # JSONDecodeError, or an over-long integer literal
        raise AIResponseError(f"Invalid JSON array: {exc}") from exc
    if not isinstance(data, list):
        raise AIResponseError("Not an array")
    percentages = (_as_percentage(p) for p in data)
    return [p for p in percentages if p is not None]


def percentages_to_timestamps(
    percentages: list[float], duration: float, min_gap: int
) -> list[int]:
    """Map percentages onto the video and drop points closer than *min_gap*.

    The earlier point of any close pair is kept (single greedy forward pass).
    """
    timestamps = sorted(
        t
        for t in (math.floor(p * duration / 100) for p in percentages)
        if 0 <= t <= duration
    )
    if not timestamps or timestamps[0] != 0:
        timestamps.insert(0, 0)

    merged = [timestamps[0]]
    for t in timestamps[1:]:
        if t - merged[-1] >= min_gap:
            merged.append(t)
    return merged


class AISemanticStrategy:
    name = "ai"

    MAX_TRANSCRIPT_CHARS = 5000
    MAX_TOKENS = 500
    MIN_GAP = 15

    def __init__(self, client: CompletionClient | None = None) -> None:
        self.client = client or CompletionClient()

    async def propose(self, ctx: SlideContext) -> list[int]:
        prompt = AI_PROMPT.format(
            transcript=ctx.raw_transcript[: self.MAX_TRANSCRIPT_CHARS]
        )
        response = await self.client.complete(
            [{"role": "user", "content": prompt}], self.MAX_TOKENS
        )
        timestamps = percentages_to_timestamps(
            parse_percentages(response), ctx.duration, self.MIN_GAP
        )
        logger.info("AI identified %d slide positions: %s", len(timestamps), _fmt(timestamps))
        return timestamps


# ---------------------------------------------------------------------------
# Strategy B: lexical cues
# ---------------------------------------------------------------------------

TRANSITION_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^now\b",
        r"^next\b",
        r"^so\b",
        r"^let'?s\b",
        r"^first\b",
        r"^second\b",
        r"^however\b",
        r"^but\b",
        r"^finally\b",
        r"^in conclusion\b",
        r"\bwhat is\b",
        r"\bhow does\b",
        r"\bwhy\b",
        r"\bthe main\b",
    )
]


def is_transition(sentence: str) -> bool:
    text = sentence.strip()
    return any(p.search(text) for p in TRANSITION_PATTERNS)


class RuleBasedStrategy:
    name = "rule_based"

    MIN_GAP = 20
    MIN_TRANSITIONS = 5
    # Backfill divides the video into this many equal intervals.
    BACKFILL_INTERVALS = 7

    async def propose(self, ctx: SlideContext) -> list[int]:
        return self.detect(ctx.transcript, ctx.duration)

    def detect(self, transcript: str, duration: float) -> list[int]:
        sentences = split_sentences(transcript)
        if not sentences:
            logger.warning("No sentences found in transcript")
            return []

        timestamps = [0]
        last_position = 0.0
        total = len(sentences)
        for index, sentence in enumerate(sentences):
            position = index / total * duration
            if position - last_position < self.MIN_GAP:
                continue
            if is_transition(sentence):
                timestamps.append(math.floor(position))
                last_position = position

        if len(timestamps) < self.MIN_TRANSITIONS:
            logger.warning("Found too few transitions, adding periodic samples")
            for k in range(1, self.BACKFILL_INTERVALS):
                t = math.floor(duration * k / self.BACKFILL_INTERVALS)
                if t not in timestamps:
                    timestamps.append(t)
            timestamps.sort()

        logger.info(
            "Rule-based detection found %d slides: %s", len(timestamps), _fmt(timestamps)
        )
        return timestamps


# ---------------------------------------------------------------------------
# Strategy C: periodic
# ---------------------------------------------------------------------------


class PeriodicStrategy:
    name = "periodic"

    MIN_COUNT = 6
    MAX_COUNT = 10
    SECONDS_PER_SLIDE = 40

    async def propose(self, ctx: SlideContext) -> list[int]:
        return self.detect(ctx.duration)

    def slide_count(self, duration: float) -> int:
        return min(
            self.MAX_COUNT,
            max(self.MIN_COUNT, math.floor(duration / self.SECONDS_PER_SLIDE)),
        )

    def detect(self, duration: float) -> list[int]:
        count = self.slide_count(duration)
        return [math.floor(duration * i / (count - 1)) for i in range(count)]


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------


@dataclass
class SlideDetection:
    timestamps: list[int]
    strategy: str


class SlideTimestampDetector:
    """Run the strategies in order and keep the first acceptable result."""

    def __init__(
        self,
        client: CompletionClient | None = None,
        strategies: list[SlideStrategy] | None = None,
    ) -> None:
        if strategies is None:
            strategies = [
                AISemanticStrategy(client),
                RuleBasedStrategy(),
                PeriodicStrategy(),
            ]
        self.strategies = strategies

    async def detect(
        self, raw_transcript: str, transcript: str, duration: float
    ) -> SlideDetection:
        if duration <= 0:
            logger.warning("Video duration is %s, capturing a single frame", duration)
            return SlideDetection(timestamps=[0], strategy="none")

        ctx = SlideContext(
            raw_transcript=raw_transcript, transcript=transcript, duration=duration
        )
        for strategy in self.strategies:
            logger.info("Trying %s slide detection", strategy.name)
            try:
                timestamps = await strategy.propose(ctx)
            except (AIResponseError, ServiceError) as exc:
                logger.warning("%s slide detection failed: %s", strategy.name, exc)
                continue
            if len(timestamps) >= MIN_SLIDES:
                logger.info("Using %s timestamps", strategy.name)
                return SlideDetection(timestamps=timestamps, strategy=strategy.name)
            logger.warning(
                "%s slide detection returned too few slides (%d)",
                strategy.name,
                len(timestamps),
            )

        # Only reachable with a custom strategy list lacking a periodic fallback.
        fallback = PeriodicStrategy()
        return SlideDetection(timestamps=fallback.detect(duration), strategy=fallback.name)

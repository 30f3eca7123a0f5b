from dataclasses import dataclass, field
from enum import Enum


class LectureSource(str, Enum):
    FILE = "file"
    YOUTUBE = "youtube"


class Stage(str, Enum):
    UPLOADED = "uploaded"
    DOWNLOADING = "downloading"
    EXTRACTING_AUDIO = "extracting_audio"
    TRANSCRIBING = "transcribing"
    SUMMARIZING = "summarizing"
    EXTRACTING_SLIDES = "extracting_slides"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (Stage.COMPLETE, Stage.FAILED)


# Forward order of the non-failure stages. ``failed`` sits outside the order.
STAGE_ORDER: list[Stage] = [
    Stage.UPLOADED,
    Stage.DOWNLOADING,
    Stage.EXTRACTING_AUDIO,
    Stage.TRANSCRIBING,
    Stage.SUMMARIZING,
    Stage.EXTRACTING_SLIDES,
    Stage.COMPLETE,
]


def can_transition(current: Stage, target: Stage) -> bool:
    """Return True when *target* is a legal next stage for *current*.

    Stages only move forward (skipping is allowed, e.g. file uploads never
    pass through ``downloading``); ``failed`` is reachable from any
    non-terminal stage and nothing leaves a terminal stage.
    """
    if current.is_terminal:
        return False
    if target is Stage.FAILED:
        return True
    return STAGE_ORDER.index(target) > STAGE_ORDER.index(current)


@dataclass
class QuizItem:
    question: str
    options: list[str]
    correct_answer: int
    explanation: str

    def to_dict(self) -> dict:
        return {
            "question": self.question,
            "options": list(self.options),
            "correctAnswer": self.correct_answer,
            "explanation": self.explanation,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "QuizItem":
        return cls(
            question=data["question"],
            options=list(data["options"]),
            correct_answer=int(data["correctAnswer"]),
            explanation=data.get("explanation", ""),
        )


@dataclass
class Slide:
    timestamp: int  # whole seconds from the start of the video
    image: str  # web path under /uploads

    def to_dict(self) -> dict:
        return {"timestamp": self.timestamp, "image": self.image}

    @classmethod
    def from_dict(cls, data: dict) -> "Slide":
        return cls(timestamp=int(data["timestamp"]), image=data["image"])


@dataclass
class Lecture:
    id: str
    title: str
    source: LectureSource = LectureSource.FILE
    video_path: str | None = None
    source_url: str | None = None
    duration: float | None = None
    transcript_raw: str | None = None
    transcript_md: str | None = None
    transcript_html: str | None = None
    summary_md: str | None = None
    summary_html: str | None = None
    quizzes: list[QuizItem] = field(default_factory=list)
    slides: list[Slide] = field(default_factory=list)
    stage: Stage = Stage.UPLOADED
    error: str | None = None
    created_at: str = ""

    def to_dict(self) -> dict:
        """Client-facing representation (camelCase keys)."""
        return {
            "id": self.id,
            "title": self.title,
            "source": self.source.value,
            "videoPath": self.video_path,
            "youtubeUrl": self.source_url,
            "duration": self.duration,
            "transcriptMd": self.transcript_md,
            "transcriptHtml": self.transcript_html,
            "summaryMd": self.summary_md,
            "summaryHtml": self.summary_html,
            "quizzes": [q.to_dict() for q in self.quizzes],
            "slides": [s.to_dict() for s in self.slides],
            "processingStage": self.stage.value,
            "processingError": self.error,
            "uploadDate": self.created_at,
        }

    def status(self) -> dict:
        return {
            "isComplete": self.stage is Stage.COMPLETE,
            "stage": self.stage.value,
            "error": self.error,
            "hasTranscript": bool(self.transcript_md),
            "hasSummary": bool(self.summary_md),
            "hasQuizzes": bool(self.quizzes),
            "hasSlides": bool(self.slides),
        }

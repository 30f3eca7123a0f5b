"""Lecture processing pipeline.

Each lecture runs as one asyncio task::

    uploaded -> [downloading] -> extracting_audio -> transcribing
             -> summarizing -> extracting_slides -> complete

Any exception moves the lecture to ``failed`` with the message stored in
``error``.  Partial results already written stay in place and nothing is
retried.  Intermediate media is deleted only after a successful run.
"""

import asyncio
import logging
from pathlib import Path

from studytree.clients import CompletionClient, check_configuration
from studytree.config import settings
from studytree.errors import InvalidStageTransition
from studytree.media import MediaFetcher, Transcoder
from studytree.models import LectureSource, Stage, can_transition
from studytree.services.formatting import TranscriptFormatter
from studytree.services.frames import FrameExtractor
from studytree.services.quiz import QuizGenerator
from studytree.services.slide_timestamps import SlideTimestampDetector
from studytree.services.storage import StorageService
from studytree.services.summary import Summarizer
from studytree.services.text import render_markdown
from studytree.services.transcription import WhisperService
from studytree.store import LectureStore

logger = logging.getLogger(__name__)


class _StageWriter:
    """Persists stage changes for one lecture and refuses to move backwards."""

    def __init__(self, store: LectureStore, lecture_id: str, stage: Stage) -> None:
        self.store = store
        self.lecture_id = lecture_id
        self.stage = stage

    async def advance(self, target: Stage, **fields) -> None:
        if not can_transition(self.stage, target):
            raise InvalidStageTransition(
                f"Lecture {self.lecture_id}: {self.stage.value} -> {target.value}"
            )
        await self.store.update(self.lecture_id, stage=target, **fields)
        logger.info("Lecture %s: %s", self.lecture_id, target.value)
        self.stage = target

    async def fail(self, message: str) -> None:
        if self.stage.is_terminal:
            logger.error(
                "Lecture %s already %s, not recording failure: %s",
                self.lecture_id,
                self.stage.value,
                message,
            )
            return
        await self.advance(Stage.FAILED, error=message)


class LecturePipeline:
    """Drives every lecture from upload to ``complete`` (or ``failed``)."""

    def __init__(
        self,
        store: LectureStore,
        *,
        client: CompletionClient | None = None,
        fetcher: MediaFetcher | None = None,
        transcoder: Transcoder | None = None,
        transcriber: WhisperService | None = None,
        formatter: TranscriptFormatter | None = None,
        summarizer: Summarizer | None = None,
        quiz_generator: QuizGenerator | None = None,
        slide_detector: SlideTimestampDetector | None = None,
        frame_extractor: FrameExtractor | None = None,
        max_concurrent_jobs: int | None = None,
    ) -> None:
        client = client or CompletionClient()
        transcoder = transcoder or Transcoder()
        self.store = store
        self.fetcher = fetcher or MediaFetcher()
        self.transcoder = transcoder
        self.transcriber = transcriber or WhisperService()
        self.formatter = formatter or TranscriptFormatter(client)
        self.summarizer = summarizer or Summarizer(client)
        self.quiz_generator = quiz_generator or QuizGenerator(client)
        self.slide_detector = slide_detector or SlideTimestampDetector(client)
        self.frame_extractor = frame_extractor or FrameExtractor(transcoder)
        self._jobs = asyncio.Semaphore(
            max_concurrent_jobs or settings.max_concurrent_jobs
        )
        # Strong references so running tasks are not garbage collected.
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self, lecture_id: str) -> asyncio.Task:
        """Start processing in the background and return immediately."""
        check_configuration()
        task = asyncio.create_task(self.run(lecture_id), name=f"lecture-{lecture_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_all(self) -> None:
        """Wait for every submitted lecture to finish (used on shutdown and in tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def run(self, lecture_id: str) -> None:
        async with self._jobs:
            await self._run(lecture_id)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _run(self, lecture_id: str) -> None:
        lecture = await self.store.get(lecture_id)
        if lecture is None:
            logger.error("Lecture %s not found, nothing to process", lecture_id)
            return
        if lecture.stage is not Stage.UPLOADED:
            logger.warning(
                "Lecture %s is already %s, not reprocessing",
                lecture_id,
                lecture.stage.value,
            )
            return

        stages = _StageWriter(self.store, lecture_id, lecture.stage)
        try:
            if lecture.source is LectureSource.YOUTUBE:
                await stages.advance(Stage.DOWNLOADING)
                video_path = await asyncio.to_thread(
                    self.fetcher.fetch,
                    lecture.source_url,
                    StorageService.download_path(lecture_id),
                )
                await self.store.update(lecture_id, video_path=str(video_path))
            else:
                video_path = Path(lecture.video_path)

            await self._process(stages, video_path)
        except Exception as exc:
            logger.exception("Processing error for lecture %s", lecture_id)
            try:
                await stages.fail(str(exc) or exc.__class__.__name__)
            except Exception:
                logger.exception("Could not record failure for lecture %s", lecture_id)

    async def _process(self, stages: _StageWriter, video_path: Path) -> None:
        lecture_id = stages.lecture_id

        await stages.advance(Stage.EXTRACTING_AUDIO)
        audio_path = await asyncio.to_thread(self.transcoder.extract_audio, video_path)

        await stages.advance(Stage.TRANSCRIBING)
        raw_transcript = await asyncio.to_thread(
            self.transcriber.transcribe,
            audio_path,
            settings.transcription_language,
            settings.whisper_model,
        )
        await self.store.update(lecture_id, transcript_raw=raw_transcript)
        transcript = await self.formatter.format(raw_transcript)

        await stages.advance(
            Stage.SUMMARIZING,
            transcript_md=transcript,
            transcript_html=render_markdown(transcript),
        )
        summary = await self.summarizer.summarize(transcript)
        await self.store.update(
            lecture_id, summary_md=summary, summary_html=render_markdown(summary)
        )
        quizzes = await self.quiz_generator.generate(transcript)
        await self.store.update(lecture_id, quizzes=quizzes)

        duration = await asyncio.to_thread(self.transcoder.probe_duration, video_path)
        await self.store.update(lecture_id, duration=duration)
        logger.info(
            "Video duration: %dm %ds", int(duration // 60), int(duration % 60)
        )

        await stages.advance(Stage.EXTRACTING_SLIDES)
        detection = await self.slide_detector.detect(raw_transcript, transcript, duration)
        slides = await self.frame_extractor.extract(
            video_path, lecture_id, detection.timestamps
        )

        await stages.advance(Stage.COMPLETE, slides=slides, error=None)
        logger.info(
            "Processing complete for %s: %d slides (%s), %d quizzes",
            lecture_id,
            len(slides),
            detection.strategy,
            len(quizzes),
        )
        StorageService.remove(audio_path, video_path)

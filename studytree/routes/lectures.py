import logging

import aiofiles
from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel

from studytree.clients import CompletionClient, check_configuration
from studytree.errors import ConfigurationError, PresentationError, ServiceError
from studytree.models import Lecture, LectureSource
from studytree.pipeline import LecturePipeline
from studytree.services.presentation import build_presentation, presentation_filename
from studytree.services.storage import StorageService
from studytree.store import LectureStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["lectures"])

PPTX_MEDIA_TYPE = (
    "application/vnd.openxmlformats-officedocument.presentationml.presentation"
)
CHAT_MAX_TOKENS = 800


# ------------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------------


class YouTubeUpload(BaseModel):
    title: str
    youtubeUrl: str


class ChatQuestion(BaseModel):
    question: str


# ------------------------------------------------------------------
# Dependencies (overridable in tests)
# ------------------------------------------------------------------


def get_store(request: Request) -> LectureStore:
    return request.app.state.store


def get_pipeline(request: Request) -> LecturePipeline:
    return request.app.state.pipeline


def get_client(request: Request) -> CompletionClient:
    return request.app.state.client


async def _require_lecture(store: LectureStore, lecture_id: str) -> Lecture:
    lecture = await store.get(lecture_id)
    if lecture is None:
        raise HTTPException(status_code=404, detail="Lecture not found")
    return lecture


def _require_configuration() -> None:
    try:
        check_configuration()
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=str(e))


# ------------------------------------------------------------------
# Submission
# ------------------------------------------------------------------


@router.post("/upload")
async def upload_video(
    video: UploadFile = File(...),
    title: str | None = Form(None),
    store: LectureStore = Depends(get_store),
    pipeline: LecturePipeline = Depends(get_pipeline),
) -> dict:
    """Save an uploaded video and start processing it."""
    _require_configuration()

    StorageService.ensure_root()
    filename = video.filename or "upload"
    saved_path = StorageService.upload_path(filename)
    async with aiofiles.open(saved_path, "wb") as f:
        while chunk := await video.read(1024 * 1024):
            await f.write(chunk)

    lecture_id = await store.create(
        title or filename, LectureSource.FILE, video_path=str(saved_path)
    )
    pipeline.submit(lecture_id)
    return {"message": "Processing started!", "lectureId": lecture_id}


@router.post("/upload-youtube")
async def upload_youtube(
    body: YouTubeUpload,
    store: LectureStore = Depends(get_store),
    pipeline: LecturePipeline = Depends(get_pipeline),
) -> dict:
    """Register a remote video and start downloading + processing it."""
    _require_configuration()
    lecture_id = await store.create(
        body.title, LectureSource.YOUTUBE, source_url=body.youtubeUrl
    )
    pipeline.submit(lecture_id)
    return {"message": "Processing started!", "lectureId": lecture_id}


# ------------------------------------------------------------------
# Queries
# ------------------------------------------------------------------


@router.get("/lectures")
async def list_lectures(store: LectureStore = Depends(get_store)) -> list[dict]:
    return [lecture.to_dict() for lecture in await store.list()]


@router.get("/lectures/{lecture_id}")
async def get_lecture(
    lecture_id: str, store: LectureStore = Depends(get_store)
) -> dict:
    return (await _require_lecture(store, lecture_id)).to_dict()


@router.get("/status/{lecture_id}")
async def get_status(
    lecture_id: str, store: LectureStore = Depends(get_store)
) -> dict:
    return (await _require_lecture(store, lecture_id)).status()


# ------------------------------------------------------------------
# Export and chat
# ------------------------------------------------------------------


@router.get("/lectures/{lecture_id}/download-ppt")
async def download_presentation(
    lecture_id: str, store: LectureStore = Depends(get_store)
) -> Response:
    lecture = await _require_lecture(store, lecture_id)
    if not lecture.slides:
        raise HTTPException(status_code=404, detail="No slides found.")
    try:
        content = build_presentation(lecture)
    except PresentationError as e:
        raise HTTPException(status_code=500, detail=str(e))

    filename = presentation_filename(lecture.title)
    logger.info("PPT sent: %s", filename)
    return Response(
        content=content,
        media_type=PPTX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/chat/{lecture_id}")
async def chat(
    lecture_id: str,
    body: ChatQuestion,
    store: LectureStore = Depends(get_store),
    client: CompletionClient = Depends(get_client),
) -> dict:
    """Answer a question using only the lecture transcript."""
    lecture = await store.get(lecture_id)
    if lecture is None or not lecture.transcript_md:
        raise HTTPException(status_code=404, detail="Transcript not found")

    messages = [
        {
            "role": "system",
            "content": (
                "You are a helpful teaching assistant. Answer questions based ONLY "
                "on the provided lecture transcript."
            ),
        },
        {
            "role": "user",
            "content": (
                f'Transcript:\n"{lecture.transcript_md}"\n\nQuestion:\n{body.question}'
            ),
        },
    ]
    try:
        answer = await client.complete(messages, CHAT_MAX_TOKENS)
    except (ServiceError, ConfigurationError) as e:
        logger.error("Chat failed for lecture %s: %s", lecture_id, e)
        raise HTTPException(
            status_code=500, detail="Failed to get response from chatbot"
        )
    return {"answer": answer}

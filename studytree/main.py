import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from studytree.clients import CompletionClient, check_configuration
from studytree.config import settings
from studytree.database import init_db
from studytree.logging_utils import configure_logging
from studytree.pipeline import LecturePipeline
from studytree.routes import lectures
from studytree.services.storage import StorageService
from studytree.store import LectureStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Check configuration, create the lectures table and wire the pipeline.

    A missing completion key stops startup before any lecture is accepted.
    """
    configure_logging(settings.log_level)
    check_configuration()
    await init_db()

    client = CompletionClient()
    store = LectureStore()
    app.state.client = client
    app.state.store = store
    app.state.pipeline = LecturePipeline(store, client=client)
    logger.info("Study Tree server ready (model: %s)", client.default_model)
    yield


StorageService.ensure_root()

app = FastAPI(
    title="study-tree",
    description="Turn lecture videos into transcripts, summaries, quizzes and slides",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(lectures.router)

# Uploaded videos and captured frames
app.mount("/uploads", StaticFiles(directory=settings.uploads_root), name="uploads")


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "studytree.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )

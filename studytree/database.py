import aiosqlite

from studytree.config import settings

CREATE_LECTURES = """
CREATE TABLE IF NOT EXISTS lectures (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    source TEXT NOT NULL DEFAULT 'file',
    video_path TEXT,
    source_url TEXT,
    duration REAL,
    transcript_raw TEXT,
    transcript_md TEXT,
    transcript_html TEXT,
    summary_md TEXT,
    summary_html TEXT,
    quizzes_json TEXT NOT NULL DEFAULT '[]',
    slides_json TEXT NOT NULL DEFAULT '[]',
    stage TEXT NOT NULL DEFAULT 'uploaded',
    error TEXT,
    created_at TIMESTAMP DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
)
"""

_DDL = [CREATE_LECTURES]


async def init_db(db_path: str | None = None) -> None:
    """Create all tables. Called once at server startup via FastAPI lifespan."""
    async with aiosqlite.connect(db_path or settings.database_path) as db:
        for stmt in _DDL:
            await db.execute(stmt)
        await db.commit()


async def get_async_conn(db_path: str | None = None) -> aiosqlite.Connection:
    """Async connection for the lecture store and route handlers."""
    conn = await aiosqlite.connect(db_path or settings.database_path)
    await conn.execute("PRAGMA busy_timeout = 5000")
    conn.row_factory = aiosqlite.Row
    return conn

import json
import uuid
from typing import Any

import aiosqlite

from studytree.database import get_async_conn
from studytree.models import Lecture, LectureSource, QuizItem, Slide, Stage

# Lecture attribute -> column.  Everything not listed maps to itself.
_JSON_COLUMNS = {"quizzes": "quizzes_json", "slides": "slides_json"}

_UPDATABLE = {
    "title",
    "video_path",
    "source_url",
    "duration",
    "transcript_raw",
    "transcript_md",
    "transcript_html",
    "summary_md",
    "summary_html",
    "quizzes",
    "slides",
    "stage",
    "error",
}


def _to_column(name: str, value: Any) -> tuple[str, Any]:
    if name == "quizzes":
        return _JSON_COLUMNS[name], json.dumps([q.to_dict() for q in value])
    if name == "slides":
        return _JSON_COLUMNS[name], json.dumps([s.to_dict() for s in value])
    if isinstance(value, (Stage, LectureSource)):
        return name, value.value
    return name, value


def _row_to_lecture(row: aiosqlite.Row) -> Lecture:
    return Lecture(
        id=row["id"],
        title=row["title"],
        source=LectureSource(row["source"]),
        video_path=row["video_path"],
        source_url=row["source_url"],
        duration=row["duration"],
        transcript_raw=row["transcript_raw"],
        transcript_md=row["transcript_md"],
        transcript_html=row["transcript_html"],
        summary_md=row["summary_md"],
        summary_html=row["summary_html"],
        quizzes=[QuizItem.from_dict(q) for q in json.loads(row["quizzes_json"])],
        slides=[Slide.from_dict(s) for s in json.loads(row["slides_json"])],
        stage=Stage(row["stage"]),
        error=row["error"],
        created_at=row["created_at"] or "",
    )


class LectureStore:
    """aiosqlite-backed persistence for :class:`Lecture` records.

    Every call opens its own connection, so a store instance can be shared
    freely between route handlers and pipeline tasks.
    """

    def __init__(self, db_path: str | None = None) -> None:
        self.db_path = db_path

    async def create(
        self,
        title: str,
        source: LectureSource = LectureSource.FILE,
        *,
        video_path: str | None = None,
        source_url: str | None = None,
    ) -> str:
        lecture_id = uuid.uuid4().hex
        conn = await get_async_conn(self.db_path)
        try:
            await conn.execute(
                "INSERT INTO lectures (id, title, source, video_path, source_url, stage) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    lecture_id,
                    title,
                    source.value,
                    video_path,
                    source_url,
                    Stage.UPLOADED.value,
                ),
            )
            await conn.commit()
        finally:
            await conn.close()
        return lecture_id

    async def update(self, lecture_id: str, **fields: Any) -> None:
        """Partial update of the named fields only."""
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Unknown lecture fields: {sorted(unknown)}")
        if not fields:
            return

        columns, values = zip(*(_to_column(k, v) for k, v in fields.items()))
        assignments = ", ".join(f"{col} = ?" for col in columns)
        conn = await get_async_conn(self.db_path)
        try:
            await conn.execute(
                f"UPDATE lectures SET {assignments} WHERE id = ?",
                (*values, lecture_id),
            )
            await conn.commit()
        finally:
            await conn.close()

    async def get(self, lecture_id: str) -> Lecture | None:
        conn = await get_async_conn(self.db_path)
        try:
            row = await conn.execute(
                "SELECT * FROM lectures WHERE id = ?", (lecture_id,)
            )
            record = await row.fetchone()
            return _row_to_lecture(record) if record else None
        finally:
            await conn.close()

    async def list(self) -> list[Lecture]:
        """All lectures, most recent first."""
        conn = await get_async_conn(self.db_path)
        try:
            rows = await conn.execute(
                "SELECT * FROM lectures ORDER BY created_at DESC, rowid DESC"
            )
            return [_row_to_lecture(row) for row in await rows.fetchall()]
        finally:
            await conn.close()

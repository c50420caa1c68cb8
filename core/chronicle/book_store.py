# ═══════════════════════════════════════════════════════════════════
# FILE: core/chronicle/book_store.py
# PURPOSE: SQLite storage for books produced by generation jobs
# ═══════════════════════════════════════════════════════════════════

import logging
import os
import sqlite3
import uuid
from typing import List, Optional

from pydantic import BaseModel, Field

from .book_state import AcceptedScene, FinalMatter
from .models import utcnow

logger = logging.getLogger("Chronicle.BookStore")


class StoredSection(BaseModel):
    chapter: int
    scene: int
    title: str = ""
    text: str
    word_count: int


class StoredBook(BaseModel):
    id: str
    owner_id: Optional[str] = None
    genre: str = ""
    title: Optional[str] = None
    blurb: str = ""
    status: str = "generating"
    word_count: int = 0
    quality_score: Optional[int] = None
    sections: List[StoredSection] = Field(default_factory=list)

    def manuscript(self) -> str:
        """Plain-text manuscript, one heading per chapter."""
        parts = [f"# {self.title}"] if self.title else []
        current = None
        for section in self.sections:
            if section.chapter != current:
                current = section.chapter
                parts.append(f"## Chapter {section.chapter + 1}")
            if section.title:
                parts.append(f"### {section.title}")
            parts.append(section.text)
        return "\n\n".join(parts)


class BookStore:
    """Book shells created with a job, filled in when the job completes."""

    def __init__(self, db_path: str = "data/chronicle.db"):
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self.db_path = db_path
        self._init_db()

    def _init_db(self):
        """Create tables if not exist."""
        with sqlite3.connect(self.db_path, timeout=30) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS chronicle_books (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT,
                    data JSON NOT NULL,
                    status TEXT NOT NULL DEFAULT 'generating',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()

    def _save(self, book: StoredBook):
        now = utcnow().isoformat()
        with sqlite3.connect(self.db_path, timeout=30) as conn:
            conn.execute("""
                INSERT INTO chronicle_books (id, owner_id, data, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    data = excluded.data,
                    status = excluded.status,
                    updated_at = excluded.updated_at
            """, (book.id, book.owner_id, book.model_dump_json(), book.status, now, now))
            conn.commit()

    def create_shell(self, owner_id: Optional[str], genre: str) -> StoredBook:
        """Empty book a new job writes into."""
        book = StoredBook(id=str(uuid.uuid4()), owner_id=owner_id, genre=genre)
        self._save(book)
        logger.info(f"Created book shell {book.id}")
        return book

    def get(self, book_id: str) -> Optional[StoredBook]:
        with sqlite3.connect(self.db_path, timeout=30) as conn:
            row = conn.execute(
                "SELECT data FROM chronicle_books WHERE id = ?", (book_id,)
            ).fetchone()
        if not row:
            return None
        try:
            return StoredBook.model_validate_json(row[0])
        except Exception as e:
            logger.error(f"Failed to load book {book_id}: {e}")
            return None

    def store_manuscript(
        self,
        book_id: str,
        scenes: List[AcceptedScene],
        final: Optional[FinalMatter],
        quality_score: Optional[int] = None,
    ) -> StoredBook:
        """Write the finished sections and mark the book complete."""
        book = self.get(book_id) or StoredBook(id=book_id)
        book.sections = [
            StoredSection(
                chapter=s.chapter,
                scene=s.scene,
                title=s.title,
                text=s.text,
                word_count=s.word_count,
            )
            for s in sorted(scenes, key=lambda s: (s.chapter, s.scene))
        ]
        book.word_count = sum(s.word_count for s in book.sections)
        if final is not None:
            book.title = final.title
            book.blurb = final.blurb
        book.quality_score = quality_score
        book.status = "complete"
        self._save(book)
        logger.info(f"Stored manuscript for book {book_id}: {book.word_count} words")
        return book

"""SQLite catalog for books, reading progress, bookmarks, clips, notes, and tags."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from epubviewer.errors import InvalidInputError

from .models import (
    Book,
    Bookmark,
    Clip,
    ClipPosition,
    Note,
    ReadingProgress,
    Tag,
    new_id,
)

log = logging.getLogger(__name__)

PROTECTED_TAG_NAMES = frozenset(["積読"])
DEFAULT_TAG_COLOR = "#667eea"

# Ordered schema migrations. The number applied is tracked in PRAGMA user_version;
# entries are append-only.
MIGRATIONS: tuple[tuple[str, ...], ...] = (
    (
        """CREATE TABLE IF NOT EXISTS books (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            original_filename TEXT,
            total_pages INTEGER DEFAULT 1,
            category TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )""",
        """CREATE TABLE IF NOT EXISTS bookmarks (
            id TEXT PRIMARY KEY,
            book_id TEXT NOT NULL REFERENCES books(id) ON DELETE CASCADE,
            page_num INTEGER NOT NULL,
            note TEXT,
            created_at TEXT NOT NULL
        )""",
        """CREATE TABLE IF NOT EXISTS reading_progress (
            book_id TEXT PRIMARY KEY REFERENCES books(id) ON DELETE CASCADE,
            current_page INTEGER DEFAULT 1,
            updated_at TEXT NOT NULL
        )""",
        "CREATE INDEX IF NOT EXISTS idx_bookmarks_book_id ON bookmarks(book_id)",
    ),
    (
        "ALTER TABLE books ADD COLUMN language TEXT DEFAULT 'en'",
        "ALTER TABLE books ADD COLUMN book_type TEXT DEFAULT 'epub'",
    ),
    (
        """CREATE TABLE IF NOT EXISTS clips (
            id TEXT PRIMARY KEY,
            book_id TEXT NOT NULL REFERENCES books(id) ON DELETE CASCADE,
            page_num INTEGER NOT NULL,
            image_data TEXT NOT NULL,
            note TEXT,
            x_ratio REAL,
            y_ratio REAL,
            width_ratio REAL,
            height_ratio REAL,
            created_at TEXT NOT NULL
        )""",
        "CREATE INDEX IF NOT EXISTS idx_clips_book_id ON clips(book_id)",
    ),
    (
        "ALTER TABLE books ADD COLUMN source_url TEXT",
        "ALTER TABLE books ADD COLUMN pdf_total_pages INTEGER",
        "ALTER TABLE books ADD COLUMN ai_context TEXT",
    ),
    (
        """CREATE TABLE IF NOT EXISTS tags (
            id TEXT PRIMARY KEY,
            name TEXT UNIQUE NOT NULL,
            color TEXT DEFAULT '#667eea',
            created_at TEXT NOT NULL
        )""",
        """CREATE TABLE IF NOT EXISTS book_tags (
            book_id TEXT NOT NULL REFERENCES books(id) ON DELETE CASCADE,
            tag_id TEXT NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
            PRIMARY KEY (book_id, tag_id)
        )""",
        """INSERT OR IGNORE INTO tags (id, name, color, created_at)
           VALUES ('tsundoku', '積読', '#f59e0b', '1970-01-01 00:00:00.000000')""",
    ),
    (
        """CREATE TABLE IF NOT EXISTS notes (
            id TEXT PRIMARY KEY,
            book_id TEXT NOT NULL REFERENCES books(id) ON DELETE CASCADE,
            page_num INTEGER NOT NULL,
            content TEXT DEFAULT '',
            position INTEGER DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )""",
        "CREATE INDEX IF NOT EXISTS idx_notes_book_id ON notes(book_id)",
    ),
)

_BOOK_SELECT = """
    SELECT b.*, rp.current_page
    FROM books b
    LEFT JOIN reading_progress rp ON b.id = rp.book_id
"""


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f")


class Database:
    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._migrate()

    @property
    def schema_version(self) -> int:
        return self._conn.execute("PRAGMA user_version").fetchone()[0]

    def _migrate(self) -> None:
        current = self.schema_version
        for version, statements in enumerate(MIGRATIONS, start=1):
            if version <= current:
                continue
            try:
                self._conn.execute("BEGIN")
                for statement in statements:
                    self._conn.execute(statement)
                self._conn.execute(f"PRAGMA user_version = {version}")
                self._conn.commit()
            except sqlite3.Error:
                self._conn.rollback()
                log.exception("Schema migration %d failed", version)
                raise
            log.info("Applied schema migration %d", version)

    def close(self) -> None:
        self._conn.close()

    # ── Books ──────────────────────────────────────────────

    def add_book(self, book: Book) -> Book:
        now = _now()
        book.created_at = book.created_at or now
        book.updated_at = book.updated_at or now
        self._conn.execute(
            """INSERT INTO books
               (id, title, original_filename, total_pages, category, language,
                book_type, source_url, pdf_total_pages, ai_context, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                book.id,
                book.title,
                book.original_filename,
                book.total_pages,
                book.category,
                book.language,
                book.book_type,
                book.source_url,
                book.pdf_total_pages,
                book.ai_context,
                book.created_at,
                book.updated_at,
            ),
        )
        self._conn.commit()
        return book

    def add_website_book(
        self, book_id: str, title: str, source_url: str, total_pages: int
    ) -> Book:
        return self.add_book(
            Book(
                id=book_id,
                title=title,
                original_filename=None,
                total_pages=total_pages,
                book_type="website",
                source_url=source_url,
            )
        )

    def get_book(self, book_id: str) -> Optional[Book]:
        row = self._conn.execute(
            _BOOK_SELECT + " WHERE b.id = ?", (book_id,)
        ).fetchone()
        if not row:
            return None
        book = self._row_to_book(row)
        book.tags = self.get_book_tags(book_id)
        return book

    def find_book_by_filename(self, original_filename: str) -> Optional[Book]:
        row = self._conn.execute(
            _BOOK_SELECT + " WHERE b.original_filename = ?", (original_filename,)
        ).fetchone()
        return self._row_to_book(row) if row else None

    def list_books(self) -> list[Book]:
        rows = self._conn.execute(
            _BOOK_SELECT + " ORDER BY b.updated_at DESC"
        ).fetchall()
        books = [self._row_to_book(r) for r in rows]

        tags_by_book: dict[str, list[Tag]] = {}
        for r in self._conn.execute(
            """SELECT bt.book_id, t.* FROM book_tags bt
               JOIN tags t ON t.id = bt.tag_id ORDER BY t.name"""
        ).fetchall():
            tags_by_book.setdefault(r["book_id"], []).append(self._row_to_tag(r))
        for book in books:
            book.tags = tags_by_book.get(book.id, [])
        return books

    def update_book(
        self,
        book_id: str,
        title: Optional[str] = None,
        language: Optional[str] = None,
        ai_context: Optional[str] = None,
    ) -> Optional[Book]:
        updates: list[str] = []
        values: list[str] = []
        for column, value in (
            ("title", title),
            ("language", language),
            ("ai_context", ai_context),
        ):
            if value is not None:
                updates.append(f"{column} = ?")
                values.append(value)

        if updates:
            updates.append("updated_at = ?")
            values.append(_now())
            values.append(book_id)
            self._conn.execute(
                f"UPDATE books SET {', '.join(updates)} WHERE id = ?", values
            )
            self._conn.commit()
        return self.get_book(book_id)

    def update_pdf_total_pages(self, book_id: str, total_pages: int) -> bool:
        if total_pages < 1:
            raise InvalidInputError("Invalid totalPages")
        cur = self._conn.execute(
            "UPDATE books SET pdf_total_pages = ? WHERE id = ?", (total_pages, book_id)
        )
        self._conn.commit()
        return cur.rowcount > 0

    def delete_book(self, book_id: str) -> None:
        self._conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
        self._conn.commit()

    @staticmethod
    def _row_to_book(row: sqlite3.Row) -> Book:
        return Book(
            id=row["id"],
            title=row["title"],
            original_filename=row["original_filename"],
            total_pages=row["total_pages"],
            book_type=row["book_type"] or "epub",
            language=row["language"] or "en",
            category=row["category"],
            source_url=row["source_url"],
            pdf_total_pages=row["pdf_total_pages"],
            ai_context=row["ai_context"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            current_page=row["current_page"],
        )

    # ── Reading Progress ───────────────────────────────────

    def save_progress(self, book_id: str, current_page: int) -> ReadingProgress:
        now = _now()
        with self._conn:
            self._conn.execute(
                """INSERT INTO reading_progress (book_id, current_page, updated_at)
                   VALUES (?, ?, ?)
                   ON CONFLICT(book_id) DO UPDATE SET
                     current_page = excluded.current_page,
                     updated_at = excluded.updated_at""",
                (book_id, current_page, now),
            )
            self._conn.execute(
                "UPDATE books SET updated_at = ? WHERE id = ?", (now, book_id)
            )
        return ReadingProgress(book_id=book_id, current_page=current_page, updated_at=now)

    def get_progress(self, book_id: str) -> Optional[ReadingProgress]:
        row = self._conn.execute(
            "SELECT * FROM reading_progress WHERE book_id = ?",
            (book_id,),
        ).fetchone()
        if not row:
            return None
        return ReadingProgress(
            book_id=row["book_id"],
            current_page=row["current_page"],
            updated_at=row["updated_at"],
        )

    # ── Bookmarks ──────────────────────────────────────────

    def add_bookmark(self, book_id: str, page_num: int, note: str = "") -> Bookmark:
        bm = Bookmark(
            id=new_id(), book_id=book_id, page_num=page_num, note=note, created_at=_now()
        )
        self._conn.execute(
            """INSERT INTO bookmarks (id, book_id, page_num, note, created_at)
               VALUES (?, ?, ?, ?, ?)""",
            (bm.id, bm.book_id, bm.page_num, bm.note, bm.created_at),
        )
        self._conn.commit()
        return bm

    def list_bookmarks(self, book_id: str) -> list[Bookmark]:
        rows = self._conn.execute(
            "SELECT * FROM bookmarks WHERE book_id = ? ORDER BY page_num, created_at",
            (book_id,),
        ).fetchall()
        return [
            Bookmark(
                id=r["id"],
                book_id=r["book_id"],
                page_num=r["page_num"],
                note=r["note"] or "",
                created_at=r["created_at"],
            )
            for r in rows
        ]

    def delete_bookmark(self, bookmark_id: str) -> None:
        self._conn.execute("DELETE FROM bookmarks WHERE id = ?", (bookmark_id,))
        self._conn.commit()

    # ── Clips ──────────────────────────────────────────────

    def add_clip(
        self,
        book_id: str,
        page_num: int,
        image_data: str,
        note: str = "",
        position: Optional[ClipPosition] = None,
    ) -> Clip:
        if not image_data:
            raise InvalidInputError("imageData is required")
        clip = Clip(
            id=new_id(),
            book_id=book_id,
            page_num=page_num,
            image_data=image_data,
            note=note,
            created_at=_now(),
        )
        if position is not None:
            clip.x_ratio = position.x_ratio
            clip.y_ratio = position.y_ratio
            clip.width_ratio = position.width_ratio
            clip.height_ratio = position.height_ratio
        self._conn.execute(
            """INSERT INTO clips
               (id, book_id, page_num, image_data, note,
                x_ratio, y_ratio, width_ratio, height_ratio, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                clip.id,
                clip.book_id,
                clip.page_num,
                clip.image_data,
                clip.note,
                clip.x_ratio,
                clip.y_ratio,
                clip.width_ratio,
                clip.height_ratio,
                clip.created_at,
            ),
        )
        self._conn.commit()
        return clip

    def list_clips(self, book_id: str) -> list[Clip]:
        rows = self._conn.execute(
            "SELECT * FROM clips WHERE book_id = ? ORDER BY created_at DESC",
            (book_id,),
        ).fetchall()
        return [self._row_to_clip(r) for r in rows]

    def get_clip(self, clip_id: str) -> Optional[Clip]:
        row = self._conn.execute(
            "SELECT * FROM clips WHERE id = ?", (clip_id,)
        ).fetchone()
        return self._row_to_clip(row) if row else None

    def delete_clip(self, clip_id: str) -> None:
        self._conn.execute("DELETE FROM clips WHERE id = ?", (clip_id,))
        self._conn.commit()

    @staticmethod
    def _row_to_clip(row: sqlite3.Row) -> Clip:
        return Clip(
            id=row["id"],
            book_id=row["book_id"],
            page_num=row["page_num"],
            image_data=row["image_data"],
            note=row["note"] or "",
            x_ratio=row["x_ratio"],
            y_ratio=row["y_ratio"],
            width_ratio=row["width_ratio"],
            height_ratio=row["height_ratio"],
            created_at=row["created_at"],
        )

    # ── Notes ──────────────────────────────────────────────

    def add_note(
        self, book_id: str, page_num: int, content: str = "", position: int = 0
    ) -> Note:
        now = _now()
        note = Note(
            id=new_id(),
            book_id=book_id,
            page_num=page_num,
            content=content,
            position=position,
            created_at=now,
            updated_at=now,
        )
        self._conn.execute(
            """INSERT INTO notes
               (id, book_id, page_num, content, position, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                note.id,
                note.book_id,
                note.page_num,
                note.content,
                note.position,
                note.created_at,
                note.updated_at,
            ),
        )
        self._conn.commit()
        return note

    def list_notes(self, book_id: str) -> list[Note]:
        rows = self._conn.execute(
            "SELECT * FROM notes WHERE book_id = ? ORDER BY page_num, position",
            (book_id,),
        ).fetchall()
        return [self._row_to_note(r) for r in rows]

    def get_note(self, note_id: str) -> Optional[Note]:
        row = self._conn.execute(
            "SELECT * FROM notes WHERE id = ?", (note_id,)
        ).fetchone()
        return self._row_to_note(row) if row else None

    def update_note(self, note_id: str, content: str) -> Optional[Note]:
        self._conn.execute(
            "UPDATE notes SET content = ?, updated_at = ? WHERE id = ?",
            (content, _now(), note_id),
        )
        self._conn.commit()
        return self.get_note(note_id)

    def delete_note(self, note_id: str) -> None:
        self._conn.execute("DELETE FROM notes WHERE id = ?", (note_id,))
        self._conn.commit()

    @staticmethod
    def _row_to_note(row: sqlite3.Row) -> Note:
        return Note(
            id=row["id"],
            book_id=row["book_id"],
            page_num=row["page_num"],
            content=row["content"] or "",
            position=row["position"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # ── Tags ───────────────────────────────────────────────

    def create_tag(self, name: str, color: str = DEFAULT_TAG_COLOR) -> Tag:
        name = name.strip()
        if not name:
            raise InvalidInputError("Tag name is required")
        tag = Tag(id=new_id(), name=name, color=color or DEFAULT_TAG_COLOR, created_at=_now())
        try:
            self._conn.execute(
                "INSERT INTO tags (id, name, color, created_at) VALUES (?, ?, ?, ?)",
                (tag.id, tag.name, tag.color, tag.created_at),
            )
            self._conn.commit()
        except sqlite3.IntegrityError as e:
            self._conn.rollback()
            raise InvalidInputError("Tag already exists") from e
        return tag

    def list_tags(self) -> list[Tag]:
        rows = self._conn.execute("SELECT * FROM tags ORDER BY name").fetchall()
        return [self._row_to_tag(r) for r in rows]

    def get_tag(self, tag_id: str) -> Optional[Tag]:
        row = self._conn.execute("SELECT * FROM tags WHERE id = ?", (tag_id,)).fetchone()
        return self._row_to_tag(row) if row else None

    def find_tag_by_name(self, name: str) -> Optional[Tag]:
        row = self._conn.execute("SELECT * FROM tags WHERE name = ?", (name,)).fetchone()
        return self._row_to_tag(row) if row else None

    def delete_tag(self, tag_id: str) -> None:
        tag = self.get_tag(tag_id)
        if tag and tag.name in PROTECTED_TAG_NAMES:
            raise InvalidInputError(f"The {tag.name} tag cannot be deleted")
        self._conn.execute("DELETE FROM tags WHERE id = ?", (tag_id,))
        self._conn.commit()

    def add_tag_to_book(self, book_id: str, tag_id: str) -> None:
        self._conn.execute(
            "INSERT OR IGNORE INTO book_tags (book_id, tag_id) VALUES (?, ?)",
            (book_id, tag_id),
        )
        self._conn.commit()

    def remove_tag_from_book(self, book_id: str, tag_id: str) -> None:
        self._conn.execute(
            "DELETE FROM book_tags WHERE book_id = ? AND tag_id = ?", (book_id, tag_id)
        )
        self._conn.commit()

    def get_book_tags(self, book_id: str) -> list[Tag]:
        rows = self._conn.execute(
            """SELECT t.* FROM tags t
               JOIN book_tags bt ON t.id = bt.tag_id
               WHERE bt.book_id = ? ORDER BY t.name""",
            (book_id,),
        ).fetchall()
        return [self._row_to_tag(r) for r in rows]

    @staticmethod
    def _row_to_tag(row: sqlite3.Row) -> Tag:
        return Tag(
            id=row["id"],
            name=row["name"],
            color=row["color"] or DEFAULT_TAG_COLOR,
            created_at=row["created_at"],
        )

"""EPUB Viewer - self-hosted reader backend (HTTP API)."""

from __future__ import annotations

import logging
import shutil
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from epubviewer.assistant.engine import AssistantEngine
from epubviewer.config import AppConfig, load_config
from epubviewer.content.store import ContentStore
from epubviewer.errors import EpubViewerError, InvalidInputError, NotFoundError
from epubviewer.importer import BookImporter
from epubviewer.library.database import DEFAULT_TAG_COLOR, Database
from epubviewer.library.models import Book, ClipPosition, new_id

log = logging.getLogger(__name__)


# ── Request bodies ─────────────────────────────────────────


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SaveUrlRequest(_Body):
    url: Optional[str] = None


class SaveMultipageRequest(_Body):
    url: Optional[str] = None
    link_class: Optional[str] = Field(default=None, alias="linkClass")
    ignore_paths: list[str] = Field(default_factory=list, alias="ignorePaths")
    max_pages: Optional[int] = Field(default=None, alias="maxPages", ge=1)


class BookUpdateRequest(_Body):
    title: Optional[str] = None
    language: Optional[str] = None
    ai_context: Optional[str] = Field(default=None, alias="aiContext")


class PdfPagesRequest(_Body):
    total_pages: int = Field(alias="totalPages")


class ContentRequest(_Body):
    content: str


class BookmarkRequest(_Body):
    page_num: int = Field(alias="pageNum", ge=1)
    note: str = ""


class ClipPositionBody(_Body):
    x_ratio: float = Field(alias="xRatio")
    y_ratio: float = Field(alias="yRatio")
    width_ratio: float = Field(alias="widthRatio")
    height_ratio: float = Field(alias="heightRatio")


class ClipRequest(_Body):
    page_num: int = Field(alias="pageNum", ge=1)
    image_data: str = Field(default="", alias="imageData")
    note: str = ""
    position: Optional[ClipPositionBody] = None


class NoteRequest(_Body):
    page_num: int = Field(alias="pageNum", ge=1)
    content: str = ""
    position: int = 0


class ProgressRequest(_Body):
    current_page: int = Field(alias="currentPage", ge=1)


class TagRequest(_Body):
    name: str = ""
    color: Optional[str] = None


class BookTagRequest(_Body):
    tag_id: str = Field(alias="tagId")


class ChatRequest(_Body):
    message: str = ""
    context: Optional[str] = None


class ClipDescriptionRequest(_Body):
    book_title: str = Field(default="", alias="bookTitle")
    page_content: str = Field(default="", alias="pageContent")


class AutoTagRequest(_Body):
    force: bool = False


# ── Dependencies ───────────────────────────────────────────


def get_db(request: Request) -> Database:
    return request.app.state.db


def get_store(request: Request) -> ContentStore:
    return request.app.state.store


def get_importer(request: Request) -> BookImporter:
    return request.app.state.importer


def get_assistant(request: Request) -> AssistantEngine:
    return request.app.state.assistant


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def _require_book(db: Database, book_id: str) -> Book:
    book = db.get_book(book_id)
    if book is None:
        raise NotFoundError("Book not found")
    return book


router = APIRouter()


# ── Imports ────────────────────────────────────────────────


@router.post("/upload")
def upload(
    background: BackgroundTasks,
    file: Optional[UploadFile] = File(default=None),
    importer: BookImporter = Depends(get_importer),
    config: AppConfig = Depends(get_config),
) -> dict:
    if file is None or not file.filename:
        raise InvalidInputError("No file uploaded")
    filename = Path(file.filename).name
    tmp = config.uploads_dir / f"{new_id()}{Path(filename).suffix.lower()}"
    try:
        with tmp.open("wb") as out:
            shutil.copyfileobj(file.file, out)
        result = importer.import_file(tmp, filename)
    finally:
        tmp.unlink(missing_ok=True)
    background.add_task(importer.auto_tag, result.book_id)
    return result.to_dict()


@router.post("/save-url")
async def save_url(
    body: SaveUrlRequest,
    background: BackgroundTasks,
    importer: BookImporter = Depends(get_importer),
) -> dict:
    result = await importer.save_url(body.url)
    background.add_task(importer.auto_tag, result.book_id)
    return result.to_dict()


@router.post("/save-multipage-url")
async def save_multipage_url(
    body: SaveMultipageRequest,
    background: BackgroundTasks,
    importer: BookImporter = Depends(get_importer),
) -> dict:
    result = await importer.save_multipage_url(
        body.url, body.link_class, body.ignore_paths, body.max_pages
    )
    background.add_task(importer.auto_tag, result.book_id)
    return result.to_dict()


# ── Books ──────────────────────────────────────────────────


@router.get("/books")
def list_books(db: Database = Depends(get_db)) -> list[dict]:
    return [b.to_dict() for b in db.list_books()]


@router.get("/books/{book_id}")
def get_book(
    book_id: str,
    db: Database = Depends(get_db),
    store: ContentStore = Depends(get_store),
) -> dict:
    book = _require_book(db, book_id)
    data = book.to_dict()
    index = store.read_index(book_id)
    if index is not None:
        data.update(index.to_dict())
    else:
        data.update({"total": book.total_pages, "pages": []})
    return data


@router.patch("/books/{book_id}")
def update_book(
    book_id: str, body: BookUpdateRequest, db: Database = Depends(get_db)
) -> dict:
    _require_book(db, book_id)
    book = db.update_book(
        book_id, title=body.title, language=body.language, ai_context=body.ai_context
    )
    return book.to_dict()


@router.delete("/books/{book_id}")
def delete_book(
    book_id: str,
    db: Database = Depends(get_db),
    store: ContentStore = Depends(get_store),
) -> dict:
    _require_book(db, book_id)
    db.delete_book(book_id)
    store.remove_book(book_id)
    log.info("Deleted book %s", book_id)
    return {"success": True}


@router.get("/books/{book_id}/pdf")
def get_pdf(book_id: str, store: ContentStore = Depends(get_store)) -> FileResponse:
    path = store.pdf_path(book_id)
    if not path.exists():
        raise NotFoundError("PDF not found")
    return FileResponse(path, media_type="application/pdf")


@router.post("/books/{book_id}/pdf-total-pages")
def set_pdf_total_pages(
    book_id: str, body: PdfPagesRequest, db: Database = Depends(get_db)
) -> dict:
    if not db.update_pdf_total_pages(book_id, body.total_pages):
        raise NotFoundError("Book not found")
    return {"success": True, "totalPages": body.total_pages}


# ── Pages ──────────────────────────────────────────────────


@router.get("/books/{book_id}/page/{page_num}")
def get_page(
    book_id: str, page_num: int, store: ContentStore = Depends(get_store)
) -> dict:
    return {"content": store.read_page(book_id, page_num), "pageNum": page_num}


@router.get("/books/{book_id}/all-pages")
def get_all_pages(book_id: str, store: ContentStore = Depends(get_store)) -> dict:
    pages = store.read_all_pages(book_id)
    return {"pages": pages, "total": store.read_index(book_id).total}


@router.get("/books/{book_id}/toc")
def get_toc(book_id: str, store: ContentStore = Depends(get_store)) -> dict:
    return {
        "toc": [item.to_dict() for item in store.heading_toc(book_id)],
        "tocHtml": store.read_toc(book_id),
    }


@router.post("/books/{book_id}/page/{page_num}/save-edit")
def save_edit(
    book_id: str,
    page_num: int,
    body: ContentRequest,
    store: ContentStore = Depends(get_store),
) -> dict:
    store.save_page_edit(book_id, page_num, body.content)
    return {"success": True}


@router.post("/books/{book_id}/page/{page_num}/save-translation")
def save_translation(
    book_id: str,
    page_num: int,
    body: ContentRequest,
    store: ContentStore = Depends(get_store),
) -> dict:
    if not body.content:
        raise InvalidInputError("Content is required")
    store.save_translation(book_id, page_num, body.content)
    return {"success": True}


@router.post("/books/{book_id}/page/{page_num}/restore-original")
def restore_original(
    book_id: str, page_num: int, store: ContentStore = Depends(get_store)
) -> dict:
    store.restore_original(book_id, page_num)
    return {"success": True}


@router.get("/books/{book_id}/translation-status")
def translation_status(book_id: str, store: ContentStore = Depends(get_store)) -> dict:
    pages = store.translated_pages(book_id)
    return {"translatedPages": pages, "totalTranslated": len(pages)}


@router.post("/books/{book_id}/restore-all-translations")
def restore_all_translations(
    book_id: str, store: ContentStore = Depends(get_store)
) -> dict:
    count = store.restore_all_translations(book_id)
    log.info("Restored %d pages for book %s", count, book_id)
    return {"success": True, "restoredCount": count}


# ── Bookmarks, clips, notes, progress ──────────────────────


@router.get("/books/{book_id}/bookmarks")
def list_bookmarks(book_id: str, db: Database = Depends(get_db)) -> list[dict]:
    return [b.to_dict() for b in db.list_bookmarks(book_id)]


@router.post("/books/{book_id}/bookmarks")
def add_bookmark(
    book_id: str, body: BookmarkRequest, db: Database = Depends(get_db)
) -> dict:
    _require_book(db, book_id)
    return db.add_bookmark(book_id, body.page_num, body.note).to_dict()


@router.delete("/bookmarks/{bookmark_id}")
def delete_bookmark(bookmark_id: str, db: Database = Depends(get_db)) -> dict:
    db.delete_bookmark(bookmark_id)
    return {"success": True}


@router.get("/books/{book_id}/clips")
def list_clips(book_id: str, db: Database = Depends(get_db)) -> list[dict]:
    return [c.to_dict() for c in db.list_clips(book_id)]


@router.get("/clips/{clip_id}")
def get_clip(clip_id: str, db: Database = Depends(get_db)) -> dict:
    clip = db.get_clip(clip_id)
    if clip is None:
        raise NotFoundError("Clip not found")
    return clip.to_dict()


@router.post("/books/{book_id}/clips")
def add_clip(book_id: str, body: ClipRequest, db: Database = Depends(get_db)) -> dict:
    _require_book(db, book_id)
    position = None
    if body.position is not None:
        try:
            position = ClipPosition(**body.position.model_dump())
        except ValueError as e:
            raise InvalidInputError(str(e)) from e
    return db.add_clip(book_id, body.page_num, body.image_data, body.note, position).to_dict()


@router.delete("/clips/{clip_id}")
def delete_clip(clip_id: str, db: Database = Depends(get_db)) -> dict:
    db.delete_clip(clip_id)
    return {"success": True}


@router.get("/books/{book_id}/notes")
def list_notes(book_id: str, db: Database = Depends(get_db)) -> list[dict]:
    return [n.to_dict() for n in db.list_notes(book_id)]


@router.post("/books/{book_id}/notes")
def add_note(book_id: str, body: NoteRequest, db: Database = Depends(get_db)) -> dict:
    _require_book(db, book_id)
    return db.add_note(book_id, body.page_num, body.content, body.position).to_dict()


@router.put("/notes/{note_id}")
def update_note(note_id: str, body: ContentRequest, db: Database = Depends(get_db)) -> dict:
    note = db.update_note(note_id, body.content)
    if note is None:
        raise NotFoundError("Note not found")
    return note.to_dict()


@router.delete("/notes/{note_id}")
def delete_note(note_id: str, db: Database = Depends(get_db)) -> dict:
    db.delete_note(note_id)
    return {"success": True}


@router.get("/books/{book_id}/progress")
def get_progress(book_id: str, db: Database = Depends(get_db)) -> dict:
    progress = db.get_progress(book_id)
    if progress is None:
        return {"book_id": book_id, "current_page": 1, "updated_at": None}
    return progress.to_dict()


@router.post("/books/{book_id}/progress")
def save_progress(
    book_id: str, body: ProgressRequest, db: Database = Depends(get_db)
) -> dict:
    _require_book(db, book_id)
    return db.save_progress(book_id, body.current_page).to_dict()


# ── Tags ───────────────────────────────────────────────────


@router.get("/tags")
def list_tags(db: Database = Depends(get_db)) -> list[dict]:
    return [t.to_dict() for t in db.list_tags()]


@router.post("/tags")
def create_tag(body: TagRequest, db: Database = Depends(get_db)) -> dict:
    return db.create_tag(body.name, body.color or DEFAULT_TAG_COLOR).to_dict()


@router.delete("/tags/{tag_id}")
def delete_tag(tag_id: str, db: Database = Depends(get_db)) -> dict:
    if db.get_tag(tag_id) is None:
        raise NotFoundError("Tag not found")
    db.delete_tag(tag_id)
    return {"success": True}


@router.get("/books/{book_id}/tags")
def get_book_tags(book_id: str, db: Database = Depends(get_db)) -> list[dict]:
    return [t.to_dict() for t in db.get_book_tags(book_id)]


@router.post("/books/{book_id}/tags")
def add_book_tag(
    book_id: str, body: BookTagRequest, db: Database = Depends(get_db)
) -> dict:
    _require_book(db, book_id)
    if db.get_tag(body.tag_id) is None:
        raise NotFoundError("Tag not found")
    db.add_tag_to_book(book_id, body.tag_id)
    return {"success": True}


@router.delete("/books/{book_id}/tags/{tag_id}")
def remove_book_tag(book_id: str, tag_id: str, db: Database = Depends(get_db)) -> dict:
    db.remove_tag_from_book(book_id, tag_id)
    return {"success": True}


# ── Media and covers ───────────────────────────────────────


@router.get("/books/{book_id}/media/{media_path:path}")
def get_media(
    book_id: str, media_path: str, store: ContentStore = Depends(get_store)
) -> FileResponse:
    return FileResponse(store.media_path(book_id, media_path))


@router.get("/books/{book_id}/cover")
def get_cover(book_id: str, store: ContentStore = Depends(get_store)) -> FileResponse:
    path = store.resolve_cover(book_id)
    if path is None:
        raise NotFoundError("Cover not found")
    return FileResponse(path)


@router.post("/books/{book_id}/cover")
def upload_cover(
    book_id: str,
    cover: Optional[UploadFile] = File(default=None),
    db: Database = Depends(get_db),
    store: ContentStore = Depends(get_store),
) -> dict:
    _require_book(db, book_id)
    if cover is None or not cover.filename:
        raise InvalidInputError("No file uploaded")
    path = store.save_custom_cover(book_id, cover.filename, cover.file.read())
    return {"success": True, "filename": path.name}


@router.delete("/books/{book_id}/cover")
def delete_cover(book_id: str, store: ContentStore = Depends(get_store)) -> dict:
    if not store.exists(book_id):
        raise NotFoundError("Book directory not found")
    return {"success": True, "deleted": store.delete_custom_cover(book_id)}


# ── Assistant ──────────────────────────────────────────────


@router.get("/ai/settings")
def ai_settings(assistant: AssistantEngine = Depends(get_assistant)) -> dict:
    provider = assistant.provider
    return {
        "configured": assistant.is_configured,
        "provider": provider.name if provider else None,
        "model": provider.model if provider else None,
    }


@router.post("/ai/chat")
async def ai_chat(
    body: ChatRequest, assistant: AssistantEngine = Depends(get_assistant)
) -> dict:
    return {"response": await assistant.chat(body.message, body.context)}


@router.post("/ai/generate-clip-description")
async def ai_clip_description(
    body: ClipDescriptionRequest, assistant: AssistantEngine = Depends(get_assistant)
) -> dict:
    if not body.book_title or not body.page_content:
        raise InvalidInputError("bookTitle and pageContent are required")
    description = await assistant.describe_clip(body.page_content, body.book_title)
    return {"description": description}


@router.post("/ai/auto-tag-all")
async def ai_auto_tag_all(
    body: AutoTagRequest, importer: BookImporter = Depends(get_importer)
) -> dict:
    return {"success": True, "results": await importer.auto_tag_all(body.force)}


# ── Application ────────────────────────────────────────────


async def _handle_error(request: Request, exc: EpubViewerError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(p) for p in e['loc'][1:])}: {e['msg']}" for e in exc.errors()
    )
    err = InvalidInputError(problems or "Invalid request")
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


def create_app(
    config: Optional[AppConfig] = None,
    db: Optional[Database] = None,
    store: Optional[ContentStore] = None,
    assistant: Optional[AssistantEngine] = None,
    importer: Optional[BookImporter] = None,
) -> FastAPI:
    config = config or load_config()
    db = db or Database(config.db_path)
    store = store or ContentStore(config.converted_dir, config.api_prefix)
    assistant = assistant or AssistantEngine(config)
    importer = importer or BookImporter(config, db, store, assistant)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await importer.close()
        await assistant.close()
        db.close()

    app = FastAPI(title="EPUB Viewer", lifespan=lifespan)
    app.state.config = config
    app.state.db = db
    app.state.store = store
    app.state.assistant = assistant
    app.state.importer = importer
    app.add_exception_handler(EpubViewerError, _handle_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.include_router(router, prefix=config.api_prefix)
    return app


def _setup_logging(config: AppConfig) -> None:
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    handler = logging.FileHandler(config.log_path, encoding="utf-8")
    handler.setFormatter(formatter)
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    console.setLevel(logging.INFO)
    root = logging.getLogger("epubviewer")
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)
    root.addHandler(console)


def main() -> None:
    import uvicorn

    config = load_config()
    _setup_logging(config)
    log.info("Starting server on %s:%d (data: %s)", config.host, config.port, config.data_dir)
    uvicorn.run(create_app(config), host=config.host, port=config.port)


if __name__ == "__main__":
    main()

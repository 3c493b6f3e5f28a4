"""
HTTP service for the document scanner.

Holds exactly one scan session. The frontend uploads images, starts
assembly, polls /session for progress and finally downloads the PDF.
"""

import asyncio
import logging
from urllib.parse import quote

from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel

from .cleaner import ImageCleaner
from .config import ScannerConfig
from .layout import PDFRenderer
from .pipeline import Cleaner, DocumentPipeline, Renderer
from .resources import ResourceRegistry, token_from_url
from .session import Session, SessionBusyError

logger = logging.getLogger(__name__)


def content_disposition(filename: str) -> str:
    """Attachment header that survives any filename.

    Latin-1 is all a header can carry, so the plain filename= gets an ASCII
    stand-in and the real name goes in the RFC 5987 filename* parameter.
    """
    fallback = "".join(
        ch if 32 <= ord(ch) < 127 and ch not in '"\\' else "_" for ch in filename
    )
    encoded = quote(filename, safe="")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{encoded}"


class FilenameUpdate(BaseModel):
    name: str


class MoveRequest(BaseModel):
    index: int


def create_app(
    config: ScannerConfig,
    cleaner: Cleaner | None = None,
    renderer: Renderer | None = None,
    resources: ResourceRegistry | None = None,
) -> FastAPI:
    """Build the service around a single session.

    Args:
        config: Scanner configuration
        cleaner: Cleanup collaborator (defaults to the Gemini client)
        renderer: Layout collaborator (defaults to the A4 PDF renderer)
        resources: Registry for display URLs
    """
    app = FastAPI(title="Doc Scanner")

    # CORS for local dev
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    registry = resources if resources is not None else ResourceRegistry()
    app.state.config = config
    app.state.resources = registry
    app.state.session = Session(
        registry,
        default_filename=config.default_filename,
        accepted_mime_types=config.accepted_mime_types,
    )
    app.state.pipeline = DocumentPipeline(
        cleaner or ImageCleaner(config),
        renderer or PDFRenderer(),
    )
    app.state.task = None

    def current_session() -> Session:
        return app.state.session

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok", "model": config.model}

    @app.get("/session")
    async def get_session():
        """Current session state, including progress text."""
        return current_session().snapshot()

    @app.post("/uploads")
    async def upload_images(files: list[UploadFile] = File(...)):
        """Append images to the upload set, in the order given."""
        session = current_session()

        uploads = []
        for upload in files:
            mime_type = upload.content_type or ""
            if mime_type not in config.accepted_mime_types:
                raise HTTPException(
                    status_code=415,
                    detail=f"Unsupported file type for {upload.filename}: {mime_type or 'unknown'}",
                )
            try:
                data = await upload.read()
            finally:
                await upload.close()
            uploads.append((upload.filename or "image", data, mime_type))

        try:
            session.add_files(uploads)
        except SessionBusyError as e:
            raise HTTPException(status_code=409, detail=str(e))

        return session.snapshot()

    @app.delete("/uploads/{item_id}")
    async def remove_image(item_id: str):
        session = current_session()
        try:
            session.remove(item_id)
        except SessionBusyError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Image {item_id} not found")
        return session.snapshot()

    @app.post("/uploads/{item_id}/move")
    async def move_image(item_id: str, request: MoveRequest):
        session = current_session()
        try:
            session.move(item_id, request.index)
        except SessionBusyError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Image {item_id} not found")
        return session.snapshot()

    @app.put("/filename")
    async def set_filename(update: FilenameUpdate):
        session = current_session()
        session.set_filename(update.name)
        return session.snapshot()

    @app.post("/process", status_code=202)
    async def process():
        """Start assembling the PDF in the background."""
        session = current_session()
        try:
            started = session.begin()
        except SessionBusyError as e:
            raise HTTPException(status_code=409, detail=str(e))

        if not started:
            raise HTTPException(status_code=400, detail=session.error_message)

        logger.info(f"Starting assembly of {len(session.items)} images")
        app.state.task = asyncio.create_task(app.state.pipeline.process(session))
        return session.snapshot()

    @app.post("/preview/close")
    async def close_preview():
        session = current_session()
        session.close_preview()
        return session.snapshot()

    @app.post("/reset")
    async def reset():
        """Start over."""
        session = current_session()
        try:
            session.reset()
        except SessionBusyError as e:
            raise HTTPException(status_code=409, detail=str(e))
        return session.snapshot()

    @app.get("/resources/{token}")
    async def get_resource(token: str):
        """Serve an upload preview or the finished PDF."""
        try:
            resource = registry.get(token)
        except KeyError:
            raise HTTPException(status_code=404, detail="Resource not found")
        return Response(content=resource.data, media_type=resource.media_type)

    @app.get("/download")
    async def download():
        session = current_session()
        if not session.pdf_url or session.pdf_url not in registry:
            raise HTTPException(status_code=404, detail="No PDF has been produced")

        resource = registry.get(token_from_url(session.pdf_url))
        return Response(
            content=resource.data,
            media_type="application/pdf",
            headers={"Content-Disposition": content_disposition(session.output_filename)},
        )

    return app

"""
Document assembly: clean every upload, then lay the results out as a PDF.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

from .session import ProcessingState, Session

logger = logging.getLogger(__name__)

UNKNOWN_ERROR_MESSAGE = "An unknown error occurred."


class Cleaner(Protocol):
    async def clean(self, data: bytes, mime_type: str) -> str: ...


class Renderer(Protocol):
    async def render(self, image_uris: list[str | None], title: str | None = None) -> bytes: ...


@dataclass
class PipelineResult:
    """Outcome of one assembly attempt."""

    success: bool
    state: ProcessingState
    message: str
    pdf_url: str | None = None
    page_count: int = 0


class DocumentPipeline:
    """Runs the clean-then-layout pipeline over a session.

    Images are cleaned strictly one after another, in upload order. The
    first failure ends the run; nothing cleaned so far is kept.

    Usage:
        pipeline = DocumentPipeline(ImageCleaner(config), PDFRenderer())
        result = await pipeline.run(session)
    """

    def __init__(self, cleaner: Cleaner, renderer: Renderer) -> None:
        self.cleaner = cleaner
        self.renderer = renderer

    async def run(self, session: Session) -> PipelineResult:
        """Assemble the session's uploads into one PDF.

        Returns:
            PipelineResult mirroring the session's final state
        """
        if not session.begin():
            return PipelineResult(
                success=False,
                state=session.state,
                message=session.error_message,
            )
        return await self.process(session)

    async def process(self, session: Session) -> PipelineResult:
        """Run the steps for a session that has already begun processing."""
        if session.state != ProcessingState.PROCESSING:
            raise ValueError(f"Session is {session.state.value}, not PROCESSING")

        total = len(session.items)
        logger.info(f"Assembling {total} images into {session.output_filename}")

        try:
            # Step 1: clean images
            cleaned_urls = []
            for index, item in enumerate(session.items, start=1):
                session.record_progress(f"Cleaning image {index} of {total}...")
                cleaned_urls.append(await self.cleaner.clean(item.data, item.mime_type))

            session.commit_cleaned(cleaned_urls)

            # Step 2: generate PDF
            session.record_progress("Generating PDF...")
            pdf_bytes = await self.renderer.render(
                [item.cleaned_url for item in session.items],
                title=session.output_filename,
            )

            session.complete(session.resources.acquire(pdf_bytes, "application/pdf"))

        except Exception as e:
            logger.exception("Pipeline failed")
            session.fail(str(e) or UNKNOWN_ERROR_MESSAGE)
            return PipelineResult(
                success=False,
                state=session.state,
                message=session.error_message,
            )

        return PipelineResult(
            success=True,
            state=session.state,
            message=session.progress_message,
            pdf_url=session.pdf_url,
            page_count=sum(1 for item in session.items if item.cleaned_url is not None),
        )

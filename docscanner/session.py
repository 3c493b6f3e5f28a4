"""
Scan session state: the upload set, its status and the produced PDF.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from .resources import ResourceRegistry

logger = logging.getLogger(__name__)

EMPTY_UPLOAD_MESSAGE = "Please upload at least one image."
READY_MESSAGE = "Your PDF is ready!"


class ProcessingState(Enum):
    """Coarse status of a session."""

    IDLE = "IDLE"
    PROCESSING = "PROCESSING"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"


class SessionBusyError(RuntimeError):
    """Raised when the session cannot be changed in its current state."""


@dataclass
class UploadItem:
    """One uploaded image and its cleanup state."""

    id: str
    filename: str
    data: bytes = field(repr=False)
    mime_type: str
    original_url: str
    cleaned_url: str | None = field(default=None, repr=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "filename": self.filename,
            "mimeType": self.mime_type,
            "originalUrl": self.original_url,
            "cleaned": self.cleaned_url is not None,
        }


def pdf_filename(name: str) -> str:
    """Append the .pdf suffix unless it is already there."""
    return name if name.endswith(".pdf") else f"{name}.pdf"


class Session:
    """The state of one document assembly attempt.

    Items keep upload order, which is also page order. Every display URL
    the session acquires is released on removal or reset.

    Usage:
        session = Session(ResourceRegistry())
        session.add_file("page1.jpg", data, "image/jpeg")
        await DocumentPipeline(cleaner, renderer).run(session)
    """

    def __init__(
        self,
        resources: ResourceRegistry,
        default_filename: str = "scanned-documents",
        accepted_mime_types: tuple[str, ...] = ("image/jpeg", "image/png"),
    ) -> None:
        self.resources = resources
        self.accepted_mime_types = accepted_mime_types
        self.items: list[UploadItem] = []
        self.state = ProcessingState.IDLE
        self.pdf_filename = default_filename
        self.pdf_url: str | None = None
        self.progress_message = ""
        self.error_message = ""
        self.show_preview = False

    @property
    def output_filename(self) -> str:
        """Download name for the produced PDF."""
        return pdf_filename(self.pdf_filename)

    def _ensure_idle(self, action: str) -> None:
        if self.state == ProcessingState.PROCESSING:
            raise SessionBusyError(f"Cannot {action} while processing")
        if self.state != ProcessingState.IDLE:
            raise SessionBusyError(
                f"Cannot {action} in state {self.state.value}; start over first"
            )

    def _ensure_not_processing(self, action: str) -> None:
        if self.state == ProcessingState.PROCESSING:
            raise SessionBusyError(f"Cannot {action} while processing")

    def _make_id(self, filename: str) -> str:
        base = f"{filename}-{time.time_ns() // 1_000_000}"
        existing = {item.id for item in self.items}
        item_id = base
        n = 2
        while item_id in existing:
            item_id = f"{base}-{n}"
            n += 1
        return item_id

    def add_file(self, filename: str, data: bytes, mime_type: str) -> UploadItem:
        """Add one image to the end of the upload set.

        Raises:
            SessionBusyError: If the session is not idle
            ValueError: If the image type is not accepted
        """
        self._ensure_idle("add images")
        if mime_type not in self.accepted_mime_types:
            raise ValueError(
                f"Unsupported file type {mime_type!r} for {filename}. "
                f"Accepted: {', '.join(self.accepted_mime_types)}"
            )

        item = UploadItem(
            id=self._make_id(filename),
            filename=filename,
            data=data,
            mime_type=mime_type,
            original_url=self.resources.acquire(data, mime_type),
        )
        self.items.append(item)
        logger.info(f"Added {filename} ({len(self.items)} images)")
        return item

    def add_files(self, files: Iterable[tuple[str, bytes, str]]) -> list[UploadItem]:
        """Add several (filename, data, mime_type) images in order."""
        return [self.add_file(name, data, mime) for name, data, mime in files]

    def get(self, item_id: str) -> UploadItem:
        for item in self.items:
            if item.id == item_id:
                return item
        raise KeyError(item_id)

    def remove(self, item_id: str) -> None:
        """Remove one image and release its display URL.

        Raises:
            SessionBusyError: If the session is not idle
            KeyError: If no such item exists
        """
        self._ensure_idle("remove images")
        item = self.get(item_id)
        self.resources.release(item.original_url)
        self.items.remove(item)
        logger.info(f"Removed {item.filename} ({len(self.items)} images)")

    def move(self, item_id: str, index: int) -> None:
        """Move an image to a new position (clamped to the list bounds)."""
        self._ensure_idle("reorder images")
        item = self.get(item_id)
        self.items.remove(item)
        index = max(0, min(index, len(self.items)))
        self.items.insert(index, item)

    def set_filename(self, name: str) -> None:
        self.pdf_filename = name

    def begin(self) -> bool:
        """Enter PROCESSING if there is anything to process.

        An empty upload set leaves the state alone and sets the inline
        validation message instead.

        Returns:
            True if processing started

        Raises:
            SessionBusyError: If the session is not idle
        """
        if self.state != ProcessingState.IDLE:
            raise SessionBusyError(f"Cannot start processing from {self.state.value}")

        if not self.items:
            self.error_message = EMPTY_UPLOAD_MESSAGE
            return False

        self.state = ProcessingState.PROCESSING
        self.error_message = ""
        self.progress_message = ""
        return True

    def record_progress(self, message: str) -> None:
        self.progress_message = message
        logger.info(message)

    def commit_cleaned(self, cleaned_urls: list[str]) -> None:
        """Attach cleaned results to items, in order."""
        if len(cleaned_urls) != len(self.items):
            raise ValueError(
                f"Expected {len(self.items)} cleaned images, got {len(cleaned_urls)}"
            )
        for item, url in zip(self.items, cleaned_urls):
            item.cleaned_url = url

    def complete(self, pdf_url: str) -> None:
        self.pdf_url = pdf_url
        self.state = ProcessingState.COMPLETE
        self.progress_message = READY_MESSAGE
        self.show_preview = True

    def fail(self, message: str) -> None:
        self.error_message = message
        self.state = ProcessingState.ERROR

    def close_preview(self) -> None:
        self.show_preview = False

    def reset(self) -> None:
        """Start over: release every held resource and return to IDLE.

        Raises:
            SessionBusyError: While processing
        """
        self._ensure_not_processing("start over")

        for item in self.items:
            self.resources.release(item.original_url)
        if self.pdf_url:
            self.resources.release(self.pdf_url)

        self.items = []
        self.state = ProcessingState.IDLE
        self.pdf_url = None
        self.progress_message = ""
        self.error_message = ""
        self.show_preview = False
        logger.info("Session reset")

    def snapshot(self) -> dict:
        """JSON-ready view of the session."""
        return {
            "state": self.state.value,
            "items": [item.to_dict() for item in self.items],
            "pdfFilename": self.pdf_filename,
            "outputFilename": self.output_filename,
            "pdfUrl": self.pdf_url,
            "progressMessage": self.progress_message,
            "errorMessage": self.error_message,
            "showPreview": self.show_preview,
        }

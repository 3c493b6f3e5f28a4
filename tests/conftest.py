"""Shared fixtures: test images and observable collaborator doubles."""

import io
from collections import Counter

import pytest
from PIL import Image

from docscanner.cleaner import CleanupError
from docscanner.datauri import encode_data_uri
from docscanner.resources import ResourceRegistry
from docscanner.session import Session


def make_image(width: int, height: int, fmt: str = "JPEG", orientation: int | None = None) -> bytes:
    """Solid grey image of the given stored pixel size.

    With orientation, an EXIF rotation tag is written as a camera would.
    """
    buffer = io.BytesIO()
    image = Image.new("RGB", (width, height), (200, 200, 200))
    if orientation is None:
        image.save(buffer, fmt)
    else:
        exif = Image.Exif()
        exif[0x0112] = orientation
        image.save(buffer, fmt, exif=exif.tobytes())
    return buffer.getvalue()


class RecordingRegistry(ResourceRegistry):
    """Registry that counts every acquire and release."""

    def __init__(self) -> None:
        super().__init__()
        self.acquired: list[str] = []
        self.released: Counter = Counter()

    def acquire(self, data: bytes, media_type: str) -> str:
        url = super().acquire(data, media_type)
        self.acquired.append(url)
        return url

    def release(self, url: str) -> bool:
        self.released[url] += 1
        return super().release(url)


class FakeCleaner:
    """Echoes images back as data URIs, optionally failing on call k."""

    def __init__(self, session: Session | None = None, fail_on: int | None = None,
                 message: str = "Image generation stopped. Reason: SAFETY.") -> None:
        self.session = session
        self.fail_on = fail_on
        self.message = message
        self.calls: list[tuple[bytes, str]] = []
        self.progress_seen: list[str] = []

    async def clean(self, data: bytes, mime_type: str) -> str:
        self.calls.append((data, mime_type))
        if self.session is not None:
            self.progress_seen.append(self.session.progress_message)
        if self.fail_on == len(self.calls):
            raise CleanupError(self.message)
        return encode_data_uri(data, mime_type)


class FakeRenderer:
    """Records what it was asked to lay out."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[list[str | None]] = []

    async def render(self, image_uris, title=None) -> bytes:
        self.calls.append(list(image_uris))
        if self.error is not None:
            raise self.error
        return b"%PDF-1.7 fake"


@pytest.fixture
def registry() -> RecordingRegistry:
    return RecordingRegistry()


@pytest.fixture
def session(registry) -> Session:
    return Session(registry)


@pytest.fixture
def jpeg():
    """Factory for JPEG bytes of a given size."""
    return make_image

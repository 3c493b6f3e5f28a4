"""Tests for the HTTP service."""

import time

import fitz
import pytest
from fastapi.testclient import TestClient

from conftest import FakeCleaner, make_image
from docscanner.config import ScannerConfig
from docscanner.layout import PDFRenderer
from docscanner.server import create_app


def jpeg_upload(name, width=30, height=20):
    return ("files", (name, make_image(width, height), "image/jpeg"))


def wait_until_done(client, timeout=10.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        state = client.get("/session").json()
        if state["state"] != "PROCESSING":
            return state
        time.sleep(0.02)
    raise AssertionError("pipeline did not finish")


@pytest.fixture
def app(registry):
    config = ScannerConfig(api_key="test-key")
    return create_app(config, cleaner=FakeCleaner(), renderer=PDFRenderer(), resources=registry)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


class TestUploads:
    """Tests for managing the upload set."""

    def test_health(self, client):
        """Health reports the configured model."""
        assert client.get("/health").json()["status"] == "ok"

    def test_upload_and_preview(self, client):
        """Uploaded images are listed and their previews are served."""
        response = client.post("/uploads", files=[jpeg_upload("a.jpg"), jpeg_upload("b.jpg")])
        assert response.status_code == 200
        items = response.json()["items"]
        assert [item["filename"] for item in items] == ["a.jpg", "b.jpg"]

        preview = client.get(items[0]["originalUrl"])
        assert preview.status_code == 200
        assert preview.headers["content-type"] == "image/jpeg"

    def test_unsupported_type(self, client):
        """Non JPEG/PNG uploads are refused and nothing is added."""
        response = client.post(
            "/uploads",
            files=[jpeg_upload("a.jpg"), ("files", ("doc.gif", b"GIF89a", "image/gif"))],
        )
        assert response.status_code == 415
        assert client.get("/session").json()["items"] == []

    def test_remove(self, client, registry):
        """Removing an image releases its preview."""
        items = client.post("/uploads", files=[jpeg_upload("a.jpg")]).json()["items"]
        url = items[0]["originalUrl"]

        response = client.delete(f"/uploads/{items[0]['id']}")

        assert response.json()["items"] == []
        assert registry.released[url] == 1
        assert client.get(url).status_code == 404

    def test_remove_unknown(self, client):
        """Unknown ids give 404."""
        assert client.delete("/uploads/nope").status_code == 404

    def test_move(self, client):
        """Images can be reordered."""
        items = client.post("/uploads", files=[jpeg_upload("a.jpg"), jpeg_upload("b.jpg")]).json()["items"]
        response = client.post(f"/uploads/{items[1]['id']}/move", json={"index": 0})
        assert [item["filename"] for item in response.json()["items"]] == ["b.jpg", "a.jpg"]

    def test_filename(self, client):
        """The output name gets exactly one .pdf suffix."""
        assert client.put("/filename", json={"name": "report"}).json()["outputFilename"] == "report.pdf"
        assert client.put("/filename", json={"name": "report.pdf"}).json()["outputFilename"] == "report.pdf"

    def test_busy_session_refuses_changes(self, client, app):
        """Uploads, removal and reset are refused while processing."""
        items = client.post("/uploads", files=[jpeg_upload("a.jpg")]).json()["items"]
        app.state.session.begin()

        assert client.post("/uploads", files=[jpeg_upload("b.jpg")]).status_code == 409
        assert client.delete(f"/uploads/{items[0]['id']}").status_code == 409
        assert client.post("/reset").status_code == 409
        assert client.post("/process").status_code == 409


class TestProcessing:
    """Tests for assembling and downloading."""

    def test_empty_upload(self, client):
        """Processing nothing is a validation error and stays IDLE."""
        response = client.post("/process")
        assert response.status_code == 400
        assert response.json()["detail"] == "Please upload at least one image."
        state = client.get("/session").json()
        assert state["state"] == "IDLE"
        assert state["errorMessage"] == "Please upload at least one image."

    def test_full_flow(self, client, registry):
        """Upload, process, download, start over."""
        client.post("/uploads", files=[jpeg_upload("a.jpg", 300, 200), jpeg_upload("b.jpg", 100, 200)])
        client.put("/filename", json={"name": "letters"})

        response = client.post("/process")
        assert response.status_code == 202
        assert response.json()["state"] == "PROCESSING"

        state = wait_until_done(client)
        assert state["state"] == "COMPLETE"
        assert state["progressMessage"] == "Your PDF is ready!"
        assert state["showPreview"] is True
        assert all(item["cleaned"] for item in state["items"])

        download = client.get("/download")
        assert download.status_code == 200
        assert download.headers["content-type"] == "application/pdf"
        assert 'filename="letters.pdf"' in download.headers["content-disposition"]
        with fitz.open(stream=download.content, filetype="pdf") as doc:
            assert doc.page_count == 2

        assert client.post("/preview/close").json()["showPreview"] is False

        reset = client.post("/reset").json()
        assert reset["state"] == "IDLE"
        assert reset["items"] == []
        assert reset["pdfUrl"] is None
        assert all(registry.released[url] == 1 for url in registry.acquired)
        assert client.get("/download").status_code == 404

    def test_failure_reported(self, registry):
        """A cleanup failure ends in ERROR with its message."""
        config = ScannerConfig(api_key="test-key")
        app = create_app(
            config,
            cleaner=FakeCleaner(fail_on=2, message="Failed to process image with AI. nope"),
            renderer=PDFRenderer(),
            resources=registry,
        )
        with TestClient(app) as client:
            client.post("/uploads", files=[jpeg_upload("a.jpg"), jpeg_upload("b.jpg"), jpeg_upload("c.jpg")])
            client.post("/process")
            state = wait_until_done(client)

        assert state["state"] == "ERROR"
        assert state["errorMessage"] == "Failed to process image with AI. nope"
        assert state["pdfUrl"] is None
        assert len(app.state.pipeline.cleaner.calls) == 2

    @pytest.mark.parametrize("name, fallback, encoded", [
        ("报告", "__.pdf", "%E6%8A%A5%E5%91%8A.pdf"),
        ('say "hi"', "say _hi_.pdf", "say%20%22hi%22.pdf"),
    ])
    def test_download_any_filename(self, client, name, fallback, encoded):
        """Non-ASCII names and quotes still give a well-formed attachment header."""
        client.post("/uploads", files=[jpeg_upload("a.jpg")])
        client.put("/filename", json={"name": name})
        client.post("/process")
        assert wait_until_done(client)["state"] == "COMPLETE"

        download = client.get("/download")

        assert download.status_code == 200
        assert download.headers["content-disposition"] == (
            f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{encoded}"
        )

    def test_uploads_locked_after_complete(self, client):
        """After a PDF is produced, uploads change only after starting over."""
        items = client.post("/uploads", files=[jpeg_upload("a.jpg")]).json()["items"]
        client.post("/process")
        assert wait_until_done(client)["state"] == "COMPLETE"

        assert client.post("/uploads", files=[jpeg_upload("b.jpg")]).status_code == 409
        assert client.delete(f"/uploads/{items[0]['id']}").status_code == 409
        assert client.post(f"/uploads/{items[0]['id']}/move", json={"index": 0}).status_code == 409
        assert [item["filename"] for item in client.get("/session").json()["items"]] == ["a.jpg"]

        assert client.post("/reset").status_code == 200
        assert client.post("/uploads", files=[jpeg_upload("b.jpg")]).status_code == 200

    def test_uploads_locked_after_error(self, registry):
        """A failed run also has to be reset before uploads change."""
        app = create_app(
            ScannerConfig(api_key="test-key"),
            cleaner=FakeCleaner(fail_on=1, message="nope"),
            renderer=PDFRenderer(),
            resources=registry,
        )
        with TestClient(app) as client:
            client.post("/uploads", files=[jpeg_upload("a.jpg")])
            client.post("/process")
            assert wait_until_done(client)["state"] == "ERROR"

            assert client.post("/uploads", files=[jpeg_upload("b.jpg")]).status_code == 409

    def test_download_before_complete(self, client):
        """There is nothing to download until a PDF exists."""
        assert client.get("/download").status_code == 404

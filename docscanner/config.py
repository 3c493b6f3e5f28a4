"""
Configuration for the document scanner.
"""

import os
from dataclasses import dataclass

DEFAULT_MODEL = "gemini-2.5-flash-image-preview"
DEFAULT_API_URL = "https://generativelanguage.googleapis.com/v1beta"


@dataclass
class ScannerConfig:
    """Configuration for the scanner service.

    Attributes:
        api_key: Credential for the image cleanup service
        model: Image generation model used for cleanup
        api_base_url: Base URL of the generateContent REST API
        request_timeout: Seconds to wait for a single cleanup call

        # Session defaults
        default_filename: Initial output filename (without .pdf)
        accepted_mime_types: Upload types the service accepts
    """

    # Required
    api_key: str

    # Remote service
    model: str = DEFAULT_MODEL
    api_base_url: str = DEFAULT_API_URL
    request_timeout: float = 120.0

    # Session defaults
    default_filename: str = "scanned-documents"
    accepted_mime_types: tuple[str, ...] = ("image/jpeg", "image/png")

    def __post_init__(self) -> None:
        """Validate settings."""
        if not self.api_key or not self.api_key.strip():
            raise RuntimeError("API_KEY environment variable not set")

        if not self.model:
            raise ValueError("model cannot be empty")

        self.api_base_url = self.api_base_url.rstrip("/")

        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be > 0, got {self.request_timeout}")

    @classmethod
    def from_env(cls) -> "ScannerConfig":
        """Build configuration from the process environment.

        Raises:
            RuntimeError: If no API key is set. This is a startup failure.
        """
        api_key = os.getenv("API_KEY") or os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise RuntimeError("API_KEY environment variable not set")

        timeout = os.getenv("DOCSCANNER_TIMEOUT")
        try:
            request_timeout = float(timeout) if timeout else 120.0
        except ValueError:
            raise ValueError(f"DOCSCANNER_TIMEOUT must be a number, got {timeout!r}") from None

        return cls(
            api_key=api_key,
            model=os.getenv("DOCSCANNER_MODEL", DEFAULT_MODEL),
            api_base_url=os.getenv("DOCSCANNER_API_URL", DEFAULT_API_URL),
            request_timeout=request_timeout,
        )

    @property
    def generate_url(self) -> str:
        """Endpoint for the cleanup model's generateContent call."""
        return f"{self.api_base_url}/models/{self.model}:generateContent"

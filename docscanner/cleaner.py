"""
Image cleanup through the Gemini image generation API.

Each photo is sent with a fixed instruction prompt; the model answers with a
cleaned, upright, cropped version of the document.
"""

import base64
import json
import logging

import httpx

from .config import ScannerConfig
from .datauri import encode_data_uri

logger = logging.getLogger(__name__)

ERROR_PREFIX = "Failed to process image with AI."
MALFORMED_MESSAGE = "API did not return an image. The response was empty or malformed."

CLEANUP_PROMPT = """**Critical Task: Orientation Correction**

Your primary and most important task is to ensure the document is oriented correctly for reading. Follow this process precisely:
1.  **Analyze Text Blocks:** Scan the entire image and identify all distinct blocks of text.
2.  **Identify Dominant Content:** Determine which text block represents the main body or the most significant part of the document. This is usually the largest and most detailed section.
3.  **Set Overall Orientation:** The reading direction of this dominant text block defines the final 'upright' orientation for the entire image.
4.  **Rotate Image:** Rotate the entire image so that this dominant content is right-side up. IGNORE the orientation of smaller, secondary text blocks (like payment stubs or mailing addresses) if they conflict with the main content.

**Secondary Image Processing tasks (apply AFTER orientation is corrected):**
*   **Shadow Removal:** Eradicate all shadows completely. The final image must have uniform lighting.
*   **Straighten & Deskew:** Make the document a perfect, non-skewed rectangle.
*   **Background Cleaning:** Ensure the background is a uniform, pure #FFFFFF white.
*   **Clarity Enhancement:** Optimize contrast and brightness for maximum text legibility.
*   **Tight Crop:** Crop exactly to the document's edges, leaving no border or margin.

**Final Output:**
*   You MUST return only the processed image. No text, no comments, no explanations."""


class CleanupError(RuntimeError):
    """The cleanup service did not produce an image."""


def extract_image(result) -> str:
    """Turn a generateContent response into a data URI.

    Args:
        result: Decoded JSON response body, of any shape

    Returns:
        data:<mime>;base64,<payload> of the first image part

    Raises:
        CleanupError: With a description of what the response held instead
    """
    if not isinstance(result, dict):
        raise CleanupError(MALFORMED_MESSAGE)

    candidates = result.get("candidates") or []
    if not candidates:
        raise CleanupError("API response did not contain any candidates.")
    if not isinstance(candidates, list) or not isinstance(candidates[0], dict):
        raise CleanupError(MALFORMED_MESSAGE)
    candidate = candidates[0]

    finish_reason = candidate.get("finishReason")
    if finish_reason and finish_reason != "STOP":
        reason = f"Image generation stopped. Reason: {finish_reason}."
        safety_ratings = candidate.get("safetyRatings")
        if safety_ratings:
            reason += f" Safety Ratings: {json.dumps(safety_ratings, separators=(',', ':'))}"
        raise CleanupError(reason)

    content = candidate.get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        parts = []
    # Parts that are not objects carry neither image nor text
    parts = [part for part in parts if isinstance(part, dict)]

    for part in parts:
        inline = part.get("inlineData")
        if isinstance(inline, dict) and inline.get("data"):
            return f"data:{inline.get('mimeType', 'image/png')};base64,{inline['data']}"

    for part in parts:
        if part.get("text"):
            raise CleanupError(f'API returned text instead of an image: "{part["text"]}"')

    raise CleanupError(MALFORMED_MESSAGE)


class ImageCleaner:
    """Client for the remote cleanup model.

    Usage:
        cleaner = ImageCleaner(ScannerConfig.from_env())
        data_uri = await cleaner.clean(jpeg_bytes, "image/jpeg")
    """

    def __init__(
        self,
        config: ScannerConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Scanner configuration (key, model, endpoint, timeout)
            transport: Optional httpx transport, e.g. a MockTransport in tests
        """
        self.config = config
        self._transport = transport

    def _request_body(self, data: bytes, mime_type: str) -> dict:
        return {
            "contents": [
                {
                    "parts": [
                        {
                            "inlineData": {
                                "mimeType": mime_type,
                                "data": base64.b64encode(data).decode("ascii"),
                            }
                        },
                        {"text": CLEANUP_PROMPT},
                    ]
                }
            ],
            "generationConfig": {"responseModalities": ["IMAGE", "TEXT"]},
        }

    async def clean(self, data: bytes, mime_type: str) -> str:
        """Clean one document photo.

        Args:
            data: Raw image bytes
            mime_type: Image type, e.g. image/jpeg

        Returns:
            Data URI of the cleaned image

        Raises:
            CleanupError: On transport failure or an unusable response
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.config.request_timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    self.config.generate_url,
                    headers={"x-goog-api-key": self.config.api_key},
                    json=self._request_body(data, mime_type),
                )
                response.raise_for_status()
                result = response.json()
            return extract_image(result)
        except CleanupError as e:
            logger.error(f"Error cleaning image: {e}")
            raise CleanupError(f"{ERROR_PREFIX} {e}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error cleaning image: {e}")
            raise CleanupError(f"{ERROR_PREFIX} {e}") from e


class PassthroughCleaner:
    """Returns images unchanged. Used for offline runs."""

    async def clean(self, data: bytes, mime_type: str) -> str:
        return encode_data_uri(data, mime_type)

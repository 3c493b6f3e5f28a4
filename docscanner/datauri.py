"""Helpers for base64 data URIs."""

import base64
import binascii


def encode_data_uri(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def split_data_uri(uri: str) -> tuple[str, str]:
    """Split a data URI into (mime_type, base64 payload).

    Raises:
        ValueError: If the URI is not a base64 data URI
    """
    header, sep, payload = uri.partition(";base64,")
    if not sep or not header.startswith("data:"):
        raise ValueError("Failed to parse base64 string from data URI.")
    mime_type = header[len("data:"):]
    if not mime_type or not payload:
        raise ValueError("Failed to parse base64 string from data URI.")
    return mime_type, payload


def decode_data_uri(uri: str) -> tuple[str, bytes]:
    """Decode a data URI into (mime_type, raw bytes)."""
    mime_type, payload = split_data_uri(uri)
    try:
        return mime_type, base64.b64decode(payload, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e

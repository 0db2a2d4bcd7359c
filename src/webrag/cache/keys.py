"""Content-hash cache keys."""

from __future__ import annotations

import hashlib


def content_hash(data: str | bytes) -> str:
    """Return the SHA-256 hex digest of text or bytes."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def _normalise_content_type(content_type: str) -> str:
    media_type, *params = content_type.split(";")
    charset = ""
    for param in params:
        key, _, value = param.strip().partition("=")
        if key.lower() == "charset":
            charset = value.strip().strip('"').strip("'").lower()
    return f"{media_type.strip().lower()};charset={charset}"


def extraction_key(body: bytes, content_type: str = "") -> str:
    """Key for the extracted text of a raw page body.

    Extraction depends on the media type and charset as well as the bytes, so
    both are folded into the hash.
    """
    header = _normalise_content_type(content_type).encode("utf-8") + b"\n"
    return f"extract:{content_hash(header + body)}"


def chunks_key(text_hash: str, max_words: int, model_name: str) -> str:
    """Key for the chunks and vectors derived from one extracted text."""
    return f"chunks:{text_hash}:{max_words}:{model_name}"

"""
Content fingerprints used to recognise re-submitted documents.

A fingerprint is the SHA-256 hex digest (64 chars) of the submitted content. Empty input is
hashed as the ``b"empty"`` marker so that "nothing" still has one stable fingerprint.
"""

from __future__ import annotations

import hashlib

EMPTY_MARKER = b"empty"
FINGERPRINT_LENGTH = 64


def fingerprint_bytes(data: bytes | None) -> str:
    return hashlib.sha256(data or EMPTY_MARKER).hexdigest()


def fingerprint_text(text: str | None) -> str:
    if not text:
        return fingerprint_bytes(None)
    return fingerprint_bytes(text.encode("utf-8", errors="surrogatepass"))

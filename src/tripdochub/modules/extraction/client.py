"""
Extraction client: turns a stored file or a forwarded email into proposed documents.

The oracle (an OpenAI-compatible chat completions endpoint) is slow, sometimes wrong and
sometimes down. `ExtractionClient` never raises: whatever goes wrong, a file submission
yields one generic `other` document the user can categorise by hand.
"""

from __future__ import annotations

import html
import json
import re
import time
from datetime import UTC, datetime
from typing import Any, Protocol

import httpx

from tripdochub.core.config import settings
from tripdochub.core.fingerprint import fingerprint_text
from tripdochub.core.logging import get_logger, log_event, monotonic_ms
from tripdochub.modules.documents.models import DocumentCategory
from tripdochub.modules.extraction.prompts import DOCUMENT_PROMPT, EMAIL_PROMPT, email_context
from tripdochub.modules.extraction.repair import coerce_details, repair_details
from tripdochub.modules.extraction.schemas import ExtractionResult, ProposedDocument

logger = get_logger(__name__)

FALLBACK_DOCUMENT_TYPE = "Document"
FALLBACK_TITLE = "Uploaded Document"
UNTITLED = "Untitled Document"
EMAIL_DEFAULT = "Email Booking"
EMAIL_FALLBACK_TITLE = "Forwarded Email"


class OracleError(RuntimeError):
    pass


class ExtractionOracle(Protocol):
    def complete(self, content: list[dict[str, Any]]) -> str:
        """Send one user message made of `content` parts; return the raw reply text."""


class OpenAIChatOracle:
    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str,
        model: str,
        timeout: float,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.transport = transport

    def complete(self, content: list[dict[str, Any]]) -> str:
        if not self.api_key:
            raise OracleError("OPENAI_API_KEY is not configured")

        payload = {
            "model": self.model,
            "temperature": 0,
            "response_format": {"type": "json_object"},
            "messages": [{"role": "user", "content": content}],
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        with httpx.Client(
            timeout=self.timeout, transport=self.transport, follow_redirects=True
        ) as client:
            resp = client.post(f"{self.base_url}/chat/completions", headers=headers, json=payload)
            resp.raise_for_status()
            raw = resp.json()

        try:
            message = raw["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as e:
            raise OracleError("Unexpected response shape") from e
        if not isinstance(message, dict):
            raise OracleError("Unexpected response shape")
        if message.get("refusal"):
            raise OracleError("Oracle refused the request")

        reply = message.get("content")
        # Some gateways return content as a list of typed parts.
        if isinstance(reply, list):
            reply = next(
                (
                    part.get("text")
                    for part in reply
                    if isinstance(part, dict) and part.get("type") == "text"
                ),
                None,
            )
        if not isinstance(reply, str) or not reply.strip():
            raise OracleError("Empty response")
        return reply


class ExtractionClient:
    def __init__(self, oracle: ExtractionOracle) -> None:
        self.oracle = oracle

    def extract(
        self,
        file_url: str,
        mime_type: str,
        context_hints: str | None = None,
        *,
        fingerprint: str | None = None,
    ) -> ExtractionResult:
        """
        Extract bookings from a stored image or PDF.

        `fingerprint` overrides the URL-based one when the caller hashed the bytes itself.
        """
        fingerprint = fingerprint or fingerprint_text(file_url)
        start = time.monotonic()
        try:
            content = _file_content(file_url, mime_type, context_hints)
            documents = _parse_documents(
                self.oracle.complete(content),
                default_type=FALLBACK_DOCUMENT_TYPE,
                default_title=UNTITLED,
            )
        except Exception as e:  # noqa: BLE001
            log_event(
                logger,
                "extraction.fallback",
                source="file",
                mime_type=mime_type,
                error_type=type(e).__name__,
                error=str(e)[:300],
                duration_ms=monotonic_ms(start),
            )
            return ExtractionResult(
                documents=[_fallback_document(FALLBACK_TITLE)],
                fingerprint=fingerprint,
                fallback=True,
            )

        log_event(
            logger,
            "extraction.complete",
            source="file",
            mime_type=mime_type,
            document_count=len(documents),
            duration_ms=monotonic_ms(start),
        )
        return ExtractionResult(documents=documents, fingerprint=fingerprint)

    def extract_from_email_body(
        self,
        html_body: str | None,
        plain_body: str | None,
        subject: str | None = None,
        sender: str | None = None,
    ) -> ExtractionResult:
        fingerprint = email_body_fingerprint(html_body, plain_body)
        max_chars = settings.email_body_max_chars
        text = clean_email_body(html_body, plain_body, max_chars=max_chars)
        if len(text) < settings.email_body_min_chars and html_body and plain_body:
            # Stub HTML parts ("see plain text version") defer to the plain body.
            text = clean_email_body(None, plain_body, max_chars=max_chars)
        if len(text) < settings.email_body_min_chars:
            log_event(logger, "extraction.email.too_short", length=len(text))
            return ExtractionResult(documents=[], fingerprint=fingerprint)

        start = time.monotonic()
        prompt = EMAIL_PROMPT + "\n\n" + email_context(subject=subject, sender=sender) + text
        try:
            documents = _parse_documents(
                self.oracle.complete([{"type": "text", "text": prompt}]),
                default_type=EMAIL_DEFAULT,
                default_title=EMAIL_DEFAULT,
            )
        except Exception as e:  # noqa: BLE001
            log_event(
                logger,
                "extraction.fallback",
                source="email",
                error_type=type(e).__name__,
                error=str(e)[:300],
                duration_ms=monotonic_ms(start),
            )
            return ExtractionResult(
                documents=[_fallback_document((subject or "").strip() or EMAIL_FALLBACK_TITLE)],
                fingerprint=fingerprint,
                fallback=True,
            )

        log_event(
            logger,
            "extraction.complete",
            source="email",
            document_count=len(documents),
            duration_ms=monotonic_ms(start),
        )
        return ExtractionResult(documents=documents, fingerprint=fingerprint)


def email_body_fingerprint(html_body: str | None, plain_body: str | None) -> str:
    return fingerprint_text(html_body or plain_body)


def build_extraction_client() -> ExtractionClient:
    return ExtractionClient(
        OpenAIChatOracle(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.openai_model,
            timeout=float(settings.extraction_timeout_seconds),
        )
    )


def _file_content(
    file_url: str, mime_type: str, context_hints: str | None
) -> list[dict[str, Any]]:
    mime = (mime_type or "").lower()
    if mime.startswith("image/"):
        reference: dict[str, Any] = {
            "type": "image_url",
            "image_url": {"url": file_url, "detail": "high"},
        }
    elif mime == "application/pdf":
        reference = {
            "type": "file_url",
            "file_url": {"url": file_url, "mime_type": "application/pdf"},
        }
    else:
        raise OracleError(f"Unsupported file type: {mime_type}")

    prompt = DOCUMENT_PROMPT
    if context_hints:
        prompt += "\n\nAdditional context:\n" + context_hints.strip()
    return [{"type": "text", "text": prompt}, reference]


def _parse_documents(
    reply: str, *, default_type: str, default_title: str
) -> list[ProposedDocument]:
    obj = _parse_json_object(reply)
    if not isinstance(obj, dict):
        raise OracleError("Reply is not a JSON object")
    items = obj.get("documents")
    if items is None:
        return []
    if not isinstance(items, list):
        raise OracleError("`documents` is not a list")

    out: list[ProposedDocument] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        category = DocumentCategory.coerce(item.get("category"))
        details = repair_details(category, coerce_details(item.get("details")))
        out.append(
            ProposedDocument(
                category=category,
                document_type=_text(item.get("documentType")) or default_type,
                title=_text(item.get("title")) or default_title,
                subtitle=_text(item.get("subtitle")),
                details=details,
                document_date=parse_document_date(item.get("documentDate")),
            )
        )
    return out


def _fallback_document(title: str) -> ProposedDocument:
    return ProposedDocument(
        category=DocumentCategory.OTHER,
        document_type=FALLBACK_DOCUMENT_TYPE,
        title=title,
        subtitle=None,
        details={},
        document_date=None,
    )


def _text(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    s = str(value).strip()
    return s or None


def parse_document_date(value: Any) -> datetime | None:
    """ISO date or timestamp; the offset it was written with is kept, naive values are UTC."""
    s = _text(value)
    if not s:
        return None
    try:
        parsed = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def _parse_json_object(content: str) -> Any:
    c = (content or "").strip()
    if not c:
        return None
    try:
        return json.loads(c)
    except json.JSONDecodeError:
        pass

    # Models sometimes wrap the object in prose or a code fence.
    m = re.search(r"\{.*\}", c, re.S)
    if not m:
        return None
    try:
        return json.loads(m.group(0))
    except json.JSONDecodeError:
        return None


_SCRIPT_STYLE = re.compile(r"<(script|style)[^>]*>.*?</\1>", re.I | re.S)
_BLOCK_BREAKS = (
    (re.compile(r"<br\s*/?>", re.I), "\n"),
    (re.compile(r"</p>", re.I), "\n\n"),
    (re.compile(r"</div>", re.I), "\n"),
    (re.compile(r"</tr>", re.I), "\n"),
    (re.compile(r"</td>", re.I), " | "),
)
_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")


def clean_email_body(html_body: str | None, plain_body: str | None, *, max_chars: int) -> str:
    """HTML body (preferred) or plain body reduced to one bounded line of text."""
    if html_body:
        text = _SCRIPT_STYLE.sub("", html_body)
        for pattern, replacement in _BLOCK_BREAKS:
            text = pattern.sub(replacement, text)
        text = html.unescape(_TAG.sub("", text))
        text = _WHITESPACE.sub(" ", text).strip()
    else:
        text = (plain_body or "").strip()

    if max_chars > 0 and len(text) > max_chars:
        text = text[:max_chars] + "..."
    return text

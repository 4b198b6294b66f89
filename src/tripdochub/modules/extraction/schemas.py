from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from tripdochub.modules.documents.models import DocumentCategory


class ProposedDocument(BaseModel):
    category: DocumentCategory = DocumentCategory.OTHER
    document_type: str
    title: str
    subtitle: str | None = None
    details: dict[str, str] = Field(default_factory=dict)
    document_date: datetime | None = None


class ExtractionResult(BaseModel):
    documents: list[ProposedDocument] = Field(default_factory=list)
    fingerprint: str
    fallback: bool = False

"""Document text extraction for uploaded source material.

Supported input types: PDF, DOCX and TXT. Each extractor returns the
plain text of the document plus a page count where the format has one.
"""

import io
from dataclasses import dataclass
from typing import Optional

import docx
import pdfplumber

from .text import normalize_whitespace


@dataclass
class ExtractedDocument:
    content: str
    page_count: Optional[int] = None


def extract_document_text(file_bytes: bytes, filename: str) -> ExtractedDocument:
    """Dispatch to the appropriate extractor based on file extension.

    Raises `ValueError` for unsupported types and for documents without
    any readable text.
    """
    name = filename.lower()
    if name.endswith('.pdf'):
        doc = extract_pdf(file_bytes)
    elif name.endswith('.docx'):
        doc = extract_docx(file_bytes)
    elif name.endswith('.txt'):
        doc = extract_txt(file_bytes)
    else:
        raise ValueError('Unsupported file type; upload PDF, DOCX or TXT')
    if not doc.content:
        raise ValueError('No readable text found in the document')
    return doc


def extract_pdf(b: bytes) -> ExtractedDocument:
    """Extract text from every PDF page and join it."""
    text_parts = []
    with pdfplumber.open(io.BytesIO(b)) as pdf:
        for page in pdf.pages:
            text_parts.append(page.extract_text() or '')
        page_count = len(pdf.pages)
    return ExtractedDocument(content=normalize_whitespace('\n\n'.join(text_parts)), page_count=page_count)


def extract_docx(b: bytes) -> ExtractedDocument:
    """Join the non-empty paragraphs of a DOCX document."""
    document = docx.Document(io.BytesIO(b))
    paragraphs = [(p.text or '').strip() for p in document.paragraphs]
    return ExtractedDocument(content=normalize_whitespace('\n'.join(p for p in paragraphs if p)))


def extract_txt(b: bytes) -> ExtractedDocument:
    try:
        text = b.decode('utf-8')
    except UnicodeDecodeError as exc:
        raise ValueError('Text file must be UTF-8 encoded') from exc
    return ExtractedDocument(content=normalize_whitespace(text))

from __future__ import annotations
import logging
import os, re, unicodedata
from typing import List

import fitz  # PyMuPDF
import pdfplumber
from docx import Document

from .errors import UnreadableDocument

logger = logging.getLogger(__name__)

MIN_TEXT_CHARS = int(os.getenv("MIN_TEXT_CHARS", "50"))
SUPPORTED_EXTS = {".pdf", ".docx"}


def _norm_ws(s: str) -> str:
    if not s:
        return ""
    s = s.replace("\ufeff", "")
    s = "".join(" " if (ch.isspace() or unicodedata.category(ch) == "Zs") else ch for ch in s)
    return re.sub(r"\s+", " ", s).strip()


def _page_blocks_sorted(page):
    blocks = page.get_text("blocks") or []
    blocks.sort(key=lambda b: (round(b[1], 1), round(b[0], 1)))
    return blocks


def _blocks_to_text(blocks) -> str:
    lines = []
    for b in blocks:
        t = (b[4] or "").strip()
        if t:
            lines.append(t)
    return "\n".join(lines)


def read_pdf_text(path: str) -> str:
    """Blocks in reading order; pdfplumber rescue when PyMuPDF finds almost nothing."""
    assembled: List[str] = []
    with fitz.open(path) as doc:
        for page in doc:
            raw = _blocks_to_text(_page_blocks_sorted(page)) or (page.get_text("text") or "")
            assembled.append(raw)
    text = "\n".join(assembled).strip()

    if len(_norm_ws(text)) < 120:
        try:
            with pdfplumber.open(path) as pdf:
                text2 = "\n".join((p.extract_text() or "") for p in pdf.pages)
            if len(_norm_ws(text2)) > len(_norm_ws(text)):
                text = text2
        except Exception as e:
            logger.warning("pdfplumber rescue failed for %s: %s", path, type(e).__name__)

    return text or ""


def read_docx_text(path: str) -> str:
    doc = Document(path)
    lines = [p.text for p in doc.paragraphs]
    for table in doc.tables:
        for row in table.rows:
            lines.append(" | ".join(c.text.strip() for c in row.cells if c.text.strip()))
    return "\n".join(ln for ln in lines if ln and ln.strip())


def extract_text(path: str) -> str:
    """
    Text of a PDF or DOCX resume.

    Raises ValueError for other file types and UnreadableDocument when fewer
    than MIN_TEXT_CHARS characters survive whitespace normalization (scanned
    PDFs, empty files).
    """
    ext = os.path.splitext(path)[1].lower()
    if ext not in SUPPORTED_EXTS:
        raise ValueError(f"Unsupported file type: {ext}")

    try:
        text = read_pdf_text(path) if ext == ".pdf" else read_docx_text(path)
    except Exception as e:
        raise UnreadableDocument(f"Could not read {os.path.basename(path)}: {type(e).__name__}") from e

    if len(_norm_ws(text)) < MIN_TEXT_CHARS:
        raise UnreadableDocument(
            "The document has too little text to work with",
            chars=len(_norm_ws(text)),
            minimum=MIN_TEXT_CHARS,
        )
    logger.info("Extracted %d chars from %s", len(text), os.path.basename(path))
    return text

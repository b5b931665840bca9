#!/usr/bin/env python3
"""
Ingestion module for the store assistant.

Turns an uploaded product CSV into ProductRecord objects and an uploaded
text/markdown file into a KnowledgeDocument. Both are pure transforms; reading
the upload itself is the caller's job, but undecodable bytes are reported as
FileReadError so they can be told apart from "no valid products".
"""

import itertools
import re
import time
from typing import Dict, List, Optional

from ..schemas.io_models import DocumentType, KnowledgeDocument, ProductRecord
from ..utils.logger import get_logger

logger = get_logger("ingest")

PLACEHOLDER_IMAGE_URL = "https://picsum.photos/200/200?random={index}"

# Exact header names, checked before any substring matching.
FIELD_ALIASES = {
    "name": ("name", "title", "product_name"),
    "price": ("price", "regular_price", "sale_price"),
    "category": ("category", "categories"),
    "description": ("description", "short_description", "desc"),
    "stock_status": ("stockstatus", "stock_status", "in_stock", "stock"),
    "image_url": ("imageurl", "image_url", "image", "images"),
    "id": ("id", "sku", "product_id"),
}

# Substring fallback; the order of this list is the tie-break between fields.
FIELD_TOKENS = [
    ("name", ("name", "title")),
    ("price", ("price",)),
    ("category", ("categ",)),
    ("description", ("desc",)),
    ("stock_status", ("stock",)),
    ("image_url", ("image",)),
    ("id", ("id", "sku")),
]

_doc_counter = itertools.count(1)


class IngestError(Exception):
    """Base class for upload problems the caller should show to the user."""


class FileReadError(IngestError):
    """The uploaded file could not be read as text."""


def _strip_wrapping_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
        return value[1:-1]
    return value


def normalize_header(header: str) -> str:
    """Lower-case, trim, drop surrounding quotes and turn inner whitespace into underscores."""
    h = _strip_wrapping_quotes(header.strip()).strip().lower()
    return re.sub(r"\s+", "_", h)


def split_csv_line(line: str) -> List[str]:
    """
    Split one CSV row on commas that are outside double quotes.

    Quote characters toggle the quoted state and are not copied into the value.
    """
    values = []
    in_quotes = False
    current = []
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            values.append(_strip_wrapping_quotes("".join(current).strip()))
            current = []
        else:
            current.append(char)
    values.append(_strip_wrapping_quotes("".join(current).strip()))
    return values


def map_headers(headers: List[str]) -> Dict[str, int]:
    """
    Resolve canonical product fields to column positions.

    Exact aliases win over substring matches. In the substring pass fields are
    resolved in FIELD_TOKENS order and each takes the left-most header that is
    still free, so a header never feeds two fields ("id_category" -> category).
    """
    mapping: Dict[str, int] = {}
    claimed = set()

    for field, aliases in FIELD_ALIASES.items():
        for idx, header in enumerate(headers):
            if idx not in claimed and header in aliases:
                mapping[field] = idx
                claimed.add(idx)
                break

    for field, tokens in FIELD_TOKENS:
        if field in mapping:
            continue
        for idx, header in enumerate(headers):
            if idx in claimed:
                continue
            if any(tok in header for tok in tokens):
                mapping[field] = idx
                claimed.add(idx)
                break

    return mapping


def _value(values: List[str], idx: Optional[int]) -> str:
    if idx is None:
        return ""
    return values[idx].strip()


def build_product(values: List[str], headers: List[str], mapping: Dict[str, int], row_index: int) -> ProductRecord:
    """Build one record from a row, backfilling every blank canonical field."""
    def get(field: str) -> str:
        return _value(values, mapping.get(field))

    mapped = set(mapping.values())
    extra = {
        header: values[idx].strip()
        for idx, header in enumerate(headers)
        if idx not in mapped and header
    }
    return ProductRecord(
        id=get("id") or f"prod-{row_index}",
        name=get("name") or f"Unknown Product {row_index}",
        price=get("price") or "0.00",
        category=get("category") or "Uncategorized",
        description=get("description") or "No description available.",
        stock_status=get("stock_status") or "In Stock",
        image_url=get("image_url") or PLACEHOLDER_IMAGE_URL.format(index=row_index),
        extra=extra,
    )


def ingest_csv(raw_text: str) -> List[ProductRecord]:
    """
    Parse product CSV text into records.

    Args:
        raw_text: Full CSV text; the first non-empty line is the header row

    Returns:
        One ProductRecord per well-formed data row; empty when the text has
        fewer than two non-empty lines or no row survives
    """
    lines = [line for line in (raw_text or "").splitlines() if line.strip()]
    if len(lines) < 2:
        logger.info("CSV ingest: fewer than 2 non-empty lines, nothing to import")
        return []

    headers = [normalize_header(h) for h in split_csv_line(lines[0])]
    mapping = map_headers(headers)

    products: List[ProductRecord] = []
    skipped = 0
    for row_index, line in enumerate(lines[1:], start=1):
        values = split_csv_line(line)
        if len(values) < len(headers):
            skipped += 1
            continue
        products.append(build_product(values, headers, mapping, row_index))

    logger.info(f"CSV ingest: {len(products)} products parsed, {skipped} malformed rows skipped")
    return products


def _decode(raw: bytes, filename: str) -> str:
    try:
        return raw.decode("utf-8-sig")
    except (UnicodeDecodeError, AttributeError) as e:
        logger.warning(f"Failed to read upload {filename!r}: {e}")
        raise FileReadError("Failed to read file") from e


def ingest_csv_bytes(raw: bytes, filename: str = "products.csv") -> List[ProductRecord]:
    """Decode an uploaded CSV and parse it; raises FileReadError if it is not text."""
    return ingest_csv(_decode(raw, filename))


def _new_document_id() -> str:
    return f"doc-{time.time_ns()}-{next(_doc_counter)}"


def ingest_document(filename: str, raw_text: str) -> KnowledgeDocument:
    """Wrap an uploaded text or markdown file; content is kept exactly as given."""
    doc_type = DocumentType.markdown if filename.lower().endswith(".md") else DocumentType.text
    return KnowledgeDocument(
        id=_new_document_id(),
        name=filename,
        content=raw_text,
        type=doc_type,
    )


def ingest_document_bytes(filename: str, raw: bytes) -> KnowledgeDocument:
    return ingest_document(filename, _decode(raw, filename))

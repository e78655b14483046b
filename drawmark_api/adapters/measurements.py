"""Measurement-table helpers that surface the core parser through the API."""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List

from drawmark_core.config import load_config
from drawmark_core.pdf_parser import (
    FALLBACK_MEASUREMENTS,
    TextFragment,
    fragments_from_dicts,
    parse_pages,
)
from drawmark_core.pdf_source import PdfPlumberSource, SourceProvider

# pdfplumber is importable up front, so the server engine is ready at once
pdf_engine = SourceProvider(PdfPlumberSource())

Emit = Callable[[str, Dict[str, Any]], Awaitable[None]]


def _pages(raw: Iterable[Iterable[Dict[str, Any]]]) -> List[List[TextFragment]]:
    try:
        return fragments_from_dicts(raw)
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"Malformed fragment: {exc}") from exc


def parse_fragments(payload: Dict[str, Any]) -> Dict[str, Any]:
    pages = _pages(payload.get("pages", []))
    epsilon = float(payload.get("rowEpsilon") or load_config().row_epsilon)
    return parse_pages(pages, epsilon).asdict()


def fallback_table() -> List[Dict[str, Any]]:
    return [row.asdict() for row in FALLBACK_MEASUREMENTS]


async def parse_job(payload: Dict[str, Any], emit: Emit) -> Dict[str, Any]:
    """Parse either inline ``pages`` or a server-side ``path``, reporting per page."""
    epsilon = float(payload.get("rowEpsilon") or load_config().row_epsilon)
    if payload.get("path"):
        path = Path(str(payload["path"]))
        if not path.exists():
            raise ValueError(f"PDF not found: {path}")
        await emit("progress", {"message": f"Reading {path.name}"})
        result = await pdf_engine.load_measurements(path, epsilon=epsilon)
        await emit("progress", {"message": f"Read {len(result.measurements)} measurement(s)"})
    else:
        pages = _pages(payload.get("pages", []))
        total = len(pages)
        for number, page in enumerate(pages, start=1):
            await emit("progress", {"page": number, "pages": total, "fragments": len(page)})
            await asyncio.sleep(0)
        result = parse_pages(pages, epsilon)
    if result.warning:
        await emit("warning", {"message": result.warning})
    return result.asdict()

"""Sources of positioned text for the measurement parser."""
from __future__ import annotations

import asyncio
import json
import logging
import threading
from pathlib import Path
from typing import Any, List, Optional, Protocol, Sequence

import pdfplumber

from .errors import PdfSourceError
from .pdf_parser import (
    FALLBACK_WARNING,
    SOURCE_ERROR_WARNING,
    ParseResult,
    TextFragment,
    fallback_result,
    fragments_from_dicts,
    parse_pages,
    ROW_EPSILON,
)

logger = logging.getLogger(__name__)

ENGINE_UNAVAILABLE_WARNING = "PDFエンジンのロードに失敗しました"

Pages = List[List[TextFragment]]


class FragmentSource(Protocol):
    def extract(self, path: str | Path) -> Pages:
        ...


class PdfPlumberSource:
    """Read words with pdfplumber, one list of fragments per page.

    pdfplumber reports ``top``/``bottom`` from the top edge; the parser wants
    PDF user space, so y is flipped against the page height and taken at the
    word's bottom edge (its baseline).
    """

    def __init__(self, x_tolerance: float = 1.5, y_tolerance: float = 2.0):
        self.x_tolerance = x_tolerance
        self.y_tolerance = y_tolerance

    def extract(self, path: str | Path) -> Pages:
        pdf_path = Path(path)
        if not pdf_path.exists():
            raise FileNotFoundError(pdf_path)
        pages: Pages = []
        try:
            with pdfplumber.open(pdf_path) as pdf:
                for page in pdf.pages:
                    words = page.extract_words(
                        x_tolerance=self.x_tolerance,
                        y_tolerance=self.y_tolerance,
                        keep_blank_chars=False,
                    )
                    height = float(page.height)
                    pages.append(
                        [TextFragment(w["text"], float(w["x0"]), height - float(w["bottom"])) for w in words]
                    )
        except Exception as exc:  # pdfminer raises a zoo of parser errors
            raise PdfSourceError(f"Could not read {pdf_path.name}: {exc}") from exc
        logger.info("Read %d page(s) from %s", len(pages), pdf_path)
        return pages


class StaticSource:
    """Pre-extracted pages, e.g. from a JSON dump of ``{text, x, y}`` items."""

    def __init__(self, pages: Sequence[Sequence[TextFragment]]):
        self.pages: Pages = [list(page) for page in pages]

    def extract(self, path: str | Path | None = None) -> Pages:
        return [list(page) for page in self.pages]

    @classmethod
    def from_json(cls, data: Any) -> "StaticSource":
        if isinstance(data, (str, Path)):
            with Path(data).open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        if isinstance(data, dict):
            data = data.get("pages", [])
        if not isinstance(data, list):
            raise ValueError("fragment JSON must be a list of pages or {'pages': [...]}")
        try:
            return cls(fragments_from_dicts(data))
        except (KeyError, TypeError) as exc:
            raise ValueError(f"malformed fragment: {exc}") from exc


class SourceProvider:
    """Holds the fragment source once it becomes available.

    Front ends call :meth:`provide` when the PDF engine is ready (possibly
    from a worker thread); :meth:`load_measurements` awaits that instead of
    polling. Each waiter gets a future on its own loop, so one provider can
    serve several ``asyncio.run`` calls.
    """

    def __init__(self, source: Optional[FragmentSource] = None, epsilon: float = ROW_EPSILON):
        self._source = source
        self._error: Optional[BaseException] = None
        self._waiters: List[asyncio.Future] = []
        self._lock = threading.Lock()
        self.epsilon = epsilon

    @property
    def ready(self) -> bool:
        return self._source is not None

    def _settle(self, source: Optional[FragmentSource], error: Optional[BaseException]) -> None:
        with self._lock:
            self._source, self._error = source, error
            waiters, self._waiters = self._waiters, []
        for future in waiters:

            def apply(future=future):
                if future.done():
                    return
                if error is not None:
                    future.set_exception(error)
                else:
                    future.set_result(source)

            future.get_loop().call_soon_threadsafe(apply)

    def provide(self, source: FragmentSource) -> None:
        self._settle(source, None)

    def fail(self, error: BaseException) -> None:
        self._settle(None, error)

    async def wait_ready(self, timeout: Optional[float] = None) -> FragmentSource:
        with self._lock:
            if self._source is not None:
                return self._source
            if self._error is not None:
                raise self._error
            future = asyncio.get_running_loop().create_future()
            self._waiters.append(future)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            with self._lock:
                if future in self._waiters:
                    self._waiters.remove(future)

    async def load_measurements(
        self,
        path: str | Path | None,
        timeout: Optional[float] = 10.0,
        epsilon: Optional[float] = None,
    ) -> ParseResult:
        """Extract and parse ``path``; every failure degrades to the fallback table."""
        try:
            source = await self.wait_ready(timeout)
        except asyncio.TimeoutError:
            logger.error("PDF engine did not become ready within %ss", timeout)
            return fallback_result(ENGINE_UNAVAILABLE_WARNING)
        except Exception as exc:  # engine load failures arrive as arbitrary errors
            logger.error("PDF engine unavailable: %s", exc)
            return fallback_result(ENGINE_UNAVAILABLE_WARNING)
        try:
            pages = await asyncio.to_thread(source.extract, path)
        except Exception as exc:  # pdfminer and custom sources raise anything
            logger.error("PDF parse error: %s", exc)
            return fallback_result(SOURCE_ERROR_WARNING)
        return parse_pages(pages, self.epsilon if epsilon is None else epsilon)


def parse_pdf(path: str | Path, epsilon: float = ROW_EPSILON) -> ParseResult:
    """Synchronous helper for the CLI, where there is no engine to wait for."""
    try:
        pages = PdfPlumberSource().extract(path)
    except PdfSourceError as exc:
        logger.error("PDF parse error: %s", exc)
        return fallback_result(SOURCE_ERROR_WARNING)
    return parse_pages(pages, epsilon)


__all__ = [
    "ENGINE_UNAVAILABLE_WARNING",
    "FALLBACK_WARNING",
    "FragmentSource",
    "PdfPlumberSource",
    "SourceProvider",
    "StaticSource",
    "parse_pdf",
]

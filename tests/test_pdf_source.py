from __future__ import annotations

import asyncio
import json
import threading

import pytest

from drawmark_core.errors import PdfSourceError
from drawmark_core.pdf_parser import FALLBACK_WARNING, SOURCE_ERROR_WARNING
from drawmark_core.pdf_source import (
    ENGINE_UNAVAILABLE_WARNING,
    PdfPlumberSource,
    SourceProvider,
    StaticSource,
    parse_pdf,
)


def as_dicts(page):
    return [{"text": f.text, "x": f.x, "y": f.y} for f in page]


def test_static_source_from_json_shapes(tmp_path, free_page):
    source = StaticSource.from_json({"pages": [as_dicts(free_page)]})
    assert source.extract() == [free_page]
    path = tmp_path / "fragments.json"
    path.write_text(json.dumps([as_dicts(free_page)], ensure_ascii=False), encoding="utf-8")
    assert StaticSource.from_json(str(path)).extract() == [free_page]
    with pytest.raises(ValueError):
        StaticSource.from_json({"pages": [[{"text": "x"}]]})
    with pytest.raises(ValueError):
        StaticSource.from_json(42)


def test_missing_pdf_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        PdfPlumberSource().extract(tmp_path / "nope.pdf")
    with pytest.raises(FileNotFoundError):
        parse_pdf(tmp_path / "nope.pdf")


def test_unreadable_pdf_degrades_to_fallback(tmp_path):
    path = tmp_path / "broken.pdf"
    path.write_bytes(b"this is not a pdf")
    with pytest.raises(PdfSourceError):
        PdfPlumberSource().extract(path)
    result = parse_pdf(path)
    assert result.used_fallback and result.warning == SOURCE_ERROR_WARNING


def test_provider_waits_for_late_source(free_page):
    async def scenario():
        provider = SourceProvider()
        task = asyncio.create_task(provider.load_measurements("report.pdf", timeout=5))
        await asyncio.sleep(0)
        assert not provider.ready
        provider.provide(StaticSource([free_page]))
        return await task

    result = asyncio.run(scenario())
    assert [m.name for m in result.measurements] == ["平面度1", "直径円16"]


def test_provider_times_out_to_fallback():
    result = asyncio.run(SourceProvider().load_measurements("report.pdf", timeout=0.01))
    assert result.used_fallback and result.warning == ENGINE_UNAVAILABLE_WARNING


def test_provider_reports_engine_failure():
    async def scenario():
        provider = SourceProvider()
        provider.fail(PdfSourceError("engine crashed"))
        return await provider.load_measurements("report.pdf", timeout=5)

    assert asyncio.run(scenario()).warning == ENGINE_UNAVAILABLE_WARNING


def test_provider_maps_extraction_errors():
    class Broken:
        def extract(self, path):
            raise PdfSourceError("bad xref")

    result = asyncio.run(SourceProvider(Broken()).load_measurements("report.pdf"))
    assert result.warning == SOURCE_ERROR_WARNING


def test_provider_with_empty_pages_uses_parser_fallback():
    result = asyncio.run(SourceProvider(StaticSource([[]])).load_measurements(None))
    assert result.warning == FALLBACK_WARNING


def test_provider_falls_back_on_any_engine_failure():
    async def scenario():
        provider = SourceProvider()
        task = asyncio.create_task(provider.load_measurements("report.pdf", timeout=5))
        await asyncio.sleep(0)
        provider.fail(RuntimeError("engine script failed to load"))
        return await task

    result = asyncio.run(scenario())
    assert result.used_fallback and result.warning == ENGINE_UNAVAILABLE_WARNING


def test_provider_serves_separate_event_loops(free_page):
    provider = SourceProvider(StaticSource([free_page]))
    first = asyncio.run(provider.load_measurements(None))
    second = asyncio.run(provider.load_measurements(None, epsilon=0.5))
    assert [m.name for m in first.measurements] == [m.name for m in second.measurements]


def test_provider_ready_from_another_thread(free_page):
    async def scenario():
        provider = SourceProvider()
        task = asyncio.create_task(provider.load_measurements(None, timeout=5))
        await asyncio.sleep(0)
        worker = threading.Thread(target=provider.provide, args=(StaticSource([free_page]),))
        worker.start()
        result = await task
        worker.join()
        return result

    assert len(asyncio.run(scenario()).measurements) == 2

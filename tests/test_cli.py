from __future__ import annotations

import json

import pytest

from drawmark_core.cli import main
from drawmark_core.models import Box
from drawmark_core.persistence import read_record, write_record
from drawmark_core.state import AppState


def as_dicts(page):
    return [{"text": f.text, "x": f.x, "y": f.y} for f in page]


@pytest.fixture
def fragments_file(tmp_path, free_page):
    path = tmp_path / "fragments.json"
    path.write_text(json.dumps({"pages": [as_dicts(free_page)]}, ensure_ascii=False), encoding="utf-8")
    return path


@pytest.fixture
def state_file(tmp_path):
    state = AppState(drawing_image="drawing.png")
    state.boxes = [
        Box(id=1, x=0, y=0, width=40, height=20, ordinal=1),
        Box(id=2, x=50, y=0, width=40, height=20, ordinal=5),
    ]
    return write_record(tmp_path / "state.json", state.to_record())


def test_fallback_lists_reference_rows(capsys):
    assert main(["fallback"]) == 0
    out = capsys.readouterr().out
    assert "平面度1 = 0.0392 mm" in out
    assert out.count(" mm") == 7


def test_parse_pdf_from_fragments(capsys, fragments_file):
    assert main(["parse-pdf", "--fragments", str(fragments_file)]) == 0
    data = json.loads(capsys.readouterr().out)
    assert [m["name"] for m in data["measurements"]] == ["平面度1", "直径円16"]
    assert data["usedFallback"] is False


def test_parse_pdf_writes_output(tmp_path, fragments_file):
    out = tmp_path / "out" / "table.json"
    main(["parse-pdf", "--fragments", str(fragments_file), "--output", str(out)])
    assert json.loads(out.read_text(encoding="utf-8"))["formats"] == ["free"]


def test_assign_fills_boxes(tmp_path, capsys, state_file, fragments_file):
    out = tmp_path / "assigned.json"
    main(["assign", str(state_file), "--fragments", str(fragments_file), "--output", str(out)])
    assert "filled=1" in capsys.readouterr().out
    record = read_record(out)
    assert [b.value for b in record.boxes] == ["15.9222", None]
    assert record.boxes[0].out_of_tolerance is True
    assert len(record.measurements) == 2


def test_render_plan(capsys, state_file):
    main(["render-plan", str(state_file), "--scale", "2"])
    plan = json.loads(capsys.readouterr().out)
    assert [item["kind"] for item in plan] == ["box", "box"]
    assert plan[0]["label"] == "2"


def test_missing_source_is_a_usage_error(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["parse-pdf"])
    assert excinfo.value.code == 2
    assert "Provide a PDF path" in capsys.readouterr().err

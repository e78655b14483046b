from __future__ import annotations

from typing import List

import pytest

from drawmark_core.interaction import InteractionController, PointerEvent
from drawmark_core.pdf_parser import TextFragment


def row(y: float, *tokens: str, x0: float = 10.0, step: float = 60.0) -> List[TextFragment]:
    """One visual row of fragments laid out left to right."""
    return [TextFragment(token, x0 + step * index, y) for index, token in enumerate(tokens)]


def drag(controller: InteractionController, start, end) -> None:
    controller.pointer_down(PointerEvent(*start))
    controller.pointer_move(PointerEvent(*end))
    controller.pointer_up(PointerEvent(*end))


@pytest.fixture
def free_page() -> List[TextFragment]:
    return (
        row(700, "検査成績書")
        + row(680, "平面度1", "0.0392", "0.0000", "0.0500", "0.0000")
        + row(660, "直径円16", "15.9222", "16.0000", "0.0500", "-0.0500")
    )


@pytest.fixture
def column_page() -> List[TextFragment]:
    return (
        row(760, "ZEISS", "CALYPSO")
        + row(740, "名前", "測定値", "設計値", "公差(+)", "公差(-)", "誤差")
        + row(720, "直径円1_6H7", "6.0188", "6.0000", "0.0120", "0.0000", "0.0188")
        + row(700, "同心度3", "0.0706mm", "0.0000", "0.1000", "0.0000", "0.0706")
    )


@pytest.fixture
def controller() -> InteractionController:
    ctl = InteractionController()
    ctl.state.settings.min_box_size = 10.0
    ctl.load_image("drawing.png")
    return ctl

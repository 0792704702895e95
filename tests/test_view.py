from __future__ import annotations

from pathlib import Path

import pytest

from pdfrebuildx.exceptions import SnapshotError
from pdfrebuildx.view import SnapshotView, TextNode, parse_css_number, save_snapshot


def test_from_dict_builds_tree(builder) -> None:
    view = SnapshotView.from_dict(builder.fake_pdf(page_count=2))

    body = view.root
    assert view.tag_name(body) == "body"
    assert view.base_url == "file:///tmp/document.html"

    viewer = view.children(body)[0]
    assert view.attribute(viewer, "id") == "viewer"
    assert view.parent(viewer) is body

    first_page = view.children(viewer)[0]
    image, run = view.children(first_page)
    assert view.tag_name(image) == "img"
    assert view.attribute(image, "src").startswith("data:image/png")
    assert view.attribute(image, "alt") is None

    assert view.text_content(run) == "Hello"
    assert view.probe_baseline(run) == -3.0
    assert isinstance(view.child_nodes(run)[0], TextNode)

    style = view.computed_style(run)
    assert style.font_family == "TestSans"
    assert style.font_size == 12.0
    assert style.opacity == 1.0

    box = view.bounding_box(first_page)
    assert (box.left, box.top, box.width, box.height) == (0, 0, 100, 100)
    assert box.bottom == 100


def test_text_content_joins_nested_text(builder) -> None:
    element = builder.element(
        "p",
        [0, 0, 10, 10],
        [builder.text("Hello "), builder.element("b", [0, 0, 5, 5], [builder.text("World")]), builder.text("!")],
    )
    view = SnapshotView.from_dict({"version": 1, "root": element})

    assert view.text_content(view.root) == "Hello World!"


def test_font_face_rules(builder) -> None:
    view = SnapshotView.from_dict(builder.fake_pdf())

    rules = view.font_face_rules()
    assert len(rules) == 1
    assert rules[0].font_family == '"TestSans"'
    assert rules[0].src.startswith('url("data:font/ttf;base64,')
    assert rules[0].base_url == "file:///tmp/document.html"


def test_box_accepts_mapping(builder) -> None:
    element = builder.element("body", None)
    element["box"] = {"left": 1, "top": 2, "width": 3, "height": 4}
    view = SnapshotView.from_dict({"version": 1, "root": element})

    box = view.bounding_box(view.root)
    assert (box.left, box.top, box.width, box.height) == (1, 2, 3, 4)


def test_missing_box_is_none(builder) -> None:
    view = SnapshotView.from_dict({"version": 1, "root": builder.element("body", None)})

    assert view.bounding_box(view.root) is None


@pytest.mark.parametrize(
    "data",
    [
        [],
        {"version": 2, "root": {"tag": "body"}},
        {"version": 1},
        {"version": 1, "root": {"attrs": {}}},
        {"version": 1, "root": {"tag": "body", "box": [1, 2, 3]}},
        {"version": 1, "root": {"tag": "body", "box": ["a", 2, 3, 4]}},
        {"version": 1, "root": {"tag": "body", "children": ["text"]}},
        {"version": 1, "root": {"tag": "body"}, "fontFaces": ["F1"]},
    ],
)
def test_malformed_snapshot_raises(data) -> None:
    with pytest.raises(SnapshotError):
        SnapshotView.from_dict(data)


def test_from_json_invalid_file(tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")

    with pytest.raises(SnapshotError):
        SnapshotView.from_json(broken)
    with pytest.raises(SnapshotError):
        SnapshotView.from_json(tmp_path / "missing.json")


def test_save_snapshot_and_reload(builder, tmp_path: Path) -> None:
    path = save_snapshot(builder.fake_pdf(page_count=3), tmp_path / "nested" / "snap.json")

    view = SnapshotView.from_json(path)
    assert len(view.children(view.children(view.root)[0])) == 3


@pytest.mark.parametrize(
    ("value", "expected"),
    [("12px", 12.0), ("0.5", 0.5), (" -3.25em", -3.25), (7, 7.0), ("auto", 16.0), (None, 16.0), (True, 16.0)],
)
def test_parse_css_number(value, expected) -> None:
    assert parse_css_number(value, 16.0) == expected

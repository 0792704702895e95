from __future__ import annotations

import logging

import pytest

from pdfrebuildx.extraction import extract_page, extract_pages, is_text_leaf, parse_color
from pdfrebuildx.matrix import Matrix
from pdfrebuildx.view import SnapshotView


def _single_page_view(builder, content) -> SnapshotView:
    """Two-page document whose first page holds ``content`` next to its image."""

    first = builder.element("div", [0, 0, 100, 100], [builder.image([0, 0, 100, 100]), *content])
    return SnapshotView.from_dict(builder.document([first, builder.page(100)]))


def test_extract_pages_geometry(builder) -> None:
    view = SnapshotView.from_dict(builder.fake_pdf(page_count=2))

    pages = extract_pages(view)

    assert pages is not None and len(pages) == 2
    for page in pages:
        assert (page.width, page.height) == (100, 100)
        assert len(page.images) == 1
        image = page.images[0]
        assert (image.left, image.bottom, image.width, image.height) == (0, 0, 100, 100)
        assert image.src.startswith("data:image/png")

        assert len(page.text) == 1
        run = page.text[0]
        assert run.text == "Hello"
        assert run.left == 10
        # page bottom 100, run bottom 24, baseline probe 3px above the box bottom
        assert run.bottom == pytest.approx(79)
        assert run.font_family == "TestSans"
        assert run.size == 12
        assert run.color == (0, 0, 0)
        assert run.opacity == 1
        assert run.transform is None


def test_not_paginatable_returns_none(builder) -> None:
    view = SnapshotView.from_dict(builder.document([builder.page(0)]))

    assert extract_pages(view) is None


def test_nested_opacity_multiplies(builder) -> None:
    run = builder.run("Hello", [10, 10, 40, 14], style={"opacity": "0.5"})
    container = builder.element("div", [0, 0, 100, 100], [run], style={"opacity": "0.4"})
    view = _single_page_view(builder, [container])

    page = extract_pages(view)[0]

    assert page.text[0].opacity == pytest.approx(0.2, abs=1e-6)


def test_alpha_channel_folds_into_opacity(builder) -> None:
    run = builder.run("Hello", [10, 10, 40, 14], style={"color": "rgba(10, 20, 30, 0.5)"})
    view = _single_page_view(builder, [run])

    text = extract_pages(view)[0].text[0]

    assert text.color == (10, 20, 30)
    assert text.opacity == pytest.approx(0.5)


def test_percentage_alpha_folds_into_opacity(builder) -> None:
    run = builder.run("Hello", [10, 10, 40, 14], style={"color": "rgb(10 20 30 / 50%)"})
    view = _single_page_view(builder, [run])

    text = extract_pages(view)[0].text[0]

    assert text.color == (10, 20, 30)
    assert text.opacity == pytest.approx(0.5)


def test_ancestor_transforms_compose(builder) -> None:
    run = builder.run("Hello", [10, 10, 40, 14], style={"transform": "matrix(1, 0, 0, 1, 3, 4)"})
    container = builder.element(
        "div", [0, 0, 100, 100], [run], style={"transform": "matrix(2, 0, 0, 2, 5, 5)"}
    )
    view = _single_page_view(builder, [container])

    text = extract_pages(view)[0].text[0]

    assert text.transform == Matrix(2, 0, 0, 2, 5, 5).multiply(Matrix(1, 0, 0, 1, 3, 4))
    assert text.transform.to_tuple() == (2, 0, 0, 2, 11, 13)


def test_unmeasurable_page_is_skipped(builder, caplog) -> None:
    broken = builder.page(100)
    broken["box"] = None
    zero = builder.page(200, height=0)
    view = SnapshotView.from_dict(builder.document([builder.page(0), broken, zero, builder.page(300)]))

    with caplog.at_level(logging.WARNING, logger="pdfrebuildx.extraction"):
        pages = extract_pages(view)

    assert len(pages) == 2
    assert "Skipping page 2" in caplog.text
    assert "Skipping page 3" in caplog.text


def test_extract_page_rejects_missing_box(builder) -> None:
    view = SnapshotView.from_dict({"version": 1, "root": builder.element("div", None)})

    assert extract_page(view, view.root) is None


def test_childless_elements_yield_nothing(builder) -> None:
    spacer = builder.element("div", [0, 50, 100, 10])
    view = _single_page_view(builder, [spacer])

    page = extract_pages(view)[0]

    assert page.text == []
    assert len(page.images) == 1


def test_text_leaf_detection(builder) -> None:
    mixed = builder.element(
        "p", [0, 0, 10, 10], [builder.text("Hello "), builder.element("b", [0, 0, 5, 5], [builder.text("World")])]
    )
    wrapper = builder.element("div", [0, 0, 10, 10], [builder.text("\n  "), builder.element("span", [0, 0, 5, 5], [builder.text("Inner")])])
    empty = builder.element("span", [0, 0, 10, 10], [builder.text("")])
    root = builder.element("body", [0, 0, 100, 100], [mixed, wrapper, empty])
    view = SnapshotView.from_dict({"version": 1, "root": root})

    mixed_el, wrapper_el, empty_el = view.children(view.root)
    assert is_text_leaf(view, mixed_el)
    assert not is_text_leaf(view, wrapper_el)
    assert is_text_leaf(view, view.children(wrapper_el)[0])
    assert not is_text_leaf(view, empty_el)


def test_mixed_text_is_emitted_once(builder) -> None:
    mixed = builder.element(
        "p",
        [10, 10, 60, 14],
        [builder.text("Hello "), builder.element("b", [40, 10, 20, 14], [builder.text("World")])],
        style={"fontFamily": "TestSans", "fontSize": "10px"},
    )
    view = _single_page_view(builder, [mixed])

    texts = extract_pages(view)[0].text

    assert [run.text for run in texts] == ["Hello World"]


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("rgb(1, 2, 3)", [1, 2, 3]),
        ("rgba(1, 2, 3, 0.5)", [1, 2, 3, 0.5]),
        ("rgb(1 2 3 / 0.25)", [1, 2, 3, 0.25]),
        ("rgb(1 2 3 / 50%)", [1, 2, 3, 0.5]),
        ("rgb(100% 0% 50% / 25%)", [255.0, 0.0, 127.5, 0.25]),
        ("#ffffff", None),
        ("transparent", None),
        ("rgb(a, b, c)", None),
    ],
)
def test_parse_color(value: str, expected) -> None:
    assert parse_color(value) == expected

"""Tests for fragment ordering, grouping and the OCR summary sent to the model."""

from conftest import fragment

from shelf_catalog.core.clustering import format_structured_ocr, group_text_blocks, sort_fragments
from shelf_catalog.ocr_engines.base import fragment_from_polygon
from shelf_catalog.schemas import OcrResult


def test_two_close_fragments_and_one_far_make_two_groups():
    frags = [fragment("a", 10, 10), fragment("b", 12, 14), fragment("c", 10, 200)]
    groups = group_text_blocks(frags)
    assert [len(g) for g in groups] == [2, 1]


def test_groups_reconstruct_input_in_order():
    frags = [fragment(str(i), 0, y) for i, y in enumerate([5, 40, 300, 310, 900, 1200, 1250])]
    groups = group_text_blocks(frags)
    flattened = [f for g in groups for f in g]
    assert flattened == frags
    assert [len(g) for g in groups] == [2, 2, 1, 2]


def test_gap_equal_to_threshold_starts_new_group():
    frags = [fragment("a", 0, 0), fragment("b", 0, 100)]
    assert len(group_text_blocks(frags, threshold=100)) == 2


def test_empty_input_yields_no_groups():
    assert group_text_blocks([]) == []


def test_sort_orders_same_row_left_to_right():
    right = fragment("right", 300, 52)
    left = fragment("left", 10, 60)
    below = fragment("below", 5, 120)
    assert [f.text for f in sort_fragments([below, right, left])] == ["left", "right", "below"]


def test_polygon_fragment_geometry():
    frag = fragment_from_polygon("spine", [(10, 10), (30, 10), (30, 110), (10, 110)], 0.8)
    assert frag.position.center_x == 20
    assert frag.position.center_y == 60
    assert frag.position.top == 10
    assert frag.position.left == 10
    assert frag.orientation == "vertical"

    wide = fragment_from_polygon("cover", [(0, 0), (100, 0), (100, 20), (0, 20)])
    assert wide.orientation == "horizontal"


def test_structured_summary_lists_groups_and_fragments():
    ocr = OcrResult(
        full_text="הארי פוטר\nרולינג",
        blocks=[
            fragment("הארי פוטר", 10, 10, 0.93, "vertical"),
            fragment("רולינג", 12, 14, 0.5),
            fragment("שר הטבעות", 10, 400),
        ],
    )
    summary = format_structured_ocr(ocr)
    assert summary.startswith("Full text preview:")
    assert "Group 1 (vertical position ~10):" in summary
    assert "Group 2 (vertical position ~400):" in summary
    assert '↕ "הארי פוטר" (x:10, y:10, conf:93%)' in summary
    assert '↔ "רולינג" (x:12, y:14, conf:50%)' in summary

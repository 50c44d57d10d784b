from functools import cmp_to_key
from typing import Iterable, List

from shelf_catalog.config import CLUSTER_THRESHOLD_PX, ROW_BAND_PX
from shelf_catalog.schemas import OcrResult, TextFragment


def _reading_order(a: TextFragment, b: TextFragment) -> float:
    y_diff = a.position.top - b.position.top
    # fragments on roughly the same row are ordered left to right
    if abs(y_diff) < ROW_BAND_PX:
        return a.position.left - b.position.left
    return y_diff


def sort_fragments(fragments: Iterable[TextFragment]) -> List[TextFragment]:
    """Order fragments top-to-bottom, then left-to-right within a 20px row band."""
    return sorted(fragments, key=cmp_to_key(_reading_order))


def group_text_blocks(
    fragments: List[TextFragment],
    threshold: float = CLUSTER_THRESHOLD_PX,
) -> List[List[TextFragment]]:
    """Split an ordered fragment list into same-book groups.

    A fragment joins the current group when its vertical center is within
    ``threshold`` pixels of the previous fragment's; otherwise a new group
    starts. Concatenating the groups gives back the input list.
    """
    if not fragments:
        return []

    groups: List[List[TextFragment]] = []
    current = [fragments[0]]
    for prev, frag in zip(fragments, fragments[1:]):
        if abs(frag.position.center_y - prev.position.center_y) < threshold:
            current.append(frag)
        else:
            groups.append(current)
            current = [frag]
    groups.append(current)
    return groups


def format_structured_ocr(ocr: OcrResult, threshold: float = CLUSTER_THRESHOLD_PX) -> str:
    """Render grouped OCR fragments as the text summary handed to the model."""
    lines = ["Full text preview:", ocr.full_text[:300] + "...", "", "Structured text blocks:"]
    for index, group in enumerate(group_text_blocks(ocr.blocks, threshold), 1):
        lines.append(f"\nGroup {index} (vertical position ~{round(group[0].position.center_y)}):")
        for frag in group:
            arrow = "↕" if frag.orientation == "vertical" else "↔"
            conf = round(frag.confidence * 100)
            lines.append(
                f'  {arrow} "{frag.text}" (x:{round(frag.position.center_x)}, '
                f"y:{round(frag.position.center_y)}, conf:{conf}%)"
            )
    return "\n".join(lines)

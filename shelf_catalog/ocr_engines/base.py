from typing import List, Protocol, Sequence, Tuple

from shelf_catalog.schemas import OcrResult, Position, TextFragment

Point = Tuple[float, float]


class OcrService(Protocol):
    name: str

    def extract_text(self, image_bytes: bytes) -> OcrResult:
        """Run OCR on raw image bytes; raise Transient/PermanentServiceError on failure."""
        ...


def fragment_from_polygon(text: str, vertices: Sequence[Point], confidence: float = 0.0) -> TextFragment:
    """Build a fragment from a bounding polygon.

    center is the rounded vertex mean, top/left the first vertex; text taller
    than 1.5x its width is treated as running up a spine.
    """
    xs = [float(x) for x, _ in vertices]
    ys = [float(y) for _, y in vertices]
    width = max(xs) - min(xs)
    height = max(ys) - min(ys)
    return TextFragment(
        text=text,
        confidence=confidence,
        position=Position(
            center_x=round(sum(xs) / len(xs)),
            center_y=round(sum(ys) / len(ys)),
            top=ys[0],
            left=xs[0],
        ),
        orientation="vertical" if height > width * 1.5 else "horizontal",
    )


def join_fragments(fragments: List[TextFragment]) -> str:
    return "\n".join(f.text for f in fragments)

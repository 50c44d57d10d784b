import re
from typing import Any, List, Optional, Protocol

from shelf_catalog.schemas import ProviderBook

_LEADING_DIGITS = re.compile(r"\d+")


class BookProvider(Protocol):
    name: str
    label: str

    async def search(self, query: str, max_results: int = 10) -> List[ProviderBook]:
        ...


def to_int(value: Any) -> Optional[int]:
    """Best-effort int for loosely typed provider fields ("2004", 312, "2004-05-01")."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    match = _LEADING_DIGITS.search(str(value))
    return int(match.group(0)) if match else None

# /agrichat/conversation/pagination.py

from typing import Any, Dict, List, Tuple

from agrichat.config.catalogue import LIST_PAGE_SIZE

# Page cursors live in session data, one key per list type. A Next control is
# only offered after a full page, so no total count is needed.


def page_of(data: Dict[str, Any], key: str) -> int:
    try:
        return max(1, int(data.get(key) or 1))
    except (TypeError, ValueError):
        return 1


def turned(page: int, direction: str) -> int:
    return max(1, page + 1) if direction == "next" else max(1, page - 1)


def has_next(items: List[Any], page_size: int = LIST_PAGE_SIZE) -> bool:
    return len(items) >= page_size


def nav_buttons(prefix: str, page: int, items: List[Any]) -> List[Tuple[str, str]]:
    buttons = []
    if page > 1:
        buttons.append((f"{prefix}_prev", "Prev"))
    if has_next(items):
        buttons.append((f"{prefix}_next", "Next"))
    return buttons


def nav_rows(prefix: str, page: int, items: List[Any]) -> List[Dict[str, str]]:
    rows = []
    if has_next(items):
        rows.append({"id": f"{prefix}_next", "title": "Next page"})
    if page > 1:
        rows.append({"id": f"{prefix}_prev", "title": "Previous page"})
    return rows

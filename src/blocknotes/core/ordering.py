"""Order keys for sibling lists (blocks, notes, labels).

New items are placed with a cheap fractional key (``anchor.order + 0.5``)
and every structural mutation ends with a renumber pass that reassigns
``0..n-1`` so floating-point keys never drift.
"""
import logging
from typing import List, Optional, Protocol, Sequence, TypeVar

from blocknotes.exceptions import AnchorNotFoundError, NotFoundError

logger = logging.getLogger(__name__)


class OrderedItem(Protocol):
    """Anything with an id and a numeric order key (pydantic models here)."""

    id: str
    order: float

    def model_copy(self, *, update=None, deep: bool = False): ...


T = TypeVar("T", bound=OrderedItem)


def _with_order(item: T, order: float) -> T:
    if item.order == order:
        return item
    return item.model_copy(update={"order": float(order)})


def sort_by_order(siblings: Sequence[T]) -> List[T]:
    """Sort by order key; equal keys keep their list position."""
    return sorted(siblings, key=lambda item: item.order)


def insert_after(siblings: Sequence[T], anchor_id: Optional[str]) -> float:
    """Order key for a new item placed right after ``anchor_id``.

    Returns 0 for an empty list. Raises AnchorNotFoundError when the list is
    not empty and the anchor is missing (including ``anchor_id=None``).
    """
    if not siblings:
        return 0
    for item in siblings:
        if item.id == anchor_id:
            return item.order + 0.5
    raise AnchorNotFoundError(str(anchor_id))


def append_position(siblings: Sequence[T]) -> float:
    """Order key that sorts after every existing sibling."""
    if not siblings:
        return 0
    return max(item.order for item in siblings) + 1


def position_after(siblings: Sequence[T], anchor_id: Optional[str]) -> float:
    """Like insert_after, but a missing anchor means "append at the end"."""
    try:
        return insert_after(siblings, anchor_id)
    except AnchorNotFoundError:
        if anchor_id is not None:
            logger.debug(f"Anchor {anchor_id} not found; appending at end")
        return append_position(siblings)


def renumber(siblings: Sequence[T]) -> List[T]:
    """Sort by current order and reassign consecutive integer keys.

    Idempotent, and stable for equal keys (ties keep prior list position).
    Items whose key is already correct are returned unchanged.
    """
    return [_with_order(item, i) for i, item in enumerate(sort_by_order(siblings))]


def move(siblings: Sequence[T], item_id: str, target_index: int) -> List[T]:
    """Move ``item_id`` to ``target_index`` in render order and renumber.

    The index is clamped to the list bounds.
    """
    ordered = sort_by_order(siblings)
    for index, item in enumerate(ordered):
        if item.id == item_id:
            moving = ordered.pop(index)
            break
    else:
        raise NotFoundError("item", item_id)

    target_index = max(0, min(target_index, len(ordered)))
    ordered.insert(target_index, moving)
    return [_with_order(item, i) for i, item in enumerate(ordered)]


def apply_orders(
    siblings: Sequence[T], ids: Sequence[str], new_orders: Sequence[float]
) -> List[T]:
    """Assign explicit order keys to some items, then renumber the whole list.

    Ids that are not in the list are ignored; callers validate beforehand.
    """
    if len(ids) != len(new_orders):
        raise ValueError("ids and new_orders must have the same length")
    wanted = dict(zip(ids, new_orders))
    updated = [
        _with_order(item, wanted[item.id]) if item.id in wanted else item
        for item in siblings
    ]
    return renumber(updated)

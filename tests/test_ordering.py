"""Tests for order key assignment."""
import random

import pytest

from blocknotes.core import ordering
from blocknotes.exceptions import AnchorNotFoundError, NotFoundError
from blocknotes.models.schema import TextBlock


def _items(*orders):
    return [TextBlock(id=f"b{i}", order=order) for i, order in enumerate(orders)]


def _ids(items):
    return [item.id for item in items]


class TestInsertAfter:
    """Tests for computing the key of a new sibling."""

    def test_empty_list_returns_zero(self):
        """The first item of an empty list gets order 0."""
        assert ordering.insert_after([], None) == 0
        assert ordering.insert_after([], "anything") == 0

    def test_midpoint_after_anchor(self):
        """A new item sorts right after its anchor."""
        items = _items(0, 1, 2)
        assert ordering.insert_after(items, "b1") == 1.5

    def test_unknown_anchor_raises(self):
        """An absent anchor on a non-empty list is an error."""
        with pytest.raises(AnchorNotFoundError) as exc_info:
            ordering.insert_after(_items(0, 1), "missing")
        assert exc_info.value.anchor_id == "missing"

    def test_position_after_appends_for_unknown_anchor(self):
        """The lenient variant appends at the end instead of raising."""
        items = _items(0, 1, 4)
        assert ordering.position_after(items, "missing") == 5
        assert ordering.position_after(items, None) == 5
        assert ordering.position_after(items, "b0") == 0.5


class TestRenumber:
    """Tests for renumbering sibling lists."""

    def test_consecutive_integers(self):
        items = _items(3, 0.5, 10, -2)
        renumbered = ordering.renumber(items)
        assert [item.order for item in renumbered] == [0, 1, 2, 3]
        assert _ids(renumbered) == ["b3", "b1", "b0", "b2"]

    def test_ties_keep_list_position(self):
        """Equal keys are broken by prior position."""
        items = _items(1, 0, 1, 1)
        assert _ids(ordering.renumber(items)) == ["b1", "b0", "b2", "b3"]

    def test_idempotent(self):
        once = ordering.renumber(_items(5, 2.5, 2.5, 9))
        twice = ordering.renumber(once)
        assert once == twice

    def test_does_not_mutate_input(self):
        items = _items(7, 3)
        ordering.renumber(items)
        assert [item.order for item in items] == [7, 3]


class TestMove:
    """Tests for moving an item to a target index."""

    def test_move_forward(self):
        moved = ordering.move(_items(0, 1, 2, 3), "b0", 2)
        assert _ids(moved) == ["b1", "b2", "b0", "b3"]
        assert [item.order for item in moved] == [0, 1, 2, 3]

    def test_move_backward(self):
        moved = ordering.move(_items(0, 1, 2, 3), "b3", 0)
        assert _ids(moved) == ["b3", "b0", "b1", "b2"]

    def test_target_index_is_clamped(self):
        assert _ids(ordering.move(_items(0, 1, 2), "b0", 99)) == ["b1", "b2", "b0"]
        assert _ids(ordering.move(_items(0, 1, 2), "b2", -5)) == ["b2", "b0", "b1"]

    def test_unknown_item_raises(self):
        with pytest.raises(NotFoundError):
            ordering.move(_items(0, 1), "missing", 0)


class TestApplyOrders:
    """Tests for explicit reordering."""

    def test_assigns_and_renumbers(self):
        reordered = ordering.apply_orders(_items(0, 1, 2), ["b0"], [10])
        assert _ids(reordered) == ["b1", "b2", "b0"]
        assert [item.order for item in reordered] == [0, 1, 2]

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            ordering.apply_orders(_items(0, 1), ["b0", "b1"], [1])


class TestOrderingStability:
    """Random operation sequences always end in 0..n-1."""

    @pytest.mark.parametrize("seed", [1, 7, 42])
    def test_random_operations_then_renumber(self, seed):
        rng = random.Random(seed)
        items = []
        counter = 0
        for _ in range(60):
            op = rng.choice(["insert", "move", "delete"])
            if op == "insert" or not items:
                anchor = rng.choice(items).id if items and rng.random() < 0.8 else None
                order = ordering.position_after(items, anchor)
                items.append(TextBlock(id=f"n{counter}", order=order))
                counter += 1
            elif op == "move":
                target = rng.choice(items).id
                items = ordering.move(items, target, rng.randint(0, len(items)))
            else:
                victim = rng.choice(items).id
                items = [item for item in items if item.id != victim]

            renumbered = ordering.renumber(items)
            assert [item.order for item in renumbered] == list(range(len(items)))
            assert len(set(_ids(renumbered))) == len(items)

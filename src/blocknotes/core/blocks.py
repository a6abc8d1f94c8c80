"""Block tree model: typed block operations and an arena for nested edits.

Nested blocks are persisted as a tree (``ToggleBlock.children``), but edits
go through ``BlockTree``, a flat table keyed by block id with parent and
child id lists. Moving, re-parenting and duplicating subtrees then never
has to walk or copy nested structures by hand.
"""
import logging
from typing import Dict, Iterable, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from blocknotes.core import ordering
from blocknotes.core.validation import from_pydantic
from blocknotes.exceptions import BlockNotFoundError, ErrorCode, ValidationError
from blocknotes.models.schema import (
    BLOCK_CLASSES,
    BlockType,
    ChecklistBlock,
    ContentBlock,
    TextBlock,
    ToggleBlock,
    generate_id,
)

logger = logging.getLogger(__name__)

_ROOT = None


def _coerce_type(block_type: Union[BlockType, str]) -> BlockType:
    try:
        return BlockType(block_type)
    except ValueError:
        raise ValidationError(
            f"Unknown block type: {block_type}. "
            f"Valid types are: {', '.join(t.value for t in BlockType)}",
            field="type",
            value=block_type,
            code=ErrorCode.INVALID_BLOCK_TYPE,
        )


def new_block(block_type: Union[BlockType, str] = BlockType.TEXT, content: str = "") -> ContentBlock:
    """Create an empty block of the given type with a fresh id."""
    return BLOCK_CLASSES[_coerce_type(block_type)](content=content)


def change_type(
    block: ContentBlock,
    new_type: Union[BlockType, str],
    discard_children: bool = False,
) -> ContentBlock:
    """Convert a block, keeping its id, order and content.

    Checklist items start unchecked; toggles start expanded and empty.
    Turning a toggle that has children into anything else drops them, so
    the caller must pass ``discard_children=True`` to allow it.
    """
    target = _coerce_type(new_type)
    if block.type == target.value:
        return block

    if isinstance(block, ToggleBlock) and block.children and not discard_children:
        raise ValidationError(
            f"Converting toggle '{block.id}' would discard {len(block.children)} "
            "child block(s); pass discard_children=True to confirm",
            field="type",
            value=target.value,
            code=ErrorCode.BLOCK_CHILDREN_WOULD_BE_LOST,
        )

    base = {"id": block.id, "order": block.order, "content": block.content}
    if target is BlockType.CHECKLIST:
        return ChecklistBlock(**base, checked=False)
    if target is BlockType.TOGGLE:
        return ToggleBlock(**base, is_expanded=True, children=[])
    return TextBlock(**base)


def _clone_with_fresh_ids(block: ContentBlock) -> ContentBlock:
    update = {"id": generate_id()}
    if isinstance(block, ToggleBlock):
        update["children"] = [_clone_with_fresh_ids(child) for child in block.children]
    return block.model_copy(update=update)


def duplicate(block: ContentBlock) -> ContentBlock:
    """Deep copy with fresh ids throughout, ordered right after the original.

    The caller renumbers the sibling list afterwards.
    """
    clone = _clone_with_fresh_ids(block)
    return clone.model_copy(update={"order": block.order + 0.5})


def delete(siblings: List[ContentBlock], block_id: str) -> List[ContentBlock]:
    """Remove a block (and its subtree) from a sibling list and renumber.

    The result may be empty; re-seeding an empty note is the note's job.
    """
    remaining = [block for block in siblings if block.id != block_id]
    if len(remaining) == len(siblings):
        raise BlockNotFoundError(block_id)
    return ordering.renumber(remaining)


class BlockTree:
    """Flat arena of a note's blocks.

    Toggle blocks are stored with an empty ``children`` list; the structure
    lives in ``_children`` (parent id -> ordered child ids, ``None`` being
    the top level) and ``_parent``. Block ids are unique across the tree.
    """

    def __init__(self) -> None:
        self._blocks: Dict[str, ContentBlock] = {}
        self._parent: Dict[str, Optional[str]] = {}
        self._children: Dict[Optional[str], List[str]] = {_ROOT: []}

    @classmethod
    def from_blocks(cls, blocks: Iterable[ContentBlock]) -> "BlockTree":
        tree = cls()
        for block in blocks:
            tree._register(block, _ROOT)
        tree._renumber_all()
        return tree

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def __contains__(self, block_id: object) -> bool:
        return block_id in self._blocks

    def __len__(self) -> int:
        return len(self._blocks)

    @property
    def top_level_count(self) -> int:
        return len(self._children[_ROOT])

    def to_blocks(self) -> List[ContentBlock]:
        """Rebuild the nested top-level block list."""
        return [self._build(block_id) for block_id in self._children[_ROOT]]

    def get(self, block_id: str) -> ContentBlock:
        """Return a block with its subtree rebuilt."""
        self._require(block_id)
        return self._build(block_id)

    def parent_of(self, block_id: str) -> Optional[str]:
        self._require(block_id)
        return self._parent[block_id]

    def children_of(self, parent_id: Optional[str] = _ROOT) -> List[ContentBlock]:
        if parent_id is not _ROOT:
            self._require(parent_id)
        return [self._build(block_id) for block_id in self._children.get(parent_id, [])]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def insert(
        self,
        block: ContentBlock,
        parent_id: Optional[str] = _ROOT,
        after_id: Optional[str] = None,
    ) -> ContentBlock:
        """Insert a block (with any subtree) after ``after_id`` under ``parent_id``.

        ``after_id=None`` or an id that is not among the siblings appends at
        the end of the sibling list.
        """
        self._require_container(parent_id)
        siblings = self._sibling_blocks(parent_id)
        placed = block.model_copy(update={"order": ordering.position_after(siblings, after_id)})
        self._register(placed, parent_id)
        self._renumber(parent_id)
        return self.get(placed.id)

    def insert_first(self, block: ContentBlock, parent_id: Optional[str] = _ROOT) -> ContentBlock:
        """Insert a block before every existing sibling."""
        self._require_container(parent_id)
        siblings = self._sibling_blocks(parent_id)
        first = min((b.order for b in siblings), default=0)
        placed = block.model_copy(update={"order": first - 1})
        self._register(placed, parent_id)
        self._renumber(parent_id)
        return self.get(placed.id)

    def remove(self, block_id: str) -> ContentBlock:
        """Remove a block and its subtree; return the removed subtree."""
        removed = self.get(block_id)
        parent_id = self._parent[block_id]
        self._children[parent_id].remove(block_id)
        self._unregister(block_id)
        self._renumber(parent_id)
        return removed

    def move(
        self,
        block_id: str,
        target_index: int,
        parent_id: Union[Optional[str], object] = ...,
    ) -> ContentBlock:
        """Move a block to ``target_index`` among the children of ``parent_id``.

        Omitting ``parent_id`` keeps the current parent. Passing ``None``
        moves the block to the top level; passing a toggle id nests it.
        """
        self._require(block_id)
        old_parent = self._parent[block_id]
        new_parent = old_parent if parent_id is ... else parent_id

        if new_parent != old_parent:
            self._require_container(new_parent)
            if new_parent is not _ROOT and self._is_descendant(new_parent, block_id):
                raise ValidationError(
                    "Cannot move a block into itself or one of its descendants",
                    field="parent_id",
                    value=new_parent,
                    code=ErrorCode.BLOCK_INVALID_PARENT,
                )
            self._children[old_parent].remove(block_id)
            self._renumber(old_parent)
            self._children[new_parent].append(block_id)
            self._parent[block_id] = new_parent
            # Park it after every sibling so the move below places it exactly.
            siblings = self._sibling_blocks(new_parent)
            self._blocks[block_id] = self._blocks[block_id].model_copy(
                update={"order": ordering.append_position(
                    [b for b in siblings if b.id != block_id]
                )}
            )

        moved = ordering.move(self._sibling_blocks(new_parent), block_id, target_index)
        self._store_siblings(new_parent, moved)
        return self.get(block_id)

    def duplicate(self, block_id: str) -> ContentBlock:
        """Copy a block and its subtree (fresh ids) right after the original."""
        original = self.get(block_id)
        parent_id = self._parent[block_id]
        clone = duplicate(original)
        self._register(clone, parent_id)
        self._renumber(parent_id)
        return self.get(clone.id)

    def change_type(
        self,
        block_id: str,
        new_type: Union[BlockType, str],
        discard_children: bool = False,
    ) -> ContentBlock:
        """Convert a block in place; see module-level ``change_type``."""
        current = self.get(block_id)
        converted = change_type(current, new_type, discard_children=discard_children)
        if converted is current:
            return current
        for child_id in list(self._children.get(block_id, [])):
            self._unregister(child_id)
        self._children.pop(block_id, None)
        self._blocks[block_id] = self._strip_children(converted)
        if isinstance(converted, ToggleBlock):
            self._children[block_id] = []
        return self.get(block_id)

    def update(self, block_id: str, **fields) -> ContentBlock:
        """Set plain fields (content, checked, is_expanded) on a block."""
        self._require(block_id)
        forbidden = {"id", "order", "type", "children"} & fields.keys()
        if forbidden:
            raise ValidationError(
                f"Cannot set {', '.join(sorted(forbidden))} through update",
                field=sorted(forbidden)[0],
                code=ErrorCode.INVALID_FIELD,
            )
        block = self._blocks[block_id]
        for name in fields:
            if name not in type(block).model_fields:
                raise ValidationError(
                    f"Block of type '{block.type}' has no field '{name}'",
                    field=name,
                    code=ErrorCode.INVALID_FIELD,
                )
        try:
            self._blocks[block_id] = type(block).model_validate(
                {**block.model_dump(), **fields}
            )
        except PydanticValidationError as e:
            raise from_pydantic(e) from e
        return self.get(block_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require(self, block_id: Optional[str]) -> None:
        if block_id not in self._blocks:
            raise BlockNotFoundError(str(block_id))

    def _require_container(self, parent_id: Optional[str]) -> None:
        if parent_id is _ROOT:
            return
        self._require(parent_id)
        if not isinstance(self._blocks[parent_id], ToggleBlock):
            raise ValidationError(
                f"Block '{parent_id}' is not a toggle and cannot hold children",
                field="parent_id",
                value=parent_id,
                code=ErrorCode.BLOCK_INVALID_PARENT,
            )

    def _is_descendant(self, candidate: str, ancestor: str) -> bool:
        node: Optional[str] = candidate
        while node is not _ROOT:
            if node == ancestor:
                return True
            node = self._parent[node]
        return False

    @staticmethod
    def _strip_children(block: ContentBlock) -> ContentBlock:
        if isinstance(block, ToggleBlock) and block.children:
            return block.model_copy(update={"children": []})
        return block

    def _register(self, block: ContentBlock, parent_id: Optional[str]) -> None:
        if block.id in self._blocks:
            raise ValidationError(
                f"Duplicate block id '{block.id}' in note",
                field="id",
                value=block.id,
                code=ErrorCode.BLOCK_DUPLICATE_ID,
            )
        self._blocks[block.id] = self._strip_children(block)
        self._parent[block.id] = parent_id
        self._children.setdefault(parent_id, []).append(block.id)
        if isinstance(block, ToggleBlock):
            self._children.setdefault(block.id, [])
            for child in block.children:
                self._register(child, block.id)

    def _unregister(self, block_id: str) -> None:
        for child_id in self._children.pop(block_id, []):
            self._unregister(child_id)
        del self._blocks[block_id]
        del self._parent[block_id]

    def _sibling_blocks(self, parent_id: Optional[str]) -> List[ContentBlock]:
        return [self._blocks[block_id] for block_id in self._children.get(parent_id, [])]

    def _store_siblings(self, parent_id: Optional[str], siblings: List[ContentBlock]) -> None:
        for block in siblings:
            self._blocks[block.id] = block
        self._children[parent_id] = [block.id for block in siblings]

    def _renumber(self, parent_id: Optional[str]) -> None:
        self._store_siblings(parent_id, ordering.renumber(self._sibling_blocks(parent_id)))

    def _renumber_all(self) -> None:
        for parent_id in list(self._children):
            self._renumber(parent_id)

    def _build(self, block_id: str) -> ContentBlock:
        block = self._blocks[block_id]
        if isinstance(block, ToggleBlock):
            children = [self._build(child_id) for child_id in self._children.get(block_id, [])]
            return block.model_copy(update={"children": children})
        return block

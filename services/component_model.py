"""
Bundle Component Model
Ordered list of {ref, quantity, group} entries with group management.

Indices always refer to the flat list; groups are derived views. Every
mutation is a no-op on bad input rather than an error.
"""
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple
import logging
import time

from schemas.bundle_schemas import Component
from settings import MAX_GROUP_NAME_LENGTH, sanitize_ref
from utils import clamp_quantity, clean_text

logger = logging.getLogger(__name__)

MAX_SUFFIX_ATTEMPTS = 1000


def unique_group_name(existing: Iterable[str], base: str) -> str:
    """
    Collision-free group name: base, base-2, ... base-999, then a timestamp suffix.
    """
    taken = set(existing)
    if base not in taken:
        return base
    for i in range(2, MAX_SUFFIX_ATTEMPTS):
        candidate = f"{base}-{i}"
        if candidate not in taken:
            return candidate
    return f"{base}-{int(time.time() * 1000)}"


class BundleComponentModel:
    """Mutable component list backing the group builder."""

    def __init__(self, components: Optional[Iterable[Any]] = None):
        self._items: List[Component] = []
        for c in components or []:
            component = c if isinstance(c, Component) else Component.from_dict(c)
            if component.ref:
                self._items.append(component)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Component]:
        return iter(list(self._items))

    @property
    def components(self) -> List[Component]:
        return [Component(c.ref, c.quantity, c.group) for c in self._items]

    def to_dicts(self) -> List[Dict[str, Any]]:
        return [c.to_dict() for c in self._items]

    def group_names(self) -> List[str]:
        seen: List[str] = []
        for c in self._items:
            g = c.group.strip()
            if g and g not in seen:
                seen.append(g)
        return seen

    # --- mutations ---

    def add(self, group: Any, ref: Any) -> bool:
        g = clean_text(group)[:MAX_GROUP_NAME_LENGTH]
        r = sanitize_ref(ref)
        if not r or not g:
            return False
        self._items.append(Component(ref=r, quantity=1, group=g))
        return True

    def create_group(self, name: Any, ref: Any) -> Optional[str]:
        """Start a new group holding `ref`; returns the resolved name."""
        base = clean_text(name)[:MAX_GROUP_NAME_LENGTH]
        if not base or not sanitize_ref(ref):
            return None
        resolved = unique_group_name(self.group_names(), base)
        self.add(resolved, ref)
        return resolved

    def update_at(self, index: int, patch: Dict[str, Any]) -> bool:
        if index < 0 or index >= len(self._items):
            return False
        current = self._items[index]
        ref, quantity, group = current.ref, current.quantity, current.group
        if "ref" in patch or "variantId" in patch:
            ref = sanitize_ref(patch.get("ref", patch.get("variantId"))) or ref
        if "quantity" in patch:
            quantity = clamp_quantity(patch["quantity"])
        if "group" in patch:
            group = str(patch["group"] or "")[:MAX_GROUP_NAME_LENGTH]
        self._items[index] = Component(ref=ref, quantity=quantity, group=group)
        return True

    def remove_at(self, index: int) -> bool:
        if index < 0 or index >= len(self._items):
            return False
        self._items.pop(index)
        return True

    def rename_group(self, from_group: Any, to_group: Any) -> Optional[str]:
        src = clean_text(from_group)
        dst = clean_text(to_group)[:MAX_GROUP_NAME_LENGTH]
        if not src or not dst or src == dst:
            return None
        others = [g for g in self.group_names() if g != src]
        resolved = unique_group_name(others, dst)
        for i, c in enumerate(self._items):
            if c.group.strip() == src:
                self._items[i] = Component(ref=c.ref, quantity=c.quantity, group=resolved)
        logger.debug(f"Renamed group {src!r} -> {resolved!r}")
        return resolved

    def delete_group(self, group: Any) -> int:
        g = clean_text(group)
        if not g:
            return 0
        before = len(self._items)
        self._items = [c for c in self._items if c.group.strip() != g]
        return before - len(self._items)

    def move(self, from_index: int, to_index: int, dragged_group: Any) -> bool:
        """
        Reorder within one group. The dragged payload's group must match both
        the source and destination component's group.
        """
        n = len(self._items)
        if from_index < 0 or from_index >= n or to_index < 0 or to_index >= n or from_index == to_index:
            return False
        g = clean_text(dragged_group)
        if self._items[from_index].group.strip() != g or self._items[to_index].group.strip() != g:
            return False
        item = self._items.pop(from_index)
        self._items.insert(to_index, item)
        return True

    def move_to_group(self, from_index: int, group: Any) -> bool:
        """Drop onto a group column: move to that group's first position."""
        g = clean_text(group)
        head = next((i for i, c in enumerate(self._items) if c.group.strip() == g), -1)
        if head < 0:
            return False
        return self.move(from_index, head, g)

    # --- views ---

    def groups_view(self) -> Iterator[Tuple[str, List[Tuple[int, Component]]]]:
        """
        Lazily yield (group, [(index, component), ...]) sorted by group name,
        ignoring case.
        Recomputed from the current list on every call.
        """
        buckets: Dict[str, List[Tuple[int, Component]]] = {}
        for i, c in enumerate(self._items):
            g = c.group.strip()
            if not g:
                continue
            buckets.setdefault(g, []).append((i, c))
        for name in sorted(buckets, key=lambda g: (g.casefold(), g)):
            yield name, buckets[name]

    def total_quantity(self) -> int:
        return sum(max(0, c.quantity) for c in self._items)

"""Node storage for k-ary trees.

A tree is a flat, index-addressed `NodeArray` whose elements are either an
`InternalNode` or a `LeafNode`. Children are referenced by integer index,
never by object reference. During induction, slots that have been handed
out to children but not yet decided hold `None`; the `WorkQueue` carries
one `PendingNode` descriptor for each of them.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator, Union

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray


# =============================================================================
# Node Variants
# =============================================================================

@dataclass(frozen=True, eq=False)
class InternalNode:
    """Split node with exactly k children.

    The split predicate is a feature index plus k - 1 ascending thresholds.
    A vector goes to child ``j`` where ``j`` is the number of thresholds
    strictly below its value for `feature`.
    """
    feature: int
    thresholds: NDArray      # (k - 1,) float64
    children: tuple[int, ...]
    depth: int
    n_samples: int

    @property
    def is_leaf(self) -> bool:
        return False

    def child_for(self, x: NDArray) -> int:
        """Node index of the child that `x` is routed to."""
        branch = int(np.count_nonzero(x[self.feature] > self.thresholds))
        return self.children[branch]


@dataclass(frozen=True, eq=False)
class LeafNode:
    """Terminal node storing the response statistics of its instances."""
    value: float             # mean response
    variance: float          # population variance of the responses
    n_samples: int
    depth: int
    indices: NDArray         # owned copy of the instance ids

    @property
    def is_leaf(self) -> bool:
        return True


Node = Union[InternalNode, LeafNode]


# =============================================================================
# Node Array
# =============================================================================

class NodeArray:
    """Growable node storage addressed by a 0-based integer index.

    Slots are allocated in contiguous blocks (one per split) and hold
    `None` until finalized. Growth never moves or rewrites finalized slots.
    """

    def __init__(self):
        self._nodes: list[Node | None] = []

    def __len__(self) -> int:
        return len(self._nodes)

    def __getitem__(self, index: int) -> Node:
        node = self._nodes[index]
        if node is None:
            raise IndexError(f"node {index} has not been finalized")
        return node

    def __setitem__(self, index: int, node: Node) -> None:
        if not 0 <= index < len(self._nodes):
            raise IndexError(f"node index {index} out of range for {len(self._nodes)} slots")
        self._nodes[index] = node

    def __iter__(self) -> Iterator[Node]:
        for index in range(len(self._nodes)):
            yield self[index]

    def allocate(self, count: int) -> int:
        """Append `count` pending slots and return the index of the first."""
        first = len(self._nodes)
        self._nodes.extend([None] * count)
        return first

    def reserve(self, index: int) -> None:
        """Grow the array so that `index` is a valid slot."""
        if index >= len(self._nodes):
            self._nodes.extend([None] * (index + 1 - len(self._nodes)))

    def truncate(self, size: int) -> None:
        """Drop every slot at or beyond `size`."""
        del self._nodes[size:]

    def is_complete(self) -> bool:
        """True when every slot holds a finalized node."""
        return all(node is not None for node in self._nodes)


# =============================================================================
# Work Queue
# =============================================================================

@dataclass
class PendingNode:
    """A node slot awaiting its split-or-leaf decision."""
    node_index: int
    parent_index: int        # -1 for the root
    depth: int
    indices: NDArray         # instance ids routed to this node, non-empty for a legal split

    @property
    def n_samples(self) -> int:
        return len(self.indices)


class WorkQueue:
    """FIFO of pending node descriptors.

    Siblings are pushed together at the back, so a parent is always
    finalized before any of its grandchildren.
    """

    def __init__(self):
        self._items: deque[PendingNode] = deque()

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def push(self, pending: PendingNode) -> None:
        self._items.append(pending)

    def pop(self) -> PendingNode:
        """Remove and return the oldest descriptor."""
        return self._items.popleft()

    def tail(self, count: int) -> list[PendingNode]:
        """The `count` most recently pushed descriptors, oldest first."""
        if count <= 0:
            return []
        return list(self._items)[-count:]

    def truncate(self, size: int) -> None:
        """Discard the most recently pushed descriptors until `size` remain."""
        while len(self._items) > size:
            self._items.pop()

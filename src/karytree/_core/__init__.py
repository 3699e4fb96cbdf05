"""Tree induction core: node storage, split strategies and the growth engine."""

from ._growth import KAryTree, TreeArrays, TreeOptions, UNLIMITED
from ._nodes import InternalNode, LeafNode, NodeArray, PendingNode, WorkQueue
from ._split import BestSplit, RandomSplit, Split, SplitStrategy, get_split_strategy

__all__ = [
    "KAryTree",
    "TreeArrays",
    "TreeOptions",
    "UNLIMITED",
    "InternalNode",
    "LeafNode",
    "NodeArray",
    "PendingNode",
    "WorkQueue",
    "BestSplit",
    "RandomSplit",
    "Split",
    "SplitStrategy",
    "get_split_strategy",
]

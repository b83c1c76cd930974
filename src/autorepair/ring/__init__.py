"""Token ring primitives and the token range splitter."""

from .splitter import RingView, TokenRangeSplitter
from .tokens import MAX_TOKEN, MIN_TOKEN, RING_SIZE, RepairAssignment, TokenRange, split_evenly

__all__ = [
    "MAX_TOKEN",
    "MIN_TOKEN",
    "RING_SIZE",
    "RepairAssignment",
    "RingView",
    "TokenRange",
    "TokenRangeSplitter",
    "split_evenly",
]

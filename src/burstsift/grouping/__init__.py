"""Group builder for duplicate, burst and similar photos."""

from .model import DuplicateGroup, GroupType, group_type_for
from .cluster import build_groups, summarize

__all__ = [
    "DuplicateGroup",
    "GroupType",
    "build_groups",
    "group_type_for",
    "summarize",
]

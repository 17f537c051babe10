"""
Index arithmetic for the funding tree.

Wallets live in a flat list; node `i` has children `2i+1` and `2i+2`. Trailing
indices past the end of the list simply do not exist.
"""

from typing import List, Sequence


def left_child(index: int) -> int:
    return index * 2 + 1


def right_child(index: int) -> int:
    return index * 2 + 2


def children_of(wallets: Sequence, index: int) -> List[int]:
    """Existing children of `index`, left before right."""
    return [c for c in (left_child(index), right_child(index)) if c < len(wallets)]


def first_level_indices(wallets: Sequence) -> List[int]:
    """Wallets funded directly by the admin (root) wallet."""
    return children_of(wallets, 0)

"""
TUI action mixins for the expertdeck tower.

Mixed into TowerApp via multiple inheritance.
"""

from .expert import ExpertActionsMixin
from .navigation import NavigationActionsMixin

__all__ = [
    "ExpertActionsMixin",
    "NavigationActionsMixin",
]

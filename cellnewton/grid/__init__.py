"""Per-cell state containers."""

from .state import StateGrid, ghost_widths

__all__ = ['StateGrid', 'ghost_widths']

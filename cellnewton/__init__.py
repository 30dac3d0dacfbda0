"""Batched implicit nonlinear solver with physical-validity projection."""

__version__ = "0.1.0"

"""Interaction and synchronization controller for a spatial graph canvas."""

__version__ = "0.1.0"

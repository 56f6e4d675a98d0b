"""RELMAP: a relationship map editor with optimistic sync to a shared store."""

__version__ = "0.1.0"

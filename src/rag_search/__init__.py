"""Hybrid keyword and vector search over an embedding index."""

__version__ = "0.1.0"

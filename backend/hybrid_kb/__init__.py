"""Hybrid keyword + vector retrieval over a personal knowledge base."""

__version__ = "0.1.0"

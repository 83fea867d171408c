"""Chunking and embedding components."""

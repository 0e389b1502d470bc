"""Core helpers shared across FineAuth."""

"""Catalog metadata, statement analysis, query planning, index file layout and a client for a small relational database."""

__version__ = "0.1.0"

__all__ = ["plan", "index", "analyze", "planner", "client"]
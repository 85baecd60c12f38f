"""
doggie-store — observability package

File: src/doggie_store/observability/__init__.py

Purpose
- structlog configuration shared by the CLI and the persistence layer.
"""

from doggie_store.observability.logging import bind_context, configure_logging

__all__ = ["bind_context", "configure_logging"]

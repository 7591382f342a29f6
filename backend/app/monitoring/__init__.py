"""Monitoring helpers and metric registry for the chat service."""

from . import metrics, registry

__all__ = ["metrics", "registry"]

"""Core utilities for the Parley backend."""

from .storage import LocalMediaStore, MediaPayload, MediaStore, UploadResult, get_media_store

__all__ = ["LocalMediaStore", "MediaPayload", "MediaStore", "UploadResult", "get_media_store"]

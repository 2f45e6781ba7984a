"""Persistence of connection profile records."""

from .profile_store import ProfileStore

__all__ = ["ProfileStore"]

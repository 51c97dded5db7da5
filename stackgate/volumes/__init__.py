"""Persistent volume store and bootstrap guard."""

from .store import FilesystemVolumeStore
from .bootstrap_guard import BootstrapGuard

__all__ = ["BootstrapGuard", "FilesystemVolumeStore"]

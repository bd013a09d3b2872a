"""Integrity-checked dependency retrieval and unpacking."""

from .archive import unpack
from .http import artifact_name, download, split_checksum

__all__ = ["artifact_name", "download", "split_checksum", "unpack"]

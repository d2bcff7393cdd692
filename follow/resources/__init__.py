"""Followable resources: local files and HTTP(S) URLs."""

from follow.resources.base import Delta, ResourceHandle, ResourceMetadata, Unchanged
from follow.resources.http import HttpResource
from follow.resources.local import LocalFileResource
from follow.resources.registry import resolve_resource

__all__ = [
    "Delta",
    "HttpResource",
    "LocalFileResource",
    "ResourceHandle",
    "ResourceMetadata",
    "Unchanged",
    "resolve_resource",
]

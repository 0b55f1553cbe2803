"""Payload resolution: extraction, naming, remote retrieval and policies."""

from .naming import GENERIC_NAME, NameGenerator, deduplicate
from .remote import RemoteFetcher
from .resource_loader import ResourceLoader, find_image_source

__all__ = [
    "GENERIC_NAME",
    "NameGenerator",
    "RemoteFetcher",
    "ResourceLoader",
    "deduplicate",
    "find_image_source",
]

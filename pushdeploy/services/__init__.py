"""Services for pushdeploy."""

from pushdeploy.services.storage import (
    InMemoryStorage,
    ObjectStorage,
    S3Storage,
    StoredObject,
    get_storage,
)

__all__ = [
    "InMemoryStorage",
    "ObjectStorage",
    "S3Storage",
    "StoredObject",
    "get_storage",
]

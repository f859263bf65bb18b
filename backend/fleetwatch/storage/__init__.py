from fleetwatch.storage.collection import DocumentCollection
from fleetwatch.storage.document_store import (
    DocumentNotFound,
    DocumentStore,
    JsonFileDocumentStore,
    MemoryDocumentStore,
    RedisDocumentStore,
    StoreError,
)

__all__ = [
    "DocumentCollection",
    "DocumentNotFound",
    "DocumentStore",
    "JsonFileDocumentStore",
    "MemoryDocumentStore",
    "RedisDocumentStore",
    "StoreError",
]

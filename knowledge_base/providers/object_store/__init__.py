"""Object store providers.

S3ObjectStore stores raw uploads, document metadata and processing statuses
in an S3 (or S3-compatible) bucket.  MemoryObjectStore keeps them in a dict
for local development and tests.
"""

from knowledge_base.providers.object_store.memory_object_store import MemoryObjectStore
from knowledge_base.providers.object_store.s3_object_store import S3ObjectStore

__all__ = ["MemoryObjectStore", "S3ObjectStore"]

"""
Storage Module - external collaborators behind small interfaces

Exports:
- RecordStore, CacheEntryStore (protocols), DocumentRecord
- InMemoryRecordStore, SQLiteRecordStore
- ImageStore (protocol), LocalImageStore, S3ImageStore, build_image_store
- diagram_upload_key, fetch_image_bytes
"""

from .record_store import (
    DocumentRecord,
    RecordStore,
    CacheEntryStore,
    InMemoryRecordStore,
    SQLiteRecordStore,
)
from .image_store import (
    ImageStore,
    LocalImageStore,
    S3ImageStore,
    build_image_store,
    diagram_upload_key,
    fetch_image_bytes,
)

__all__ = [
    'DocumentRecord',
    'RecordStore',
    'CacheEntryStore',
    'InMemoryRecordStore',
    'SQLiteRecordStore',
    'ImageStore',
    'LocalImageStore',
    'S3ImageStore',
    'build_image_store',
    'diagram_upload_key',
    'fetch_image_bytes',
]

"""
Registry ingestion.

Loaders reading raw batches from files or memory, and the deserializer
turning batches into canonical entities.
"""

from registerdata.ingestion.base import RegistryLoader, RowPredicate
from registerdata.ingestion.deserializer import BatchDeserializer
from registerdata.ingestion.files import FileRegistryLoader
from registerdata.ingestion.memory import FrameRegistryLoader

__all__ = [
    "BatchDeserializer",
    "FileRegistryLoader",
    "FrameRegistryLoader",
    "RegistryLoader",
    "RowPredicate",
]

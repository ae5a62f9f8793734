from storage.document_store.interface import COLLECTIONS, Dataset, DocumentStore
from storage.document_store.json_file import JsonFileStore
from storage.document_store.sql import SqlDocumentStore


def create_document_store(settings) -> DocumentStore:
    """Build the store selected by ``STORE_BACKEND``. Call ``initialize()`` on the result."""
    if settings.store_backend == "sql":
        return SqlDocumentStore(settings.database_url)
    return JsonFileStore(settings.data_file)


__all__ = [
    "COLLECTIONS",
    "Dataset",
    "DocumentStore",
    "JsonFileStore",
    "SqlDocumentStore",
    "create_document_store",
]

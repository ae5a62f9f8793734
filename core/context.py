"""
Application context: every long-lived service, built once per app.

Routes reach services through ``request.app.state.context`` so tests can
build as many isolated applications as they need.
"""

from dataclasses import dataclass

from loguru import logger

from auth.auth_manager import AuthManager
from auth.cache_manager import InMemoryCacheManager
from core.config import Settings
from documents.service import DocumentService
from practice.service import CaseService, ClientService, MessageService, StatsService
from security.audit.event_logger import AuditLogger
from storage.document_store import DocumentStore, create_document_store
from storage.object_store import ObjectStore, create_object_store


@dataclass
class AppContext:
    settings: Settings
    store: DocumentStore
    blobs: ObjectStore
    audit: AuditLogger
    auth: AuthManager
    clients: ClientService
    cases: CaseService
    documents: DocumentService
    messages: MessageService
    stats: StatsService
    rate_limits: InMemoryCacheManager

    def close(self) -> None:
        self.store.close()


def build_context(settings: Settings) -> AppContext:
    store = create_document_store(settings)
    store.initialize()
    blobs = create_object_store(settings)
    audit = AuditLogger(store)

    logger.info(f"[STARTUP] Store backend: {store.backend}, blob backend: {blobs.provider}")
    return AppContext(
        settings=settings,
        store=store,
        blobs=blobs,
        audit=audit,
        auth=AuthManager(settings, store, audit),
        clients=ClientService(store, audit),
        cases=CaseService(store, audit),
        documents=DocumentService(store, audit, blobs, settings.upload_max_bytes),
        messages=MessageService(store, audit),
        stats=StatsService(store),
        rate_limits=InMemoryCacheManager(),
    )

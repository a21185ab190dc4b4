import logging
from typing import List, Optional

from app.db.session import make_engine, make_session_factory
from app.services.accounting import ZohoBooksClient
from app.services.document_sync import DocumentSyncOrchestrator, SyncResult
from app.services.notifications import WebhookNotifier
from app.services.outbox import process_side_effect, due_effect_ids

logger = logging.getLogger(__name__)

# each task runs in its own event loop, so connections must not be pooled across tasks
engine_worker = make_engine(pooled=False)
AsyncSessionWorker = make_session_factory(engine_worker)

accounting_client = ZohoBooksClient()


def build_orchestrator(session_factory=None) -> DocumentSyncOrchestrator:
    return DocumentSyncOrchestrator(
        session_factory or AsyncSessionWorker,
        accounting=accounting_client,
        notifier=WebhookNotifier(),
    )


async def dispatch_side_effect_async(effect_id: int) -> Optional[SyncResult]:
    """Background task body: run one outbox row"""
    result = await process_side_effect(AsyncSessionWorker, build_orchestrator(), effect_id)
    if result is not None:
        logger.info(f"Side effect {effect_id}: {result.kind} for order {result.lead_id} -> {result.outcome}")
    return result


async def due_side_effects_async() -> List[int]:
    async with AsyncSessionWorker() as db:
        return await due_effect_ids(db)

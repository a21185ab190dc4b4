"""Collaborator providers for the routers. Tests override these with fakes."""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.redis import get_redis
from app.db.session import get_db, AsyncSessionLocal
from app.services.accounting import AccountingClient, ZohoBooksClient
from app.services.document_sync import DocumentSyncOrchestrator
from app.services.geocoding import Geocoder, GoogleGeocoder
from app.services.inventory import InventoryLookup, DatabaseInventory
from app.services.notifications import WebhookNotifier
from app.services.tasks import enqueue_side_effects
from app.services.orders import load_order
from app.core.auth_utils import check_ownership
from app.core.enums import ChangeActor
from app.models.order import Order


_accounting = ZohoBooksClient()


def get_geocoder() -> Geocoder:
    return GoogleGeocoder(cache=get_redis())


def get_inventory(db: AsyncSession = Depends(get_db)) -> InventoryLookup:
    return DatabaseInventory(db)


def get_accounting() -> AccountingClient:
    return _accounting


def get_orchestrator(accounting: AccountingClient = Depends(get_accounting)) -> DocumentSyncOrchestrator:
    return DocumentSyncOrchestrator(AsyncSessionLocal, accounting=accounting, notifier=WebhookNotifier())


def get_dispatcher():
    return enqueue_side_effects


async def load_owned_order(db: AsyncSession, lead_id: str, current_user) -> Order:
    order = await load_order(db, lead_id)
    check_ownership(order, current_user, "Order")
    return order


def actor_for(user) -> ChangeActor:
    return ChangeActor(str(user.role))

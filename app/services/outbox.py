"""Outbox of pending document-sync work.

Rows are written in the same transaction as the status event that unlocked
them. A worker claims a row with a conditional update, runs the document sync
and then marks the row done, or schedules a retry with exponential backoff
until ``OUTBOX_MAX_ATTEMPTS`` is reached.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from sqlalchemy import update, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.config import settings
from app.core.enums import DocumentKind, SideEffectStatus, SyncOutcome
from app.core.metrics import outbox_side_effects
from app.models.order import Order
from app.models.outbox import OrderSideEffect

logger = logging.getLogger(__name__)

OPEN_STATUSES = (SideEffectStatus.PENDING, SideEffectStatus.IN_PROGRESS)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def record_side_effects(db: AsyncSession, order: Order, kinds: Iterable[DocumentKind]) -> List[OrderSideEffect]:
    """Queue one row per unlocked kind, skipping kinds that already have an open row."""
    kinds = list(kinds)
    if not kinds:
        return []
    if order.id is None:
        await db.flush()

    res = await db.execute(
        select(OrderSideEffect.kind).where(
            OrderSideEffect.order_id == order.id,
            OrderSideEffect.status.in_(OPEN_STATUSES),
        )
    )
    open_kinds = set(res.scalars().all())

    created = []
    for kind in kinds:
        if kind in open_kinds:
            continue
        effect = OrderSideEffect(
            order_id=order.id,
            lead_id=order.lead_id,
            kind=kind,
            status=SideEffectStatus.PENDING,
            attempts=0,
            next_attempt_at=_utcnow(),
        )
        db.add(effect)
        created.append(effect)
        open_kinds.add(kind)
        outbox_side_effects.labels(kind=str(kind), status="queued").inc()
    return created


async def claim(db: AsyncSession, effect_id: int, now: Optional[datetime] = None) -> Optional[OrderSideEffect]:
    """Take ownership of a pending row that is due, or of an in-progress row whose lease ran out."""
    now = now or _utcnow()
    lease_cutoff = now - timedelta(seconds=settings.OUTBOX_LEASE_SECONDS)
    res = await db.execute(
        update(OrderSideEffect)
        .where(
            OrderSideEffect.id == effect_id,
            or_(
                and_(
                    OrderSideEffect.status == SideEffectStatus.PENDING,
                    or_(OrderSideEffect.next_attempt_at.is_(None), OrderSideEffect.next_attempt_at <= now),
                ),
                and_(
                    OrderSideEffect.status == SideEffectStatus.IN_PROGRESS,
                    OrderSideEffect.updated_at < lease_cutoff,
                ),
            ),
        )
        .values(
            status=SideEffectStatus.IN_PROGRESS,
            attempts=OrderSideEffect.attempts + 1,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    if res.rowcount != 1:
        return None
    return await db.get(OrderSideEffect, effect_id, populate_existing=True)


async def complete(db: AsyncSession, effect_id: int) -> None:
    effect = await db.get(OrderSideEffect, effect_id, populate_existing=True)
    effect.status = SideEffectStatus.DONE
    effect.last_error = None
    effect.next_attempt_at = None
    await db.commit()
    outbox_side_effects.labels(kind=str(effect.kind), status="done").inc()


async def fail(db: AsyncSession, effect_id: int, error: str, now: Optional[datetime] = None) -> OrderSideEffect:
    now = now or _utcnow()
    effect = await db.get(OrderSideEffect, effect_id, populate_existing=True)
    effect.last_error = (error or "unknown error")[:1000]
    if effect.attempts >= settings.OUTBOX_MAX_ATTEMPTS:
        effect.status = SideEffectStatus.FAILED
        effect.next_attempt_at = None
        logger.error(f"Giving up on {effect.kind} for order {effect.lead_id} after {effect.attempts} attempts: {error}")
    else:
        effect.status = SideEffectStatus.PENDING
        delay = settings.OUTBOX_BACKOFF_SECONDS * 2 ** (effect.attempts - 1)
        effect.next_attempt_at = now + timedelta(seconds=delay)
        logger.warning(f"{effect.kind} for order {effect.lead_id} failed (attempt {effect.attempts}), retry in {delay}s")
    await db.commit()
    outbox_side_effects.labels(kind=str(effect.kind), status=str(effect.status)).inc()
    return effect


async def due_effect_ids(db: AsyncSession, now: Optional[datetime] = None, limit: Optional[int] = None) -> List[int]:
    now = now or _utcnow()
    lease_cutoff = now - timedelta(seconds=settings.OUTBOX_LEASE_SECONDS)
    res = await db.execute(
        select(OrderSideEffect.id)
        .where(
            or_(
                and_(
                    OrderSideEffect.status == SideEffectStatus.PENDING,
                    OrderSideEffect.next_attempt_at <= now,
                ),
                and_(
                    OrderSideEffect.status == SideEffectStatus.IN_PROGRESS,
                    OrderSideEffect.updated_at < lease_cutoff,
                ),
            )
        )
        .order_by(OrderSideEffect.id)
        .limit(limit or settings.OUTBOX_BATCH_SIZE)
    )
    return list(res.scalars().all())


async def latest_effect(db: AsyncSession, order_id: int, kind: DocumentKind) -> Optional[OrderSideEffect]:
    res = await db.execute(
        select(OrderSideEffect)
        .where(OrderSideEffect.order_id == order_id, OrderSideEffect.kind == kind)
        .order_by(OrderSideEffect.id.desc())
        .limit(1)
    )
    return res.scalars().first()


async def process_side_effect(session_factory, orchestrator, effect_id: int):
    """Run one outbox row through the document sync. Returns None if it was not claimable."""
    async with session_factory() as db:
        effect = await claim(db, effect_id)
        if effect is None:
            logger.info(f"Side effect {effect_id} not due, already taken or finished")
            return None
        lead_id, kind = effect.lead_id, effect.kind

    try:
        result = await orchestrator.sync(lead_id, kind)
    except Exception as e:
        async with session_factory() as db:
            await fail(db, effect_id, str(e))
        raise

    async with session_factory() as db:
        if result.outcome in (SyncOutcome.CREATED, SyncOutcome.ALREADY_EXISTS):
            await complete(db, effect_id)
        else:
            await fail(db, effect_id, result.error or str(result.outcome))
    return result

"""Maintenance transition coordinator.

Introducing or editing a block can orphan booked appointments, so block
writes go through two phases:

    preview_maintenance  -> pure read, returns the affected set and a token
    apply_maintenance    -> persists the block and moves exactly that set

Removing a block is the mirror image (preview_reactivation /
apply_reactivation). Each apply is a single transaction, retried as a
whole on transient database errors and never resumed mid-batch.
"""

import hashlib
import logging
import uuid
from collections import Counter
from datetime import date, datetime, time
from typing import Iterable, NamedTuple

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt

from clinic_backend.auth.context import SessionContext, require_admin
from clinic_backend.core import config
from clinic_backend.models.appointment import Appointment
from clinic_backend.models.block import ScheduleBlock
from clinic_backend.services import records
from clinic_backend.scheduling.blocks import applies_to, occurs_on
from clinic_backend.scheduling.cache import month_cache, provider_scope_key
from clinic_backend.scheduling.errors import BookingConflict, SchedulingError, TransactionFailed, ValidationFailed
from clinic_backend.scheduling.states import AppointmentStatus, transition

logger = logging.getLogger(__name__)

MOVABLE_STATUSES = (AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value)
STALE_PREVIEW_DETAIL = 'Affected appointments changed since the preview. Please preview again.'


class BlockDraft(NamedTuple):
    provider_id: int | None
    date_from: date
    date_to: date
    reason: str | None = None
    annual_recurring: bool = False


class MaintenanceItem(NamedTuple):
    appointment_id: int
    provider_id: int
    patient_id: int
    room_id: int
    date: date
    time: time
    status: str


class MaintenancePreview(NamedTuple):
    total: int
    by_status: dict[str, int]
    items: list[MaintenanceItem]
    token: str


class MaintenanceBatch(NamedTuple):
    batch_id: str | None
    block_id: str
    total: int
    items: list[MaintenanceItem]


# =============================================================================
# Helpers
# =============================================================================

def validate_draft(draft: BlockDraft) -> BlockDraft:
    if draft.date_from is None or draft.date_to is None:
        raise ValidationFailed('A start and end date are required.')
    # Annual ranges compare month/day only and may wrap the new year.
    if not draft.annual_recurring and draft.date_from > draft.date_to:
        raise ValidationFailed('The block must end on or after its start date.')
    reason = (draft.reason or '').strip() or None
    return draft._replace(reason=reason)


def draft_from_block(block: ScheduleBlock) -> BlockDraft:
    return BlockDraft(
        provider_id=block.provider_id,
        date_from=block.date_from,
        date_to=block.date_to,
        reason=block.reason,
        annual_recurring=bool(block.annual_recurring),
    )


def _as_item(appointment: Appointment) -> MaintenanceItem:
    return MaintenanceItem(
        appointment_id=appointment.id,
        provider_id=appointment.provider_id,
        patient_id=appointment.patient_id,
        room_id=appointment.room_id,
        date=appointment.date,
        time=appointment.time,
        status=appointment.status,
    )


def preview_token(kind: str, block_id: str | None, draft: BlockDraft, appointment_ids: Iterable[int]) -> str:
    parts = [
        kind,
        block_id or '',
        '' if draft.provider_id is None else str(draft.provider_id),
        draft.date_from.isoformat(),
        draft.date_to.isoformat(),
        '1' if draft.annual_recurring else '0',
        ','.join(str(appointment_id) for appointment_id in sorted(appointment_ids)),
    ]
    return hashlib.sha256('|'.join(parts).encode('utf-8')).hexdigest()


def _build_preview(kind: str, block_id: str | None, draft: BlockDraft, appointments: list[Appointment]) -> MaintenancePreview:
    items = [_as_item(appointment) for appointment in appointments]
    return MaintenancePreview(
        total=len(items),
        by_status=dict(Counter(item.status for item in items)),
        items=items,
        token=preview_token(kind, block_id, draft, [item.appointment_id for item in items]),
    )


def _invalidate_scopes(*provider_ids: int | None) -> None:
    for provider_id in set(provider_ids):
        month_cache.invalidate(provider_scope_key(provider_id))


def _run_atomically(db: Session, operation, description: str):
    """Run ``operation`` in one transaction, retrying the whole of it on transient errors."""
    retrying = Retrying(
        stop=stop_after_attempt(max(1, config.MAINTENANCE_APPLY_ATTEMPTS)),
        retry=retry_if_exception_type(OperationalError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    try:
        for attempt in retrying:
            with attempt:
                try:
                    result = operation()
                except (SchedulingError, SQLAlchemyError):
                    db.rollback()
                    raise
    except SQLAlchemyError as exc:
        logger.error('%s failed; no changes applied', description, exc_info=True)
        raise TransactionFailed() from exc
    return result


# =============================================================================
# Maintenance (block create / edit)
# =============================================================================

def affected_appointments(db: Session, draft: BlockDraft, now: datetime) -> list[Appointment]:
    """Pending/confirmed appointments from ``now`` onwards that the block would cover."""
    query = db.query(Appointment).filter(
        Appointment.status.in_(MOVABLE_STATUSES),
        Appointment.date >= now.date(),
    )
    if draft.provider_id is not None:
        query = query.filter(Appointment.provider_id == draft.provider_id)
    if not draft.annual_recurring:
        query = query.filter(Appointment.date >= draft.date_from, Appointment.date <= draft.date_to)

    appointments = query.order_by(Appointment.date.asc(), Appointment.time.asc(), Appointment.id.asc()).all()
    return [
        appointment for appointment in appointments
        if datetime.combine(appointment.date, appointment.time) >= now
        and applies_to(draft, appointment.provider_id)
        and occurs_on(draft, appointment.date)
    ]


def preview_maintenance(
    db: Session,
    draft: BlockDraft,
    *,
    block_id: str | None = None,
    now: datetime | None = None,
) -> MaintenancePreview:
    draft = validate_draft(draft)
    if block_id is not None:
        records.get_block(db, block_id)
    now = now or config.clinic_now()
    return _build_preview('maintenance', block_id, draft, affected_appointments(db, draft, now))


def apply_maintenance(
    db: Session,
    draft: BlockDraft,
    *,
    context: SessionContext,
    token: str | None,
    confirm: bool,
    block_id: str | None = None,
    now: datetime | None = None,
) -> MaintenanceBatch:
    """Persist the block (new when ``block_id`` is None) and move the previewed appointments."""
    require_admin(context)
    if not confirm:
        raise ValidationFailed('Block changes must be confirmed before they are applied.')
    if not token:
        raise ValidationFailed('Preview the affected appointments before applying the block.')
    draft = validate_draft(draft)

    def operation() -> MaintenanceBatch:
        current = now or config.clinic_now()
        appointments = affected_appointments(db, draft, current)
        preview = _build_preview('maintenance', block_id, draft, appointments)
        if preview.token != token:
            raise BookingConflict(STALE_PREVIEW_DETAIL)

        if block_id is None:
            block = ScheduleBlock(group_id=uuid.uuid4().hex)
            db.add(block)
            previous_provider_id = draft.provider_id
        else:
            block = records.get_block(db, block_id)
            previous_provider_id = block.provider_id

        block.provider_id = draft.provider_id
        block.date_from = draft.date_from
        block.date_to = draft.date_to
        block.reason = draft.reason
        block.annual_recurring = draft.annual_recurring

        batch_id = uuid.uuid4().hex if appointments else None
        for appointment in appointments:
            transition(appointment, AppointmentStatus.MAINTENANCE)
            appointment.caused_by_block_id = block.group_id
            appointment.maintenance_batch_id = batch_id

        db.commit()
        _invalidate_scopes(draft.provider_id, previous_provider_id)
        logger.info(
            'Applied block %s (%s): batch=%s moved %s appointments to maintenance',
            block.group_id, 'created' if block_id is None else 'edited', batch_id, preview.total,
        )
        return MaintenanceBatch(batch_id, block.group_id, preview.total, preview.items)

    return _run_atomically(db, operation, 'Maintenance apply')


# =============================================================================
# Reactivation (block delete)
# =============================================================================

def reactivation_candidates(db: Session, block: ScheduleBlock) -> list[Appointment]:
    """Maintenance appointments linked to ``block``.

    Rows moved before the link existed fall back to matching by scope and date.
    """
    appointments = db.query(Appointment).filter(
        Appointment.status == AppointmentStatus.MAINTENANCE.value,
    ).order_by(Appointment.date.asc(), Appointment.time.asc(), Appointment.id.asc()).all()

    candidates = []
    for appointment in appointments:
        if appointment.caused_by_block_id is not None:
            if appointment.caused_by_block_id == block.group_id:
                candidates.append(appointment)
            continue
        if applies_to(block, appointment.provider_id) and occurs_on(block, appointment.date):
            candidates.append(appointment)
    return candidates


def preview_reactivation(db: Session, block_id: str) -> MaintenancePreview:
    block = records.get_block(db, block_id)
    return _build_preview('reactivation', block_id, draft_from_block(block), reactivation_candidates(db, block))


def apply_reactivation(
    db: Session,
    block_id: str,
    *,
    context: SessionContext,
    token: str | None,
    confirm: bool = True,
) -> MaintenanceBatch:
    """Return the previewed appointments to pending and delete the block, atomically."""
    require_admin(context)
    if not confirm:
        raise ValidationFailed('Block removal must be confirmed before it is applied.')
    if not token:
        raise ValidationFailed('Preview the affected appointments before removing the block.')

    def operation() -> MaintenanceBatch:
        block = records.get_block(db, block_id)
        appointments = reactivation_candidates(db, block)
        preview = _build_preview('reactivation', block_id, draft_from_block(block), appointments)
        if preview.token != token:
            raise BookingConflict(STALE_PREVIEW_DETAIL)

        for appointment in appointments:
            transition(appointment, AppointmentStatus.PENDING)
            appointment.caused_by_block_id = None
            appointment.maintenance_batch_id = None

        provider_id = block.provider_id
        db.delete(block)
        db.commit()
        _invalidate_scopes(provider_id)
        logger.info('Removed block %s: reactivated %s appointments', block_id, preview.total)
        return MaintenanceBatch(None, block_id, preview.total, preview.items)

    return _run_atomically(db, operation, 'Reactivation apply')


def list_blocks(
    db: Session,
    *,
    provider_id: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> list[ScheduleBlock]:
    query = db.query(ScheduleBlock)
    if provider_id is not None:
        query = query.filter(ScheduleBlock.provider_id == provider_id)
    if date_from is not None:
        query = query.filter((ScheduleBlock.annual_recurring.is_(True)) | (ScheduleBlock.date_to >= date_from))
    if date_to is not None:
        query = query.filter((ScheduleBlock.annual_recurring.is_(True)) | (ScheduleBlock.date_from <= date_to))
    return query.order_by(ScheduleBlock.date_from.asc()).all()

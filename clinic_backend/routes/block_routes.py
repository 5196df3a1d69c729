from datetime import date, time

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.auth.context import SessionContext, require_admin
from clinic_backend.auth.dependencies import get_session_context
from clinic_backend.routes.common import database_unavailable, ensure_database_ready, get_db, to_http_exception
from clinic_backend.services import maintenance_service
from clinic_backend.services.maintenance_service import BlockDraft, MaintenanceBatch, MaintenancePreview
from clinic_backend.scheduling.errors import SchedulingError

router = APIRouter(tags=['blocks'])

MAX_BLOCK_REASON_LENGTH = 200


class BlockDraftRequest(BaseModel):
    provider_id: int | None = None
    date_from: date
    date_to: date
    reason: str | None = None
    annual_recurring: bool = False

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_BLOCK_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_BLOCK_REASON_LENGTH} characters or fewer.')

        return normalized

    def to_draft(self) -> BlockDraft:
        return BlockDraft(
            provider_id=self.provider_id,
            date_from=self.date_from,
            date_to=self.date_to,
            reason=self.reason,
            annual_recurring=self.annual_recurring,
        )


class BlockPreviewRequest(BlockDraftRequest):
    block_id: str | None = None


class BlockApplyRequest(BlockDraftRequest):
    token: str | None = None
    confirm: bool = False


class ReactivationApplyRequest(BaseModel):
    token: str | None = None
    confirm: bool = False


class BlockResponse(BaseModel):
    group_id: str
    provider_id: int | None = None
    date_from: date
    date_to: date
    reason: str | None = None
    annual_recurring: bool

    class Config:
        from_attributes = True


class AffectedAppointmentResponse(BaseModel):
    appointment_id: int
    provider_id: int
    patient_id: int
    room_id: int
    date: date
    time: time
    status: str


class MaintenancePreviewResponse(BaseModel):
    total: int
    by_status: dict[str, int]
    items: list[AffectedAppointmentResponse]
    token: str


class MaintenanceBatchResponse(BaseModel):
    batch_id: str | None = None
    block_id: str
    total: int
    items: list[AffectedAppointmentResponse]


def _items(items) -> list[AffectedAppointmentResponse]:
    return [AffectedAppointmentResponse(**item._asdict()) for item in items]


def to_preview_response(preview: MaintenancePreview) -> MaintenancePreviewResponse:
    return MaintenancePreviewResponse(
        total=preview.total,
        by_status=preview.by_status,
        items=_items(preview.items),
        token=preview.token,
    )


def to_batch_response(batch: MaintenanceBatch) -> MaintenanceBatchResponse:
    return MaintenanceBatchResponse(
        batch_id=batch.batch_id,
        block_id=batch.block_id,
        total=batch.total,
        items=_items(batch.items),
    )


@router.get('', response_model=list[BlockResponse])
def list_blocks(
    provider_id: int | None = Query(default=None),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    context: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    del context
    ensure_database_ready()

    try:
        return maintenance_service.list_blocks(db, provider_id=provider_id, date_from=date_from, date_to=date_to)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/preview', response_model=MaintenancePreviewResponse)
def preview_block(
    data: BlockPreviewRequest,
    context: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        require_admin(context)
        preview = maintenance_service.preview_maintenance(db, data.to_draft(), block_id=data.block_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return to_preview_response(preview)


@router.post('', response_model=MaintenanceBatchResponse, status_code=status.HTTP_201_CREATED)
def create_block(
    data: BlockApplyRequest,
    context: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        batch = maintenance_service.apply_maintenance(
            db,
            data.to_draft(),
            context=context,
            token=data.token,
            confirm=data.confirm,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return to_batch_response(batch)


@router.put('/{block_id}', response_model=MaintenanceBatchResponse)
def update_block(
    block_id: str,
    data: BlockApplyRequest,
    context: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        batch = maintenance_service.apply_maintenance(
            db,
            data.to_draft(),
            context=context,
            token=data.token,
            confirm=data.confirm,
            block_id=block_id,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return to_batch_response(batch)


@router.get('/{block_id}/reactivation', response_model=MaintenancePreviewResponse)
def preview_block_removal(
    block_id: str,
    context: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        require_admin(context)
        preview = maintenance_service.preview_reactivation(db, block_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return to_preview_response(preview)


@router.post('/{block_id}/reactivation', response_model=MaintenanceBatchResponse)
def remove_block(
    block_id: str,
    data: ReactivationApplyRequest,
    context: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        batch = maintenance_service.apply_reactivation(
            db,
            block_id,
            context=context,
            token=data.token,
            confirm=data.confirm,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return to_batch_response(batch)

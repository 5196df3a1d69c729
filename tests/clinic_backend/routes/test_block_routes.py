from datetime import date, datetime

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from clinic_backend.auth.context import AdminContext, PatientContext
from clinic_backend.core import config
from clinic_backend.routes.block_routes import (
    BlockApplyRequest,
    BlockDraftRequest,
    BlockPreviewRequest,
    ReactivationApplyRequest,
    create_block,
    list_blocks,
    preview_block,
    preview_block_removal,
    remove_block,
)

NOW = datetime(2026, 3, 2, 10, 0)
WEDNESDAY = date(2026, 3, 4)

ADMIN = AdminContext(user_id=1)
PATIENT = PatientContext(user_id=3, patient_id=1)


@pytest.fixture(autouse=True)
def route_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'clinic_now', lambda: NOW)
    monkeypatch.setattr('clinic_backend.routes.block_routes.ensure_database_ready', lambda: None)


def test_block_request_normalizes_blank_reason() -> None:
    request = BlockDraftRequest(date_from=WEDNESDAY, date_to=WEDNESDAY, reason='   ')

    assert request.reason is None


def test_block_request_rejects_long_reason() -> None:
    with pytest.raises(ValidationError):
        BlockDraftRequest(date_from=WEDNESDAY, date_to=WEDNESDAY, reason='x' * 201)


def test_preview_create_and_remove_block(clinic_db, make_appointment) -> None:
    pending = make_appointment(WEDNESDAY, 9)
    confirmed = make_appointment(WEDNESDAY, 10, status='confirmed')
    draft = {'provider_id': 1, 'date_from': WEDNESDAY, 'date_to': WEDNESDAY, 'reason': 'Training'}

    preview = preview_block(data=BlockPreviewRequest(**draft), context=ADMIN, db=clinic_db)
    assert preview.total == 2
    assert preview.by_status == {'pending': 1, 'confirmed': 1}

    batch = create_block(
        data=BlockApplyRequest(**draft, token=preview.token, confirm=True), context=ADMIN, db=clinic_db,
    )
    assert batch.total == 2
    assert {item.appointment_id for item in batch.items} == {pending.id, confirmed.id}

    blocks = list_blocks(provider_id=1, date_from=None, date_to=None, context=ADMIN, db=clinic_db)
    assert [block.group_id for block in blocks] == [batch.block_id]

    removal = preview_block_removal(block_id=batch.block_id, context=ADMIN, db=clinic_db)
    result = remove_block(
        block_id=batch.block_id,
        data=ReactivationApplyRequest(token=removal.token, confirm=True),
        context=ADMIN,
        db=clinic_db,
    )

    assert result.total == 2
    assert list_blocks(provider_id=1, date_from=None, date_to=None, context=ADMIN, db=clinic_db) == []


def test_patients_cannot_preview_blocks(clinic_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        preview_block(
            data=BlockPreviewRequest(date_from=WEDNESDAY, date_to=WEDNESDAY), context=PATIENT, db=clinic_db,
        )

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'Only clinic staff can manage blocks and schedules.'


def test_create_block_requires_confirmation(clinic_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_block(
            data=BlockApplyRequest(date_from=WEDNESDAY, date_to=WEDNESDAY, token='abc', confirm=False),
            context=ADMIN,
            db=clinic_db,
        )

    assert exception_info.value.status_code == 400


def test_create_block_with_stale_token_is_a_conflict(clinic_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_block(
            data=BlockApplyRequest(date_from=WEDNESDAY, date_to=WEDNESDAY, token='not-a-preview', confirm=True),
            context=ADMIN,
            db=clinic_db,
        )

    assert exception_info.value.status_code == 409


def test_removing_unknown_block_is_not_found(clinic_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        preview_block_removal(block_id='missing', context=ADMIN, db=clinic_db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Block not found.'

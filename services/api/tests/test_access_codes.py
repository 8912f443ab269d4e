from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from pac_api.models.access import IntercomAccessCode
from pac_api.models.audit import IntercomAccessLog
from pac_api.models.base import ensure_utc, utc_now
from pac_api.models.enums import AccessCodeType, CredentialType
from pac_api.services import AccessCodeService, ErrorKind, VerificationEngine, validate_window, verify_secret

from factories import World, add_tenant, add_user


def _logs(db: Session) -> list[IntercomAccessLog]:
    return list(db.execute(select(IntercomAccessLog).order_by(IntercomAccessLog.id)).scalars().all())


def _create(db: Session, actor, **kwargs) -> IntercomAccessCode:
    kwargs.setdefault("code", "9999")
    result = AccessCodeService(db).create_code(actor, **kwargs)
    assert result.ok, result.message
    return result.value


def test_validate_window_rules():
    now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    assert validate_window(None, None, now=now).ok
    assert validate_window(None, now + timedelta(hours=1), now=now).ok
    assert validate_window(now - timedelta(hours=1), now + timedelta(hours=1), now=now).ok
    assert validate_window(now + timedelta(hours=1), None, now=now).ok
    assert validate_window(None, now, now=now).message == "Expiry must be in the future."
    assert validate_window(None, now - timedelta(seconds=1), now=now).error.kind == ErrorKind.VALIDATION_ERROR
    assert validate_window(now + timedelta(hours=2), now + timedelta(hours=1), now=now).message == (
        "Expiry must be after valid-from."
    )
    # 无时区时间按 UTC 处理。
    assert validate_window(None, datetime(2026, 1, 1, 13, 0), now=now).ok


def test_property_manager_creates_building_wide_code(db_session: Session, world: World):
    expires_at = utc_now() + timedelta(days=1)

    result = AccessCodeService(db_session).create_code(
        world.pm,
        code="24680",
        building_id=world.building_id,
        expires_at=expires_at,
    )

    assert result.ok
    assert result.message == "Access code created."
    code = result.value
    assert code.building_id == world.building_id
    assert code.intercom_id is None
    assert code.code_type == AccessCodeType.PIN
    assert code.code_plain == "24680"
    assert code.code_hash != "24680"
    assert verify_secret("24680", code.code_hash)
    assert code.created_by == world.pm_id
    assert code.is_active is True
    assert ensure_utc(code.expires_at) == expires_at

    (log,) = _logs(db_session)
    assert log.credential_type == CredentialType.ACCESS_CODE
    assert log.credential_ref_id == code.id
    assert log.is_success is True
    assert log.reason == "Access code created"


def test_created_code_opens_the_door(db_session: Session, world: World):
    _create(db_session, world.desk, code="31415", building_id=world.building_id, intercom_id=world.intercom_id)

    assert VerificationEngine(db_session).verify(world.intercom_id, "31415").granted is True


def test_tenant_code_is_pinned_to_tenant_building(db_session: Session, world: World):
    code = _create(db_session, world.tenant, tenant_id=world.tenant_id)

    assert code.building_id == world.building_id
    assert code.tenant_id == world.tenant_id
    assert code.created_by == world.tenant_user_id


@pytest.mark.parametrize(
    ("overrides", "expected_kind", "expected_message"),
    [
        ({}, ErrorKind.VALIDATION_ERROR, "BuildingId is required."),
        ({"building_id": 9999}, ErrorKind.NOT_FOUND, "Building 9999 not found."),
        ({"building_id": "other"}, ErrorKind.NOT_ALLOWED, "Not allowed for this building."),
        ({"building_id": "own", "intercom_id": 9999}, ErrorKind.NOT_FOUND, "Intercom 9999 not found."),
        (
            {"building_id": "own", "intercom_id": "foreign"},
            ErrorKind.VALIDATION_ERROR,
            "Intercom does not belong to the specified building.",
        ),
        ({"building_id": "own", "expires_at": "past"}, ErrorKind.VALIDATION_ERROR, "Expiry must be in the future."),
        ({"building_id": "own", "tenant_id": 9999}, ErrorKind.NOT_FOUND, "Tenant 9999 not found."),
    ],
)
def test_create_code_rejections_are_logged(
    db_session: Session,
    world: World,
    overrides: dict,
    expected_kind: ErrorKind,
    expected_message: str,
):
    placeholders = {
        "own": world.building_id,
        "other": world.other_building_id,
        "foreign": world.other_intercom_id,
        "past": utc_now() - timedelta(hours=1),
    }
    kwargs = {key: placeholders.get(value, value) for key, value in overrides.items()}

    result = AccessCodeService(db_session).create_code(world.pm, code="24680", **kwargs)

    assert result.error.kind == expected_kind
    assert result.message == expected_message
    assert db_session.execute(select(IntercomAccessCode)).first() is None
    (log,) = _logs(db_session)
    assert log.is_success is False
    assert log.credential_type == CredentialType.ACCESS_CODE
    assert log.reason == expected_message


def test_tenant_record_must_belong_to_code_building(db_session: Session, world: World):
    neighbour = add_user(db_session, "neighbour@example.com", user_type_id=None)
    foreign_tenant = add_tenant(db_session, user_id=neighbour.id, building_id=world.other_building_id)
    db_session.commit()

    result = AccessCodeService(db_session).create_code(
        world.pm,
        code="24680",
        building_id=world.building_id,
        tenant_id=foreign_tenant.id,
    )

    assert result.error.kind == ErrorKind.VALIDATION_ERROR
    assert result.message == "Tenant does not belong to the specified building."


def test_list_codes_is_scoped_per_role(db_session: Session, world: World):
    pm_code = _create(db_session, world.pm, building_id=world.building_id)
    tenant_code = _create(db_session, world.tenant)
    desk_code = _create(db_session, world.desk, building_id=world.building_id, intercom_id=world.side_intercom_id)
    other_code = _create(db_session, world.other_pm, building_id=world.other_building_id)
    service = AccessCodeService(db_session)

    def ids(actor, **kwargs) -> list[int]:
        items, total = service.list_codes(actor, **kwargs)
        assert total == len(items)
        return [item.id for item in items]

    assert ids(world.admin) == [other_code.id, desk_code.id, tenant_code.id, pm_code.id]
    assert ids(world.tenant) == [tenant_code.id]
    assert ids(world.desk) == [desk_code.id, tenant_code.id, pm_code.id]
    assert ids(world.pm) == [desk_code.id, tenant_code.id, pm_code.id]
    assert ids(world.other_pm) == [other_code.id]
    assert ids(world.admin, building_id=world.building_id) == [desk_code.id, tenant_code.id, pm_code.id]
    assert ids(world.admin, intercom_id=world.side_intercom_id) == [desk_code.id]


def test_list_codes_applies_ownership_visibility_inside_buildings(db_session: Session, world: World):
    # 生态外的用户在同一楼宇创建的访问码，对前台不可见。
    _create(db_session, world.admin, building_id=world.building_id)
    visible = _create(db_session, world.pm, building_id=world.building_id)

    items, total = AccessCodeService(db_session).list_codes(world.desk)

    assert total == 1
    assert [item.id for item in items] == [visible.id]


def test_list_codes_paginates_newest_first(db_session: Session, world: World):
    created = [_create(db_session, world.pm, code=f"50{i:02d}", building_id=world.building_id).id for i in range(5)]
    service = AccessCodeService(db_session)

    first_page, total = service.list_codes(world.pm, page=1, page_size=2)
    third_page, _ = service.list_codes(world.pm, page=3, page_size=2)

    assert total == 5
    assert [item.id for item in first_page] == created[::-1][:2]
    assert [item.id for item in third_page] == [created[0]]


def test_update_code_changes_only_supplied_fields(db_session: Session, world: World):
    valid_from = utc_now() + timedelta(hours=1)
    code = _create(db_session, world.pm, building_id=world.building_id, valid_from=valid_from)

    result = AccessCodeService(db_session).update_code(world.desk, code.id, code="11223", is_single_use=True)

    assert result.ok
    assert result.message == "Access code updated."
    updated = result.value
    assert updated.code_plain == "11223"
    assert verify_secret("11223", updated.code_hash)
    assert updated.is_single_use is True
    assert ensure_utc(updated.valid_from) == valid_from
    assert updated.building_id == world.building_id
    assert updated.updated_by == world.desk_id
    assert _logs(db_session)[-1].reason == "Access code updated"


def test_update_code_revalidates_effective_window(db_session: Session, world: World):
    valid_from = utc_now() + timedelta(days=2)
    code = _create(db_session, world.pm, building_id=world.building_id, valid_from=valid_from)
    service = AccessCodeService(db_session)

    before_start = service.update_code(world.pm, code.id, expires_at=utc_now() + timedelta(days=1))
    in_past = service.update_code(world.pm, code.id, expires_at=utc_now() - timedelta(days=1))

    assert before_start.message == "Expiry must be after valid-from."
    assert in_past.message == "Expiry must be in the future."
    db_session.refresh(code)
    assert code.expires_at is None
    assert [log.is_success for log in _logs(db_session)] == [True, False, False]


def test_tenant_cannot_touch_codes_created_by_others(db_session: Session, world: World):
    code = _create(db_session, world.pm, building_id=world.building_id)
    service = AccessCodeService(db_session)

    assert service.update_code(world.tenant, code.id, code="11223").error.kind == ErrorKind.NOT_ALLOWED
    assert service.set_active(world.tenant, code.id, active=False).error.kind == ErrorKind.NOT_ALLOWED
    assert service.delete_code(world.tenant, code.id).error.kind == ErrorKind.NOT_ALLOWED


def test_staff_cannot_touch_codes_in_foreign_buildings(db_session: Session, world: World):
    code = _create(db_session, world.other_pm, building_id=world.other_building_id)

    result = AccessCodeService(db_session).set_active(world.pm, code.id, active=False)

    assert result.error.kind == ErrorKind.NOT_ALLOWED
    assert result.message == "Not allowed for this building."


def test_activate_and_deactivate_are_idempotent(db_session: Session, world: World):
    code = _create(db_session, world.pm, code="7878", building_id=world.building_id)
    service = AccessCodeService(db_session)

    for _ in range(2):
        result = service.set_active(world.pm, code.id, active=False)
        assert result.ok
        assert result.message == "Deactivated."
        assert result.value.is_active is False
    assert VerificationEngine(db_session).verify(world.intercom_id, "7878").granted is False

    for _ in range(2):
        result = service.set_active(world.pm, code.id, active=True)
        assert result.message == "Activated."
        assert result.value.is_active is True
    assert VerificationEngine(db_session).verify(world.intercom_id, "7878").granted is True


def test_delete_is_soft_and_hides_code(db_session: Session, world: World):
    code = _create(db_session, world.tenant, code="6543")
    code_id = code.id
    service = AccessCodeService(db_session)

    result = service.delete_code(world.tenant, code_id)

    assert result.ok
    assert result.message == "Deleted."
    stored = db_session.get(IntercomAccessCode, code_id)
    assert stored is not None
    assert stored.deleted_at is not None
    assert stored.is_active is False
    assert service.list_codes(world.tenant) == ([], 0)
    assert VerificationEngine(db_session).verify(world.intercom_id, "6543").granted is False

    again = service.delete_code(world.tenant, code_id)
    assert again.error.kind == ErrorKind.NOT_FOUND
    assert again.message == f"Access code {code_id} not found."
    assert service.set_active(world.tenant, code_id, active=True).error.kind == ErrorKind.NOT_FOUND


def test_mutating_unknown_code_is_not_found(db_session: Session, world: World):
    result = AccessCodeService(db_session).update_code(world.admin, 9999, code="11223")

    assert result.error.kind == ErrorKind.NOT_FOUND
    assert _logs(db_session)[-1].credential_ref_id == 9999

from collections.abc import Generator
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import pac_api.models  # noqa: F401
from pac_api.core.config import get_settings
from pac_api.db.session import get_db
from pac_api.main import app
from pac_api.models.base import Base
from pac_api.models.enums import UserRole

from factories import World, add_user, build_world

_SECRET = "pac-http-test-secret-with-enough-length"


@dataclass
class ApiHarness:
    client: TestClient
    session_factory: sessionmaker
    world: World

    def headers(self, user_id: int, role: UserRole | str | None) -> dict[str, str]:
        claims = {"sub": str(user_id), "exp": datetime.now(timezone.utc) + timedelta(minutes=10)}
        if role is not None:
            claims["role"] = str(role)
        return {"Authorization": f"Bearer {jwt.encode(claims, _SECRET, algorithm='HS256')}"}

    @property
    def admin(self) -> dict[str, str]:
        return self.headers(self.world.admin_id, UserRole.SUPER_ADMIN)

    @property
    def pm(self) -> dict[str, str]:
        return self.headers(self.world.pm_id, UserRole.PROPERTY_MANAGER)

    @property
    def desk(self) -> dict[str, str]:
        return self.headers(self.world.desk_id, UserRole.FRONT_DESK)

    @property
    def tenant(self) -> dict[str, str]:
        return self.headers(self.world.tenant_user_id, UserRole.TENANT)


@pytest.fixture
def api(monkeypatch) -> Generator[ApiHarness, None, None]:
    monkeypatch.setenv("PAC_AUTH_JWT_SECRET", _SECRET)
    monkeypatch.setenv("PAC_AUTH_JWT_ALGORITHMS", "HS256")
    monkeypatch.delenv("PAC_AUTH_JWKS_URL", raising=False)
    get_settings.cache_clear()

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    testing_session_local = sessionmaker(bind=engine, autoflush=False, autocommit=False, class_=Session)

    with testing_session_local() as db:
        world = build_world(db)

    def _override_get_db() -> Generator[Session, None, None]:
        db = testing_session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _override_get_db
    try:
        with TestClient(app) as client:
            yield ApiHarness(client=client, session_factory=testing_session_local, world=world)
    finally:
        app.dependency_overrides.clear()
        engine.dispose()
        get_settings.cache_clear()


def _url(path: str) -> str:
    return f"/api{path}"


def _access(intercom_id: int, suffix: str) -> str:
    return _url(f"/intercoms/{intercom_id}/access{suffix}")


def _assert_error(response, status_code: int, code: str) -> dict:
    assert response.status_code == status_code, response.text
    body = response.json()
    assert body["request_id"]
    assert body["error"]["code"] == code
    return body["error"]


def test_health_endpoints(api: ApiHarness):
    live = api.client.get(_url("/health/live"))
    ready = api.client.get(_url("/health/ready"))

    assert live.status_code == 200
    assert live.json()["data"] == {"status": "ok"}
    assert ready.json()["data"] == {"status": "ready"}
    assert live.headers["X-Request-Id"]
    assert "X-Process-Time-Ms" in live.headers


def test_incoming_request_id_is_reused(api: ApiHarness):
    response = api.client.get(_url("/health/live"), headers={"X-Request-Id": "door-42-req"})

    assert response.headers["X-Request-Id"] == "door-42-req"
    assert response.json()["request_id"] == "door-42-req"


def test_management_endpoints_require_token(api: ApiHarness):
    response = api.client.post(_access(api.world.intercom_id, "/master-pin"), json={"pin": "123456"})

    error = _assert_error(response, 401, "UNAUTHORIZED")
    assert error["details"]["status_code"] == 401


def test_token_for_inactive_or_unknown_user_is_rejected(api: ApiHarness):
    with api.session_factory() as db:
        retired = add_user(db, "retired@example.com", user_type_id=None, is_active=False)
        db.commit()
        retired_id = retired.id

    for user_id in (retired_id, 9999):
        response = api.client.get(_url("/access-codes"), headers=api.headers(user_id, UserRole.SUPER_ADMIN))
        _assert_error(response, 401, "UNAUTHORIZED")


def test_placeholder_token_gets_explicit_error(api: ApiHarness):
    response = api.client.get(_url("/access-codes"), headers={"Authorization": "Bearer {{access_token}}"})

    _assert_error(response, 401, "AUTH_TOKEN_PLACEHOLDER_NOT_RESOLVED")


def test_master_pin_flow_and_device_verification(api: ApiHarness):
    intercom_id = api.world.intercom_id

    set_resp = api.client.post(_access(intercom_id, "/master-pin"), json={"pin": "123456"}, headers=api.admin)
    assert set_resp.status_code == 200, set_resp.text
    body = set_resp.json()
    assert body["data"]["intercom_id"] == intercom_id
    assert body["data"]["user_id"] is None
    assert body["data"]["message"] == "Master pin set/updated."
    assert body["meta"]["message"] == "Master pin set/updated."
    assert "pin_hash" not in body["data"]

    granted = api.client.post(_access(intercom_id, "/verify"), json={"pin": "123456"})
    denied = api.client.post(_access(intercom_id, "/verify"), json={"pin": "000000"})
    missing = api.client.post(_access(9999, "/verify"), json={"pin": "123456"})

    assert granted.status_code == denied.status_code == missing.status_code == 200
    assert granted.json()["data"]["granted"] is True
    assert granted.json()["data"]["credential_type"] == "Master"
    assert granted.json()["data"]["credential_ref_id"] == body["data"]["credential_ref_id"]
    assert denied.json()["data"] == {
        **denied.json()["data"],
        "granted": False,
        "reason": "Invalid or expired",
        "credential_type": "None",
        "credential_ref_id": None,
    }
    assert missing.json()["data"]["reason"] == "Intercom not found"


def test_master_pin_by_non_admin_is_forbidden(api: ApiHarness):
    response = api.client.post(_access(api.world.intercom_id, "/master-pin"), json={"pin": "123456"}, headers=api.pm)

    error = _assert_error(response, 403, "NOT_ALLOWED")
    assert error["message"] == "Only Super Admin can manage master pin."
    assert error["details"]["reason"] == "not_allowed"


def test_master_pin_for_unknown_intercom_is_not_found(api: ApiHarness):
    response = api.client.post(_access(9999, "/master-pin"), json={"pin": "123456"}, headers=api.admin)

    _assert_error(response, 404, "NOT_FOUND")


@pytest.mark.parametrize("pin", ["12", "1" * 21])
def test_pin_length_is_validated(api: ApiHarness, pin: str):
    response = api.client.post(_access(api.world.intercom_id, "/master-pin"), json={"pin": pin}, headers=api.admin)

    error = _assert_error(response, 422, "VALIDATION_ERROR")
    assert error["details"]["errors"][0]["field"] == "pin"


def test_user_pin_reset_rules(api: ApiHarness):
    world = api.world
    url = _access(world.intercom_id, f"/users/{world.tenant_user_id}/pin")
    api.client.post(_access(world.intercom_id, "/master-pin"), json={"pin": "123456"}, headers=api.admin)

    own = api.client.post(url, json={"pin": "2468"}, headers=api.tenant)
    assert own.status_code == 200
    assert own.json()["data"]["user_id"] == world.tenant_user_id

    _assert_error(api.client.post(url, json={"pin": "8642"}, headers=api.pm), 403, "NOT_ALLOWED")
    _assert_error(api.client.post(url, json={"pin": "8642"}, headers=api.admin), 403, "MASTER_PIN_REQUIRED")
    _assert_error(
        api.client.post(url, json={"pin": "8642", "masterPin": "000000"}, headers=api.admin),
        403,
        "INVALID_MASTER_PIN",
    )
    reset = api.client.post(url, json={"pin": "8642", "masterPin": "123456"}, headers=api.admin)
    assert reset.status_code == 200
    assert reset.json()["data"]["credential_ref_id"] == own.json()["data"]["credential_ref_id"]


def test_own_pin_endpoints(api: ApiHarness):
    intercom_id = api.world.intercom_id

    created = api.client.post(_access(intercom_id, "/pin/self"), json={"newPin": "1357"}, headers=api.desk)
    assert created.status_code == 200
    assert created.json()["data"]["message"] == "Pin created."

    missing_old = api.client.put(_access(intercom_id, "/me/pin"), json={"newPin": "2468"}, headers=api.desk)
    error = _assert_error(missing_old, 400, "VALIDATION_ERROR")
    assert error["message"] == "Old pin is required."

    wrong_old = api.client.put(
        _access(intercom_id, "/me/pin"),
        json={"newPin": "2468", "oldPin": "0000"},
        headers=api.desk,
    )
    _assert_error(wrong_old, 400, "INVALID_CREDENTIAL")

    updated = api.client.put(
        _access(intercom_id, "/me/pin"),
        json={"newPin": "2468", "oldPin": "1357"},
        headers=api.desk,
    )
    assert updated.status_code == 200
    assert updated.json()["meta"]["message"] == "Pin updated."


def test_access_code_lifecycle(api: ApiHarness):
    world = api.world
    expires_at = (datetime.now(timezone.utc) + timedelta(days=1)).isoformat()

    created = api.client.post(
        _url("/access-codes"),
        json={"code": "24680", "buildingId": world.building_id, "isSingleUse": False, "expiresAt": expires_at},
        headers=api.pm,
    )
    assert created.status_code == 201, created.text
    code = created.json()["data"]
    assert code["code"] == "24680"
    assert code["building_id"] == world.building_id
    assert code["is_active"] is True
    assert code["created_by"] == world.pm_id
    assert "code_hash" not in code

    listed = api.client.get(_url("/access-codes"), params={"buildingId": world.building_id}, headers=api.desk)
    assert listed.status_code == 200
    page = listed.json()["data"]
    assert page["total"] == 1
    assert page["page"] == 1
    assert page["items"][0]["id"] == code["id"]

    opened = api.client.post(_access(world.side_intercom_id, "/verify"), json={"pin": "24680"})
    assert opened.json()["data"]["credential_type"] == "AccessCode"

    updated = api.client.put(
        _url(f"/access-codes/{code['id']}"),
        json={"code": "13579", "isSingleUse": True},
        headers=api.pm,
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["code"] == "13579"
    assert updated.json()["data"]["is_single_use"] is True

    deactivated = api.client.patch(_url(f"/access-codes/{code['id']}/deactivate"), headers=api.pm)
    assert deactivated.json()["data"]["is_active"] is False
    assert deactivated.json()["meta"]["message"] == "Deactivated."
    activated = api.client.patch(_url(f"/access-codes/{code['id']}/activate"), headers=api.pm)
    assert activated.json()["data"]["is_active"] is True

    deleted = api.client.delete(_url(f"/access-codes/{code['id']}"), headers=api.pm)
    assert deleted.status_code == 204
    assert deleted.content == b""

    after = api.client.get(_url("/access-codes"), headers=api.admin)
    assert after.json()["data"]["total"] == 0
    _assert_error(api.client.delete(_url(f"/access-codes/{code['id']}"), headers=api.pm), 404, "NOT_FOUND")


def test_access_code_validation_errors(api: ApiHarness):
    world = api.world
    past = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()

    no_building = api.client.post(_url("/access-codes"), json={"code": "24680"}, headers=api.pm)
    expired = api.client.post(
        _url("/access-codes"),
        json={"code": "24680", "buildingId": world.building_id, "expiresAt": past},
        headers=api.pm,
    )
    foreign = api.client.post(
        _url("/access-codes"),
        json={"code": "24680", "buildingId": world.other_building_id},
        headers=api.pm,
    )

    assert _assert_error(no_building, 400, "VALIDATION_ERROR")["message"] == "BuildingId is required."
    assert _assert_error(expired, 400, "VALIDATION_ERROR")["message"] == "Expiry must be in the future."
    assert _assert_error(foreign, 403, "NOT_ALLOWED")["message"] == "Not allowed for this building."


def test_tenant_creates_code_without_building(api: ApiHarness):
    response = api.client.post(_url("/access-codes"), json={"code": "97531"}, headers=api.tenant)

    assert response.status_code == 201
    assert response.json()["data"]["building_id"] == api.world.building_id


def test_intercom_logs_are_super_admin_only(api: ApiHarness):
    intercom_id = api.world.intercom_id
    api.client.post(_access(intercom_id, "/verify"), json={"pin": "000000"}, headers={"User-Agent": "door-fw/3"})

    forbidden = api.client.get(_access(intercom_id, "/logs"), headers=api.pm)
    allowed = api.client.get(_access(intercom_id, "/logs"), params={"success": "false"}, headers=api.admin)

    _assert_error(forbidden, 403, "NOT_ALLOWED")
    assert allowed.status_code == 200
    page = allowed.json()["data"]
    assert page["total"] == 1
    entry = page["items"][0]
    assert entry["intercom_id"] == intercom_id
    assert entry["is_success"] is False
    assert entry["device_info"] == "door-fw/3"


def test_access_logs_are_scoped_to_caller(api: ApiHarness):
    world = api.world
    api.client.post(_url("/access-codes"), json={"code": "97531"}, headers=api.tenant)
    api.client.post(_access(world.other_intercom_id, "/verify"), json={"pin": "000000"})

    tenant_view = api.client.get(_url("/access-logs"), headers=api.tenant)
    admin_view = api.client.get(_url("/access-logs"), params={"pageSize": 1}, headers=api.admin)
    desk_view = api.client.get(_url("/access-logs"), headers=api.desk)

    assert tenant_view.json()["data"]["total"] == 1
    assert tenant_view.json()["data"]["items"][0]["user_id"] == world.tenant_user_id
    assert admin_view.json()["data"]["total"] == 2
    assert admin_view.json()["data"]["page_size"] == 1
    assert len(admin_view.json()["data"]["items"]) == 1
    assert desk_view.json()["data"]["total"] == 1
    assert desk_view.json()["data"]["items"][0]["building_id"] == world.building_id


@pytest.mark.parametrize("payload", [{"pin": "1" * 201}, {"pin": ""}, {}])
def test_verify_answers_200_for_malformed_input_and_logs_it(api: ApiHarness, payload: dict):
    intercom_id = api.world.intercom_id

    response = api.client.post(_access(intercom_id, "/verify"), json=payload)

    assert response.status_code == 200, response.text
    assert response.json()["data"]["granted"] is False
    assert response.json()["data"]["reason"] == "Invalid or expired"
    logs = api.client.get(_access(intercom_id, "/logs"), headers=api.admin).json()["data"]
    assert logs["total"] == 1


def test_verify_locks_out_a_source_after_repeated_failures(api: ApiHarness, monkeypatch):
    monkeypatch.setenv("PAC_VERIFY_MAX_FAILED_ATTEMPTS", "2")
    get_settings.cache_clear()
    intercom_id = api.world.intercom_id
    api.client.post(_access(intercom_id, "/master-pin"), json={"pin": "123456"}, headers=api.admin)
    door = {"X-Forwarded-For": "203.0.113.7"}

    for _ in range(2):
        api.client.post(_access(intercom_id, "/verify"), json={"pin": "000000"}, headers=door)
    locked = api.client.post(_access(intercom_id, "/verify"), json={"pin": "123456"}, headers=door)
    other_door = api.client.post(
        _access(intercom_id, "/verify"),
        json={"pin": "123456"},
        headers={"X-Forwarded-For": "203.0.113.8"},
    )

    assert locked.status_code == 200
    assert locked.json()["data"]["granted"] is False
    assert other_door.json()["data"]["granted"] is True


def test_user_with_unrecognized_role_resets_own_pin(api: ApiHarness):
    with api.session_factory() as db:
        custom = add_user(db, "custom@example.com", user_type_id=None, created_by=api.world.admin_id)
        db.commit()
        custom_id = custom.id

    response = api.client.post(
        _access(api.world.intercom_id, f"/users/{custom_id}/pin"),
        json={"pin": "8642"},
        headers=api.headers(custom_id, "Unknown"),
    )

    assert response.status_code == 200, response.text
    assert response.json()["data"]["user_id"] == custom_id

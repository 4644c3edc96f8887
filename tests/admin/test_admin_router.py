from tests.conftest import STRONG_PASSWORD, admin_token, signup_and_login

ADMIN = "/api/v1/admin"


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def test_admin_routes_require_admin_role(client) -> None:
    token = signup_and_login(client, "alice@example.com")["token"]
    client.cookies.clear()

    assert client.get(f"{ADMIN}/logs/auth").status_code == 401
    forbidden = client.get(f"{ADMIN}/logs/auth", headers=_bearer(token))
    assert forbidden.status_code == 403
    assert forbidden.json()["error"]["code"] == "forbidden"


def test_suspend_and_reactivate_doctor(client) -> None:
    doctor = signup_and_login(client, "house@example.com", role="doctor", name="Dr House")
    doctor_id = doctor["data"]["id"]
    doctor_token = doctor["token"]
    client.cookies.clear()
    token = admin_token(client)
    client.cookies.clear()

    missing_reason = client.patch(
        f"{ADMIN}/users/doctor/{doctor_id}/status", json={"is_active": False}, headers=_bearer(token)
    )
    assert missing_reason.status_code == 400

    suspended = client.patch(
        f"{ADMIN}/users/doctor/{doctor_id}/status",
        json={"is_active": False, "reason": "Licence expired"},
        headers=_bearer(token),
    )
    assert suspended.status_code == 200
    body = suspended.json()
    assert body["data"]["is_active"] is False
    assert body["revoked_sessions"] == 1
    assert body["cancelled_appointments"] == 0

    kicked = client.get("/api/v1/auth/me", headers=_bearer(doctor_token))
    assert kicked.status_code == 401

    login = client.post(
        "/api/v1/auth/login",
        json={"email": "house@example.com", "password": STRONG_PASSWORD, "role": "doctor"},
    )
    assert login.status_code == 403
    assert login.json()["suspension_reason"] == "Licence expired"
    assert login.json()["admin_contact"]["email"] == "root@healthconnect.com"

    reactivated = client.patch(
        f"{ADMIN}/users/doctor/{doctor_id}/status", json={"is_active": True}, headers=_bearer(token)
    )
    assert reactivated.json()["data"]["is_active"] is True

    actions = client.get(f"{ADMIN}/logs/actions", headers=_bearer(token)).json()
    assert [a["action_type"] for a in actions["data"]] == ["user_activation", "user_suspension"]
    assert actions["pagination"] == {"page": 1, "limit": 50, "total": 2, "pages": 1}


def test_user_directory_finds_accounts_to_moderate(client) -> None:
    signup_and_login(client, "house@example.com", role="doctor", name="Dr House")
    client.cookies.clear()
    patient_token = signup_and_login(client, "alice@example.com", name="Alice Patient")["token"]
    client.cookies.clear()

    assert client.get(f"{ADMIN}/users", headers=_bearer(patient_token)).status_code == 403

    token = admin_token(client)
    client.cookies.clear()
    everyone = client.get(f"{ADMIN}/users", headers=_bearer(token)).json()
    assert sorted(u["email"] for u in everyone["data"]) == ["alice@example.com", "house@example.com"]
    assert everyone["pagination"] == {"page": 1, "limit": 20, "total": 2, "pages": 1}

    doctors = client.get(
        f"{ADMIN}/users", params={"role": "doctor", "search": "house"}, headers=_bearer(token)
    ).json()
    assert [u["role"] for u in doctors["data"]] == ["doctor"]
    doctor_id = doctors["data"][0]["id"]

    admins = client.get(f"{ADMIN}/users", params={"role": "admin"}, headers=_bearer(token)).json()
    assert [u["email"] for u in admins["data"]] == ["root@healthconnect.com"]

    client.patch(
        f"{ADMIN}/users/doctor/{doctor_id}/status",
        json={"is_active": False, "reason": "Licence expired"},
        headers=_bearer(token),
    )
    suspended = client.get(f"{ADMIN}/users", params={"status": "suspended"}, headers=_bearer(token)).json()
    assert [u["id"] for u in suspended["data"]] == [doctor_id]
    active = client.get(f"{ADMIN}/users", params={"status": "active"}, headers=_bearer(token)).json()
    assert [u["email"] for u in active["data"]] == ["alice@example.com"]

    invalid = client.get(f"{ADMIN}/users", params={"status": "banned"}, headers=_bearer(token))
    assert invalid.status_code == 400


def test_verify_doctor(client) -> None:
    doctor_id = signup_and_login(client, "house@example.com", role="doctor")["data"]["id"]
    client.cookies.clear()
    token = admin_token(client)

    response = client.patch(
        f"{ADMIN}/users/doctor/{doctor_id}/verification",
        json={"verification_status": "verified"},
        headers=_bearer(token),
    )
    assert response.status_code == 200
    assert response.json()["data"]["verification_status"] == "verified"

    unknown = client.patch(
        f"{ADMIN}/users/patient/{doctor_id}/verification",
        json={"verification_status": "verified"},
        headers=_bearer(token),
    )
    assert unknown.status_code == 404


def test_auth_log_views(client) -> None:
    patient = signup_and_login(client, "alice@example.com")
    client.cookies.clear()
    bad = client.post(
        "/api/v1/auth/login", json={"email": "mallory@example.com", "password": "x", "role": "patient"}
    )
    assert bad.status_code == 400
    token = admin_token(client)
    headers = _bearer(token)

    by_email = client.get(f"{ADMIN}/logs/auth/email/alice@example.com", headers=headers).json()
    assert by_email["pagination"]["total"] == 4
    assert {e["action"] for e in by_email["data"]} == {"register", "otp_verification", "login"}

    by_user = client.get(f"{ADMIN}/logs/auth/users/patient/{patient['data']['id']}", headers=headers).json()
    assert by_user["pagination"]["total"] == 4

    failed_only = client.get(f"{ADMIN}/logs/auth", params={"success": "false"}, headers=headers).json()
    assert [e["email"] for e in failed_only["data"]] == ["mallory@example.com"]

    stats = client.get(f"{ADMIN}/logs/auth/stats", params={"days": 1}, headers=headers).json()["data"]
    assert stats["failed"] == 1
    assert stats["by_action"]["failed_login"] == {"success": 0, "failure": 1, "total": 1}

    failed = client.get(f"{ADMIN}/logs/auth/failed", headers=headers).json()
    assert failed["window_minutes"] == 15
    assert failed["data"][0]["email"] == "mallory@example.com"
    assert failed["data"][0]["count"] == 1


def test_only_super_admin_creates_admins(client) -> None:
    root_login = client.post(
        "/api/v1/auth/admin/login", json={"email": "root@healthconnect.com", "password": "R00t!Admin"}
    ).json()
    root, root_id = root_login["token"], root_login["data"]["id"]
    client.cookies.clear()
    created = client.post(
        f"{ADMIN}/admins",
        json={"name": "Ops Admin", "email": "ops@healthconnect.com", "password": STRONG_PASSWORD},
        headers=_bearer(root),
    )
    assert created.status_code == 201
    assert created.json()["data"]["role"] == "admin"

    ops = client.post(
        "/api/v1/auth/admin/login", json={"email": "ops@healthconnect.com", "password": STRONG_PASSWORD}
    ).json()["token"]
    client.cookies.clear()
    denied = client.post(
        f"{ADMIN}/admins",
        json={"name": "Another", "email": "another@healthconnect.com", "password": STRONG_PASSWORD},
        headers=_bearer(ops),
    )
    assert denied.status_code == 403

    moderate_root = client.patch(
        f"{ADMIN}/users/admin/{root_id}/status",
        json={"is_active": False, "reason": "Test"},
        headers=_bearer(ops),
    )
    assert moderate_root.status_code == 403

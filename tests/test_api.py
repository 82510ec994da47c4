"""End-to-end tests through the FastAPI application."""

import json

from multiquote.presentation.api.audit import AuditRecorder

from conftest import (
    ADMIN_EMAIL,
    ADMIN_PASSWORD,
    SUPER_ADMIN_EMAIL,
    SUPER_ADMIN_PASSWORD,
    auth_header,
    login,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def _create_user(client, token, **fields):
    data = {"firstName": "Ada", "lastName": "Obi", "email": "ada@example.com", "role": "USER"}
    data.update(fields)
    return client.post("/auth/create-user", data=data, headers=auth_header(token))


def _audit_rows(client, token, **params):
    response = client.get("/audit-logs", params=params, headers=auth_header(token))
    assert response.status_code == 200, response.text
    return response.json()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"ok": True, "email": False}


def test_bootstrap_admins_can_log_in(client, email_service):
    body = login(client, email_service, SUPER_ADMIN_EMAIL, SUPER_ADMIN_PASSWORD)

    assert body["message"] == "Login successful"
    assert body["user"]["role"] == "SUPER_ADMIN"
    assert body["token"]
    assert body["refreshToken"]

    me = client.get("/auth/me", headers=auth_header(body["token"]))
    assert me.status_code == 200
    assert me.json() == {"message": "Token valid", "user": body["user"]}


def test_login_response_never_contains_the_code(client, email_service):
    response = client.post("/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})

    assert response.status_code == 200
    assert response.json() == {
        "step": "verification_required",
        "message": "Verification code sent to your email",
    }
    assert email_service.codes[ADMIN_EMAIL] not in response.text


def test_wrong_password_is_rejected(client):
    response = client.post("/auth/login", json={"email": ADMIN_EMAIL, "password": "not-the-password"})

    assert response.status_code == 400
    assert response.json() == {"message": "Invalid credentials"}


def test_malformed_body_returns_error_list(client):
    response = client.post("/auth/login", json={"email": "not-an-email", "password": "123"})

    assert response.status_code == 400
    errors = response.json()["errors"]
    assert len(errors) == 2
    assert any(error.startswith("email") for error in errors)
    assert any(error.startswith("password") for error in errors)


def test_verify_with_wrong_code(client):
    client.post("/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})

    response = client.post("/auth/verify-login-code", json={"email": ADMIN_EMAIL, "code": "000000"})

    assert response.status_code == 400
    assert response.json() == {"message": "Invalid or expired verification code"}


def test_resend_rate_limit_sets_retry_after(client):
    client.post("/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})

    for _ in range(3):
        response = client.post("/auth/resend-code", json={"email": ADMIN_EMAIL})
        assert response.status_code == 200
        assert response.json()["message"] == "Verification code resent"

    response = client.post("/auth/resend-code", json={"email": ADMIN_EMAIL})
    assert response.status_code == 429
    assert response.json()["message"].startswith("Too many attempts. Please wait")
    assert 0 <= int(response.headers["Retry-After"]) <= 600


def test_resend_without_pending_login(client):
    response = client.post("/auth/resend-code", json={"email": ADMIN_EMAIL})

    assert response.status_code == 400
    assert "log in again" in response.json()["message"]


def test_refresh_token_flow(client, email_service):
    body = login(client, email_service, ADMIN_EMAIL, ADMIN_PASSWORD)

    missing = client.post("/auth/refresh-token", json={})
    assert missing.status_code == 400
    assert missing.json() == {"message": "Refresh token required"}

    wrong_kind = client.post("/auth/refresh-token", json={"refreshToken": body["token"]})
    assert wrong_kind.status_code == 401

    refreshed = client.post("/auth/refresh-token", json={"refreshToken": body["refreshToken"]})
    assert refreshed.status_code == 200
    assert refreshed.json()["message"] == "Token refreshed successfully"
    assert client.get("/auth/me", headers=auth_header(refreshed.json()["token"])).status_code == 200


def test_protected_routes_require_a_valid_access_token(client, email_service):
    body = login(client, email_service, ADMIN_EMAIL, ADMIN_PASSWORD)

    assert client.get("/auth/me").status_code == 401
    assert client.get("/auth/me", headers=auth_header("garbage")).status_code == 401
    assert client.get("/auth/me", headers=auth_header(body["refreshToken"])).status_code == 401


def test_login_is_audited_with_secrets_redacted(client, email_service):
    body = login(client, email_service, SUPER_ADMIN_EMAIL, SUPER_ADMIN_PASSWORD)

    listing = _audit_rows(client, body["token"])
    actions = [row["action"] for row in listing["data"]]
    assert "Attempted Login" in actions
    assert "Verify email token" in actions
    assert listing["message"] == "Audit logs fetched successfully"
    assert listing["pagination"] == {
        "totalRecords": 2,
        "totalPages": 1,
        "currentPage": 1,
        "pageSize": 10,
    }

    attempt = next(row for row in listing["data"] if row["action"] == "Attempted Login")
    assert json.loads(attempt["request_payload"])["body"]["password"] == "[REDACTED]"
    assert attempt["user_role"] == "unknown"

    verify = next(row for row in listing["data"] if row["action"] == "Verify email token")
    response_payload = json.loads(verify["response_payload"])
    assert response_payload["token"] == "[REDACTED]"
    assert response_payload["refreshToken"] == "[REDACTED]"
    assert verify["success"] is True
    assert verify["login_history_id"]
    assert verify["loginSession"]["city"] == "Lagos"
    assert verify["loginSession"]["logoutTime"] is None


def test_failed_requests_are_audited(client, email_service):
    client.post("/auth/login", json={"email": ADMIN_EMAIL, "password": "wrong-password"})
    client.post("/auth/login", json={"email": "broken"})
    body = login(client, email_service, SUPER_ADMIN_EMAIL, SUPER_ADMIN_PASSWORD)

    failures = _audit_rows(client, body["token"], success="false")

    assert failures["pagination"]["totalRecords"] == 2
    assert sorted(row["status_code"] for row in failures["data"]) == [400, 400]


def test_unaudited_routes_leave_no_rows(client, email_service):
    body = login(client, email_service, SUPER_ADMIN_EMAIL, SUPER_ADMIN_PASSWORD)
    client.get("/auth/me", headers=auth_header(body["token"]))
    client.get("/users", headers=auth_header(body["token"]))

    listing = _audit_rows(client, body["token"])

    assert listing["pagination"]["totalRecords"] == 2


def test_malformed_multipart_body_is_still_audited(client, email_service):
    admin = login(client, email_service, ADMIN_EMAIL, ADMIN_PASSWORD)

    response = client.post(
        "/auth/create-user",
        content=b"firstName=Ada",
        headers={"Content-Type": "multipart/form-data", **auth_header(admin["token"])},
    )
    assert response.status_code == 400

    listing = _audit_rows(client, admin["token"], action="Created A user")
    assert listing["pagination"]["totalRecords"] == 1
    row = listing["data"][0]
    assert row["status_code"] == 400
    assert json.loads(row["request_payload"])["body"] == {"unparsed": "13 bytes"}


def test_unaudited_responses_are_not_buffered(client, email_service, monkeypatch):
    emitted = []
    original_emit = AuditRecorder.emit

    async def recording_emit(self, status_code, body):
        emitted.append(self._scope["path"])
        return await original_emit(self, status_code, body)

    monkeypatch.setattr(AuditRecorder, "emit", recording_emit)
    admin = login(client, email_service, ADMIN_EMAIL, ADMIN_PASSWORD)
    created = client.post(
        "/auth/create-user",
        data={"firstName": "Ada", "lastName": "Obi", "email": "ada@example.com"},
        files={"img": ("me.png", PNG_BYTES, "image/png")},
        headers=auth_header(admin["token"]),
    ).json()["user"]

    assert client.get(created["img"]).content == PNG_BYTES
    client.get("/health")
    client.get("/no-such-route")

    assert emitted == ["/auth/login", "/auth/verify-login-code", "/auth/create-user"]


def test_logout_closes_login_session(client, email_service):
    body = login(client, email_service, SUPER_ADMIN_EMAIL, SUPER_ADMIN_PASSWORD)

    response = client.post("/auth/logout", headers=auth_header(body["token"]))
    assert response.status_code == 200
    assert response.json() == {"message": "Logged out successfully"}

    listing = _audit_rows(client, body["token"], action="Logged out")
    row = listing["data"][0]
    assert row["user_role"] == "SUPER_ADMIN"
    assert row["user_id"] == body["user"]["id"]
    assert row["loginSession"]["logoutTime"] is not None


def test_admin_creates_user_who_can_then_log_in(client, email_service):
    admin = login(client, email_service, ADMIN_EMAIL, ADMIN_PASSWORD)

    response = client.post(
        "/auth/create-user",
        data={
            "firstName": "Ada",
            "lastName": "Obi",
            "email": "Ada@Example.com",
            "phoneNumber": "08012345678",
        },
        files={"img": ("me.png", PNG_BYTES, "image/png")},
        headers=auth_header(admin["token"]),
    )
    assert response.status_code == 201, response.text
    created = response.json()["user"]
    assert created["email"] == "ada@example.com"
    assert created["role"] == "USER"

    listing = client.get("/users", params={"search": "ada"}, headers=auth_header(admin["token"])).json()
    assert listing["pagination"]["total"] == 1
    stored = listing["users"][0]
    assert stored["phoneNumber"] == "+2348012345678"
    assert stored["img"].startswith("/media/users/")
    assert stored["img"].endswith(".png")
    assert client.get(stored["img"]).content == PNG_BYTES

    password = email_service.passwords["ada@example.com"]
    user = login(client, email_service, "ada@example.com", password)
    assert user["user"]["id"] == created["id"]

    audit = _audit_rows(client, admin["token"], action="Created A user")
    assert json.loads(audit["data"][0]["request_payload"])["body"]["img"] == "me.png"


def test_create_user_defaults_to_gravatar_and_rejects_duplicates(client, email_service):
    admin = login(client, email_service, ADMIN_EMAIL, ADMIN_PASSWORD)

    assert _create_user(client, admin["token"]).status_code == 201
    duplicate = _create_user(client, admin["token"], email="ADA@example.com")
    assert duplicate.status_code == 400
    assert duplicate.json() == {"message": "Email already in use"}

    users = client.get("/users", params={"role": "USER"}, headers=auth_header(admin["token"])).json()["users"]
    assert users[0]["img"].startswith("https://www.gravatar.com/avatar/")


def test_create_user_rejects_non_image_upload(client, email_service):
    admin = login(client, email_service, ADMIN_EMAIL, ADMIN_PASSWORD)

    response = client.post(
        "/auth/create-user",
        data={"firstName": "Ada", "lastName": "Obi", "email": "ada@example.com"},
        files={"signature": ("sig.gif", b"GIF89a", "image/gif")},
        headers=auth_header(admin["token"]),
    )

    assert response.status_code == 400
    assert response.json() == {"errors": ["Only JPG and PNG files are allowed"]}


def test_non_admin_cannot_manage_users(client, email_service):
    admin = login(client, email_service, ADMIN_EMAIL, ADMIN_PASSWORD)
    _create_user(client, admin["token"])
    user = login(client, email_service, "ada@example.com", email_service.passwords["ada@example.com"])

    assert client.get("/users", headers=auth_header(user["token"])).status_code == 403
    response = _create_user(client, user["token"], email="eve@example.com")
    assert response.status_code == 403
    assert response.json() == {"message": "Forbidden: Only Admins are allowed"}


def test_super_admin_status_cannot_be_toggled(client, email_service):
    admin = login(client, email_service, ADMIN_EMAIL, ADMIN_PASSWORD)
    root = login(client, email_service, SUPER_ADMIN_EMAIL, SUPER_ADMIN_PASSWORD)

    response = client.patch(
        f"/auth/user/{root['user']['id']}/toggle-status", headers=auth_header(admin["token"])
    )

    assert response.status_code == 403
    assert response.json() == {"message": "Cannot change status of a SUPER_ADMIN user"}
    assert client.get("/auth/me", headers=auth_header(root["token"])).status_code == 200


def test_deactivated_user_is_locked_out(client, email_service):
    admin = login(client, email_service, ADMIN_EMAIL, ADMIN_PASSWORD)
    created = _create_user(client, admin["token"]).json()["user"]
    password = email_service.passwords["ada@example.com"]
    user = login(client, email_service, "ada@example.com", password)

    response = client.patch(f"/auth/user/{created['id']}/toggle-status", headers=auth_header(admin["token"]))
    assert response.status_code == 200
    assert response.json()["message"] == "User is now Inactive"

    assert client.get("/auth/me", headers=auth_header(user["token"])).status_code == 403
    refreshed = client.post("/auth/refresh-token", json={"refreshToken": user["refreshToken"]})
    assert refreshed.status_code == 403
    relogin = client.post("/auth/login", json={"email": "ada@example.com", "password": password})
    assert relogin.status_code == 403
    assert relogin.json() == {"message": "Your account is currently inactive"}

    response = client.patch(f"/auth/user/{created['id']}/toggle-status", headers=auth_header(admin["token"]))
    assert response.json()["message"] == "User is now Active"


def test_edit_user_rules_for_super_admin(client, email_service):
    admin = login(client, email_service, ADMIN_EMAIL, ADMIN_PASSWORD)
    root = login(client, email_service, SUPER_ADMIN_EMAIL, SUPER_ADMIN_PASSWORD)
    root_id = root["user"]["id"]

    blocked = client.patch(
        f"/auth/edit-user/{root_id}",
        data={"firstName": "Mallory", "password": "Takeover123!"},
        headers=auth_header(admin["token"]),
    )
    assert blocked.status_code == 403
    assert blocked.json() == {"message": "Cannot edit SUPER_ADMIN details"}

    without_password = client.patch(
        f"/auth/edit-user/{root_id}", data={"firstName": "Rooty"}, headers=auth_header(root["token"])
    )
    assert without_password.status_code == 403

    allowed = client.patch(
        f"/auth/edit-user/{root_id}",
        data={"firstName": "Rooty", "role": "USER", "password": "NewSuperSecret1!"},
        headers=auth_header(root["token"]),
    )
    assert allowed.status_code == 200, allowed.text
    assert allowed.json()["user"]["firstName"] == "Rooty"
    assert allowed.json()["user"]["role"] == "SUPER_ADMIN"
    assert email_service.passwords[SUPER_ADMIN_EMAIL] == "NewSuperSecret1!"


def test_edit_regular_user(client, email_service):
    admin = login(client, email_service, ADMIN_EMAIL, ADMIN_PASSWORD)
    created = _create_user(client, admin["token"], phoneNumber="8012345678").json()["user"]
    _create_user(client, admin["token"], email="bo@example.com", phoneNumber="08099999999")

    clash = client.patch(
        f"/auth/edit-user/{created['id']}",
        data={"phoneNumber": "2348099999999"},
        headers=auth_header(admin["token"]),
    )
    assert clash.status_code == 400
    assert clash.json() == {"message": "Phone number already in use"}

    response = client.patch(
        f"/auth/edit-user/{created['id']}",
        data={"lastName": "Okafor", "role": "ADMIN"},
        headers=auth_header(admin["token"]),
    )
    assert response.status_code == 200
    assert response.json()["user"]["lastName"] == "Okafor"
    assert response.json()["user"]["role"] == "ADMIN"

    missing = client.patch(
        "/auth/edit-user/does-not-exist", data={"lastName": "X"}, headers=auth_header(admin["token"])
    )
    assert missing.status_code == 404


def test_password_with_surrounding_spaces_is_kept_verbatim(client, email_service):
    admin = login(client, email_service, ADMIN_EMAIL, ADMIN_PASSWORD)
    created = _create_user(client, admin["token"]).json()["user"]

    response = client.patch(
        f"/auth/edit-user/{created['id']}",
        data={"password": " Secret123 "},
        headers=auth_header(admin["token"]),
    )
    assert response.status_code == 200, response.text

    stripped = client.post("/auth/login", json={"email": "ada@example.com", "password": "Secret123"})
    assert stripped.status_code == 400
    user = login(client, email_service, "ada@example.com", " Secret123 ")
    assert user["user"]["id"] == created["id"]


def test_company_lifecycle(client, email_service):
    admin = login(client, email_service, ADMIN_EMAIL, ADMIN_PASSWORD)

    created = client.post(
        "/companies",
        data={"name": "Acme Ltd", "email": "hello@acme.example.com", "phoneNumber": "08011112222"},
        files={"logo": ("logo.jpg", b"\xff\xd8\xff\xe0", "image/jpeg")},
        headers=auth_header(admin["token"]),
    )
    assert created.status_code == 201, created.text
    company = created.json()["company"]
    assert company["phoneNumber"] == "+2348011112222"
    assert company["logo"].startswith("/media/company_logos/")

    updated = client.put(
        f"/companies/{company['id']}",
        data={"address": "1 Marina, Lagos"},
        headers=auth_header(admin["token"]),
    )
    assert updated.status_code == 200
    assert updated.json()["company"]["address"] == "1 Marina, Lagos"
    assert updated.json()["company"]["name"] == "Acme Ltd"

    missing = client.put("/companies/nope", data={"name": "X"}, headers=auth_header(admin["token"]))
    assert missing.status_code == 404
    assert missing.json() == {"message": "Company not found"}

    _create_user(client, admin["token"])
    user = login(client, email_service, "ada@example.com", email_service.passwords["ada@example.com"])
    listing = client.get("/companies", params={"search": "acme"}, headers=auth_header(user["token"]))
    assert listing.status_code == 200
    assert [item["name"] for item in listing.json()["companies"]] == ["Acme Ltd"]
    assert listing.json()["pagination"] == {"total": 1, "page": 1, "limit": 10, "totalPages": 1}

    forbidden = client.post("/companies", data={"name": "Other"}, headers=auth_header(user["token"]))
    assert forbidden.status_code == 403

    audit = _audit_rows(client, admin["token"], action="company")
    assert sorted(row["status_code"] for row in audit["data"]) == [200, 201, 403, 404]

import jwt

from storefront.security.jwt_config import get_jwt_config
from storefront.settings_rate import rate_limit_settings

PASSWORD = "Sup3r$ecret!"


def _register_body(**overrides):
    body = {
        "firstName": "Ada",
        "lastName": "Lovelace",
        "email": "ada@example.com",
        "password": PASSWORD,
        "acceptTerms": True,
    }
    body.update(overrides)
    return body


async def test_register_issues_tokens_and_cookie(client):
    r = await client.post("/api/auth/register", json=_register_body(email="Ada@Example.com"))

    assert r.status_code == 200, r.text
    body = r.json()
    assert body["user"]["email"] == "ada@example.com"
    assert body["user"]["role"] == "customer"
    assert body["token"] == body["accessToken"]
    assert body["expiresIn"] == 15 * 60
    assert body["associatedOrdersCount"] == 0
    assert body["redirect"] == "/dashboard"

    access_cookie = [h for h in r.headers.get_list("set-cookie") if h.startswith("token=")]
    assert access_cookie and "httponly" in access_cookie[0].lower()
    assert not any(h.startswith("refresh") for h in r.headers.get_list("set-cookie"))


async def test_register_rejects_duplicate_email(client, make_user):
    await make_user(email="ada@example.com")
    r = await client.post("/api/auth/register", json=_register_body())
    assert r.status_code == 400
    assert r.json()["code"] == "email_taken"


async def test_register_rejects_admin_role(client):
    r = await client.post("/api/auth/register", json=_register_body(role="admin"))
    assert r.status_code == 400
    assert r.json()["message"] == "Invalid role. Only customers can register."


async def test_register_requires_terms_and_strong_password(client):
    r = await client.post("/api/auth/register", json=_register_body(acceptTerms=False))
    assert r.status_code == 400
    assert "terms" in r.json()["message"]

    r = await client.post("/api/auth/register", json=_register_body(password="weakpass"))
    assert r.status_code == 400
    assert r.json()["message"].startswith("Password must")


async def test_login_returns_role_redirect(client, make_user, login):
    await make_user(email="boss@example.com", role="admin")
    body = await login(email="boss@example.com")

    assert body["redirect"] == "/admin"
    claims = jwt.decode(body["accessToken"], get_jwt_config().secret, algorithms=["HS256"])
    assert claims["role"] == "admin"
    assert claims["type"] == "access"


async def test_login_failures_are_indistinguishable(client, make_user):
    await make_user(email="shopper@example.com")

    unknown = await client.post(
        "/api/auth/login", json={"email": "ghost@example.com", "password": PASSWORD}
    )
    wrong = await client.post(
        "/api/auth/login", json={"email": "shopper@example.com", "password": "Wr0ng!pass"}
    )

    assert unknown.status_code == wrong.status_code == 401
    strip = lambda r: {k: v for k, v in r.json().items() if k != "meta"}  # noqa: E731
    assert strip(unknown) == strip(wrong)
    assert strip(unknown) == {"code": "invalid_credentials", "message": "Invalid email or password"}


async def test_login_requires_both_fields(client):
    r = await client.post("/api/auth/login", json={"email": "a@example.com"})
    assert r.status_code == 400
    assert r.json()["message"] == "Email and password are required"


async def test_refresh_rotates_and_old_token_dies(client, make_user, login):
    await make_user()
    first = await login()

    r = await client.post("/api/auth/refresh", json={"refreshToken": first["refreshToken"]})
    assert r.status_code == 200, r.text
    second = r.json()
    assert second["refreshToken"] != first["refreshToken"]
    assert second["accessToken"]

    again = await client.post("/api/auth/refresh", json={"refreshToken": first["refreshToken"]})
    assert again.status_code == 401
    assert again.json()["code"] == "invalid_refresh_token"


async def test_replayed_refresh_token_revokes_the_family(client, make_user, login):
    await make_user()
    first = await login()
    r = await client.post("/api/auth/refresh", json={"refreshToken": first["refreshToken"]})
    current = r.json()["refreshToken"]

    replay = await client.post("/api/auth/refresh", json={"refreshToken": first["refreshToken"]})
    assert replay.status_code == 401

    # The legitimate holder's newer token went with it
    r = await client.post("/api/auth/refresh", json={"refreshToken": current})
    assert r.status_code == 401


async def test_refresh_requires_token(client):
    r = await client.post("/api/auth/refresh", json={})
    assert r.status_code == 400


async def test_access_token_cannot_be_used_to_refresh(client, make_user, login):
    await make_user()
    body = await login()
    r = await client.post("/api/auth/refresh", json={"refreshToken": body["accessToken"]})
    assert r.status_code == 401


async def test_logout_single_token(client, make_user, login):
    await make_user()
    body = await login()

    r = await client.post("/api/auth/logout", json={"refreshToken": body["refreshToken"]})
    assert r.status_code == 200
    assert r.json()["message"] == "Logged out successfully"

    r = await client.post("/api/auth/logout", json={"refreshToken": body["refreshToken"]})
    assert r.json()["message"] == "Token already invalid or not found"

    r = await client.post("/api/auth/refresh", json={"refreshToken": body["refreshToken"]})
    assert r.status_code == 401


async def test_logout_everywhere(client, make_user, login):
    await make_user()
    await login()
    await login()

    r = await client.post("/api/auth/logout")
    assert r.status_code == 200
    assert r.json()["revokedTokens"] == 2
    assert "token" not in client.cookies


async def test_logout_everywhere_requires_auth(client):
    r = await client.post("/api/auth/logout")
    assert r.status_code == 401


async def test_sessions_lists_active_devices(client, make_user, login):
    await make_user()
    await login(deviceInfo="phone")
    await login(deviceInfo="laptop")

    r = await client.get("/api/auth/sessions")
    assert r.status_code == 200
    devices = {s["deviceInfo"] for s in r.json()["sessions"]}
    assert devices == {"phone", "laptop"}


async def test_me_returns_profile(client, make_user, login):
    await make_user()
    await login()
    r = await client.get("/api/user/me")
    assert r.status_code == 200
    assert r.json()["user"]["email"] == "shopper@example.com"


async def test_check_email(client, make_user):
    await make_user(email="taken@example.com")

    r = await client.post("/api/auth/check-email", json={"email": "TAKEN@example.com"})
    assert r.status_code == 200
    assert r.json() == {"exists": True}
    assert r.headers["X-RateLimit-Limit"] == "5"
    assert r.headers["X-RateLimit-Remaining"] == "4"

    r = await client.post("/api/auth/check-email", json={"email": "free@example.com"})
    assert r.json() == {"exists": False}


async def test_check_email_rate_limit_does_not_leak(client):
    rate_limit_settings.set_test_config(EMAIL_CHECK_LIMIT=2)
    for _ in range(2):
        r = await client.post("/api/auth/check-email", json={"email": "free@example.com"})
        assert r.json() == {"exists": False}

    r = await client.post("/api/auth/check-email", json={"email": "free@example.com"})
    assert r.status_code == 429
    assert r.json()["exists"] is True
    assert r.headers["X-RateLimit-Remaining"] == "0"
    assert "X-RateLimit-Reset" in r.headers


async def test_admin_can_revoke_user_sessions(client, make_user, login):
    shopper = await make_user()
    await login()
    await make_user(email="boss@example.com", role="admin")
    await login(email="boss@example.com")

    r = await client.post(f"/api/admin/users/{shopper.id}/revoke-sessions")
    assert r.status_code == 200
    assert r.json() == {"userId": shopper.id, "revokedTokens": 1}

    r = await client.post("/api/admin/users/does-not-exist/revoke-sessions")
    assert r.status_code == 404

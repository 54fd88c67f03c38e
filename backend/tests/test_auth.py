import time

from jose import jwt

from amplygigs.core.config import settings
from amplygigs.models import UserRole

from conftest import auth, make_user, token_for


def _token(claims, secret=None):
    return jwt.encode(claims, secret or settings.AUTH_JWT_SECRET, algorithm=settings.AUTH_JWT_ALGORITHM)


def test_missing_token_is_unauthorized(client):
    res = client.get("/api/v1/bookings/mine")
    assert res.status_code == 401
    assert res.json()["error"] == "Could not validate credentials"
    assert res.headers["WWW-Authenticate"] == "Bearer"


def test_token_signed_with_other_secret(client, client_user):
    bad = _token({"sub": client_user.id, "aud": settings.AUTH_JWT_AUDIENCE}, secret="not-the-secret")
    res = client.get("/api/v1/bookings/mine", headers={"Authorization": f"Bearer {bad}"})
    assert res.status_code == 401


def test_expired_token(client, client_user):
    expired = _token(
        {"sub": client_user.id, "aud": settings.AUTH_JWT_AUDIENCE, "exp": int(time.time()) - 60}
    )
    res = client.get("/api/v1/bookings/mine", headers={"Authorization": f"Bearer {expired}"})
    assert res.status_code == 401


def test_wrong_audience(client, client_user):
    token = _token({"sub": client_user.id, "aud": "somebody-else"})
    res = client.get("/api/v1/bookings/mine", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 401


def test_unknown_subject(client):
    token = _token({"sub": "ghost", "aud": settings.AUTH_JWT_AUDIENCE})
    res = client.get("/api/v1/bookings/mine", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 401


def test_cookie_token(client, client_user):
    client.cookies.set("access_token", token_for(client_user))
    res = client.get("/api/v1/bookings/mine")
    assert res.status_code == 200
    assert res.json()["bookings"] == []


def test_suspended_user_is_forbidden(client, db):
    user = make_user(db, is_suspended=True)
    res = client.get("/api/v1/bookings/mine", headers=auth(user))
    assert res.status_code == 403
    assert res.json()["error"] == "Account suspended"


def test_role_guards(client, db, musician):
    res = client.get("/api/v1/wallet", headers=auth(musician))
    assert res.status_code == 403
    assert res.json()["error"] == "User is not a client."

    other = make_user(db, role=UserRole.CLIENT)
    res = client.get("/api/v1/admin/reports", headers=auth(other))
    assert res.status_code == 403
    assert res.json()["error"] == "Admin access required"

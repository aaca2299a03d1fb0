import uuid

from conftest import register
from quizzer.core.auth import password_problems
from quizzer.core.cache import RedisCache


async def test_register_and_login(client):
    body = await register(client, "Alice", password="Correct-horse1")
    assert body["user"]["username"] == "alice"
    assert body["tokens"]["token_type"] == "bearer"

    r = await client.post("/v1/auth/login", json={"username": "alice@example.com", "password": "Correct-horse1"})
    assert r.status_code == 200
    assert r.json()["user"]["last_login"] is not None

    r = await client.post("/v1/auth/login", json={"username": "alice", "password": "wrong-password"})
    assert r.status_code == 401
    assert r.json()["error"]["type"] == "authentication_error"


async def test_register_duplicate(client):
    await register(client, "bob")
    r = await client.post("/v1/auth/register", json={
        "username": "BOB", "email": "other@example.com", "password": "Another-pass1",
    })
    assert r.status_code == 409
    assert r.json()["error"]["details"] == {"field": "username"}


async def test_register_validates_input(client):
    r = await client.post("/v1/auth/register", json={"username": "x", "email": "nope", "password": "short"})
    assert r.status_code == 400
    assert r.json()["error"]["type"] == "validation_error"


async def test_profile_is_cached(client, fake_redis):
    body = await register(client, "carol")
    headers = {"Authorization": f"Bearer {body['tokens']['access_token']}"}
    assert RedisCache.user_key(body["user"]["id"]) in fake_redis.store

    r = await client.get("/v1/auth/profile", headers=headers)
    assert r.status_code == 200 and r.json()["username"] == "carol"

    r = await client.get("/v1/auth/verify", headers=headers)
    assert r.json()["valid"] is True and r.json()["user_id"] == body["user"]["id"]


async def test_logout_revokes_access_token(client, fake_redis):
    body = await register(client, "dave")
    headers = {"Authorization": f"Bearer {body['tokens']['access_token']}"}

    r = await client.post("/v1/auth/logout", headers=headers)
    assert r.status_code == 200
    assert RedisCache.user_key(body["user"]["id"]) not in fake_redis.store

    r = await client.get("/v1/auth/profile", headers=headers)
    assert r.status_code == 401

    # sessions are deactivated, so the refresh token is dead too
    r = await client.post("/v1/auth/refresh", json={"refresh_token": body["tokens"]["refresh_token"]})
    assert r.status_code == 401


async def test_refresh_rotates_token(client):
    body = await register(client, "erin")
    old_refresh = body["tokens"]["refresh_token"]

    r = await client.post("/v1/auth/refresh", json={"refresh_token": old_refresh})
    assert r.status_code == 200
    tokens = r.json()
    assert tokens["refresh_token"] != old_refresh

    r = await client.post("/v1/auth/refresh", json={"refresh_token": old_refresh})
    assert r.status_code == 401

    r = await client.get("/v1/auth/profile", headers={"Authorization": f"Bearer {tokens['access_token']}"})
    assert r.status_code == 200


async def test_access_token_cannot_refresh(client):
    body = await register(client, "frank")
    r = await client.post("/v1/auth/refresh", json={"refresh_token": body["tokens"]["access_token"]})
    assert r.status_code == 401


async def test_garbage_token(client):
    r = await client.get("/v1/auth/profile", headers={"Authorization": f"Bearer {uuid.uuid4()}"})
    assert r.status_code == 401


async def test_register_rejects_weak_password(client):
    r = await client.post("/v1/auth/register", json={
        "username": "grace", "email": "grace@example.com", "password": "alllowercase",
    })
    assert r.status_code == 400
    error = r.json()["error"]
    assert error["type"] == "validation_error"
    assert error["details"]["password"] == ["an uppercase letter", "a number", "a special character"]

    r = await client.post("/v1/auth/login", json={"username": "grace", "password": "alllowercase"})
    assert r.status_code == 401


async def test_password_rules_follow_settings(client, settings):
    assert password_problems(settings, "Str0ng-enough") == []
    relaxed = settings.model_copy(update={"PASSWORD_REQUIRE_SPECIAL": False, "PASSWORD_REQUIRE_UPPERCASE": False})
    assert password_problems(relaxed, "plain1234") == []
    assert password_problems(relaxed, "short1") == ["at least 8 characters"]

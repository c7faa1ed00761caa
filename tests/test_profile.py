"""
Profile page tests: viewing profiles and the profile-edit flow, driven
through the FastAPI app with the account API mocked.
"""
import json

import httpx
import pytest
from httpx import AsyncClient

from tests.conftest import UpstreamMock

BOB_AUTH = {"Authorization": "Bearer bob"}

BOB = {"name": "bob", "email": "bob@example.com", "resource": {}}
PROFILE_UPDATE = {"fullname": "Bob Builder", "github": "bobby", "twitter": "bobtweets"}


def _queue_profile(upstream: UpstreamMock, record: dict, stars=None, packages=None) -> None:
    name = record["name"]
    upstream.reply("GET", f"/user/{name}", json=record)
    upstream.reply("GET", f"/user/{name}/stars", json=stars or [])
    upstream.reply("GET", f"/user/{name}/package", json=packages or [])


# ---------------------------------------------------------------------------
# Viewing profiles
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_public_profile(async_client: AsyncClient, upstream: UpstreamMock):
    _queue_profile(upstream, BOB, stars=["lodash"], packages=[{"name": "foo"}])
    resp = await async_client.get("/~bob")
    assert resp.status_code == 200
    profile = resp.json()
    assert profile["name"] == "bob"
    assert profile["stars"] == ["lodash"]
    assert profile["packages"] == [{"name": "foo"}]


@pytest.mark.asyncio
async def test_public_profile_hides_private_fields(async_client: AsyncClient, upstream: UpstreamMock):
    record = {**BOB, "verification_key": "SECRET", "password_hash": "HASH"}
    _queue_profile(upstream, record)
    resp = await async_client.get("/~bob")
    assert resp.status_code == 200
    profile = resp.json()
    assert profile["email"] == "bob@example.com"
    assert "verification_key" not in profile
    assert "password_hash" not in profile


@pytest.mark.asyncio
async def test_public_profile_not_found(async_client: AsyncClient, upstream: UpstreamMock):
    upstream.reply("GET", "/user/ghost", status=404)
    resp = await async_client.get("/~ghost")
    assert resp.status_code == 404
    assert "ghost" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_public_profile_served_from_cache(async_client: AsyncClient, upstream: UpstreamMock):
    _queue_profile(upstream, BOB)
    first = await async_client.get("/~bob")
    assert first.headers["x-upstream-calls"] == "3"

    upstream.reply("GET", "/user/bob/stars", json=[])
    upstream.reply("GET", "/user/bob/package", json=[])
    second = await async_client.get("/~bob")
    assert second.status_code == 200
    assert second.headers["x-upstream-calls"] == "2"
    assert len(upstream.calls("GET", "/user/bob")) == 1


@pytest.mark.asyncio
async def test_account_service_unreachable(async_client: AsyncClient, upstream: UpstreamMock):
    upstream.fail("GET", "/user/bob", httpx.ConnectError("connection refused"))
    resp = await async_client.get("/~bob")
    assert resp.status_code == 502


@pytest.mark.asyncio
async def test_own_profile_requires_login(async_client: AsyncClient):
    resp = await async_client.get("/profile")
    assert resp.status_code == 302
    assert "login" in resp.headers["location"]


@pytest.mark.asyncio
async def test_own_profile_forwards_identity(async_client: AsyncClient, upstream: UpstreamMock):
    _queue_profile(upstream, BOB)
    resp = await async_client.get("/profile", headers=BOB_AUTH)
    assert resp.status_code == 200
    assert resp.json()["name"] == "bob"
    assert upstream.calls(path="/user/bob/stars")[0].headers["bearer"] == "bob"
    assert "bearer" not in upstream.calls(path="/user/bob")[0].headers


# ---------------------------------------------------------------------------
# Getting to the profile-edit page
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_profile_edit_redirects_anonymous(async_client: AsyncClient):
    resp = await async_client.get("/profile-edit")
    assert resp.status_code == 302
    assert resp.headers["location"] == "/login?done=/profile-edit"


@pytest.mark.asyncio
async def test_profile_edit_page(async_client: AsyncClient, upstream: UpstreamMock):
    upstream.reply("GET", "/user/bob", json=BOB)
    resp = await async_client.get("/profile-edit", headers=BOB_AUTH)
    assert resp.status_code == 200
    assert resp.json()["email"] == "bob@example.com"


# ---------------------------------------------------------------------------
# Modifying the profile
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_redirects_anonymous(async_client: AsyncClient, upstream: UpstreamMock):
    resp = await async_client.post("/profile-edit", json=PROFILE_UPDATE)
    assert resp.status_code == 302
    assert "login" in resp.headers["location"]
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_update_saves_and_shows_fresh_profile(async_client: AsyncClient, upstream: UpstreamMock):
    # Warm the cache with the old record.
    upstream.reply("GET", "/user/bob", json=BOB)
    await async_client.get("/profile-edit", headers=BOB_AUTH)

    updated = {**BOB, "resource": PROFILE_UPDATE}
    upstream.reply("POST", "/user/bob", json=updated)
    resp = await async_client.post("/profile-edit", json=PROFILE_UPDATE, headers=BOB_AUTH)
    assert resp.status_code == 302
    assert resp.headers["location"] == "/profile"

    (save,) = upstream.calls("POST", "/user/bob")
    assert json.loads(save.content) == {"name": "bob", "resource": PROFILE_UPDATE}

    _queue_profile(upstream, updated)
    resp = await async_client.get("/profile", headers=BOB_AUTH)
    assert resp.status_code == 200
    profile = resp.json()
    assert profile["name"] == "bob"
    assert profile["resource"]["github"] == "bobby"
    assert profile["resource"]["twitter"] == "bobtweets"
    assert upstream.pending() == []


@pytest.mark.asyncio
async def test_update_keeps_fields_not_in_form(async_client: AsyncClient, upstream: UpstreamMock):
    stored = {**BOB, "resource": {"homepage": "https://bob.example", "github": "oldbob"}}
    upstream.reply("GET", "/user/bob", json=stored)
    upstream.reply("POST", "/user/bob", json=stored)

    resp = await async_client.post("/profile-edit", json={"github": "bobby"}, headers=BOB_AUTH)
    assert resp.status_code == 302

    (save,) = upstream.calls("POST", "/user/bob")
    assert json.loads(save.content)["resource"] == {
        "homepage": "https://bob.example",
        "github": "bobby",
    }


@pytest.mark.asyncio
async def test_update_rejects_identity_fields(async_client: AsyncClient, upstream: UpstreamMock):
    payload = {**PROFILE_UPDATE, "name": "badguy", "email": "badguy@bad.com", "_id": "x"}
    resp = await async_client.post("/profile-edit", json=payload, headers=BOB_AUTH)
    assert resp.status_code == 400
    paths = [d["path"] for d in resp.json()["error"]["details"]]
    assert {"name", "email", "_id"} <= set(paths)
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_update_rejects_non_object_body(async_client: AsyncClient, upstream: UpstreamMock):
    resp = await async_client.post(
        "/profile-edit", content=b"not json", headers={**BOB_AUTH, "content-type": "application/json"}
    )
    assert resp.status_code == 400
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_update_upstream_failure(async_client: AsyncClient, upstream: UpstreamMock):
    upstream.reply("GET", "/user/bob", json=BOB)
    upstream.reply("POST", "/user/bob", status=400)
    resp = await async_client.post("/profile-edit", json=PROFILE_UPDATE, headers=BOB_AUTH)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "error updating profile for bob"

import logging

import pytest

from sso.models.user import User
from sso.services.avatars import MAX_AVATAR_BYTES


pytestmark = pytest.mark.asyncio

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


async def upload(client, headers, data=PNG, filename="me.png", content_type="image/png"):
    return await client.post("/storage/upload", files={"file": (filename, data, content_type)}, headers=headers)


async def test_upload_sets_avatar_pair(client, create_user, auth_header_factory, blob_store):
    user, password = await create_user()
    headers = await auth_header_factory(user.email, password)

    resp = await upload(client, headers)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["success"] is True
    assert body["path"].startswith(f"users/{user.id}/")
    assert body["path"].endswith(".png")
    assert body["url"] == blob_store.public_url(body["path"])
    assert blob_store.objects[body["path"]] == PNG

    stored = await User.get(id=user.id)
    assert (stored.avatar_url, stored.avatar_path) == (body["url"], body["path"])

    avatar = await client.get("/storage/avatar", headers=headers)
    assert avatar.json() == {"avatarUrl": body["url"]}


async def test_upload_rejects_oversize_without_storage_call(client, create_user, auth_header_factory, blob_store):
    user, password = await create_user()
    headers = await auth_header_factory(user.email, password)

    resp = await upload(client, headers, data=b"\x00" * (MAX_AVATAR_BYTES + 1))
    assert resp.status_code == 400
    assert resp.json()["error"] == "File too large. Maximum size is 5MB."
    assert blob_store.calls == []


async def test_upload_rejects_wrong_type(client, create_user, auth_header_factory, blob_store):
    user, password = await create_user()
    headers = await auth_header_factory(user.email, password)

    resp = await upload(client, headers, data=b"%PDF", filename="doc.pdf", content_type="application/pdf")
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Invalid file type")
    assert blob_store.calls == []


async def test_upload_requires_file(client, create_user, auth_header_factory):
    user, password = await create_user()
    headers = await auth_header_factory(user.email, password)

    resp = await client.post("/storage/upload", data={"other": "x"}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Please upload a single file"


async def test_reupload_replaces_old_blob(client, create_user, auth_header_factory, blob_store):
    user, password = await create_user()
    headers = await auth_header_factory(user.email, password)

    first = (await upload(client, headers)).json()
    second = await upload(client, headers, filename="new.webp", content_type="image/webp")
    assert second.status_code == 200
    assert ("delete", first["path"]) in blob_store.calls
    assert first["path"] not in blob_store.objects
    assert second.json()["path"].endswith(".webp")


async def test_reupload_succeeds_when_old_blob_delete_fails(client, create_user, auth_header_factory, blob_store, caplog):
    user, password = await create_user(
        avatar_url="https://blobs.test/public/users/old.png",
        avatar_path="users/old.png",
    )
    headers = await auth_header_factory(user.email, password)
    blob_store.fail_delete = True

    with caplog.at_level(logging.WARNING, logger="uvicorn.error"):
        resp = await upload(client, headers)

    assert resp.status_code == 200
    assert ("delete", "users/old.png") in blob_store.calls
    assert any("users/old.png" in r.getMessage() for r in caplog.records)
    stored = await User.get(id=user.id)
    assert stored.avatar_path == resp.json()["path"]


async def test_upload_failure_keeps_previous_avatar(client, create_user, auth_header_factory, blob_store):
    user, password = await create_user()
    headers = await auth_header_factory(user.email, password)
    blob_store.fail_upload = True

    resp = await upload(client, headers)
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to upload file"}
    stored = await User.get(id=user.id)
    assert stored.avatar_url is None and stored.avatar_path is None


async def test_delete_avatar(client, create_user, auth_header_factory, blob_store):
    user, password = await create_user()
    headers = await auth_header_factory(user.email, password)

    none_yet = await client.delete("/storage/avatar", headers=headers)
    assert none_yet.status_code == 404
    assert none_yet.json() == {"error": "No avatar to delete"}

    path = (await upload(client, headers)).json()["path"]
    resp = await client.delete("/storage/avatar", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert path not in blob_store.objects

    stored = await User.get(id=user.id)
    assert stored.avatar_url is None and stored.avatar_path is None
    assert (await client.get("/storage/avatar", headers=headers)).json() == {"avatarUrl": None}


async def test_delete_avatar_storage_failure_keeps_reference(client, create_user, auth_header_factory, blob_store):
    user, password = await create_user(
        avatar_url="https://blobs.test/public/users/keep.png",
        avatar_path="users/keep.png",
    )
    headers = await auth_header_factory(user.email, password)
    blob_store.fail_delete = True

    resp = await client.delete("/storage/avatar", headers=headers)
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to delete file"}
    stored = await User.get(id=user.id)
    assert stored.avatar_path == "users/keep.png"


async def test_storage_routes_require_auth(client, blob_store):
    assert (await client.get("/storage/avatar")).status_code == 401
    assert (await client.delete("/storage/avatar")).status_code == 401
    resp = await client.post("/storage/upload", files={"file": ("a.png", PNG, "image/png")})
    assert resp.status_code == 401
    assert blob_store.calls == []


async def test_avatar_of_deleted_user_is_404(client, create_user, auth_header_factory):
    user, password = await create_user()
    headers = await auth_header_factory(user.email, password)
    await user.delete()
    assert (await client.get("/storage/avatar", headers=headers)).status_code == 404

import re

from voxhub.api.deps import storage_provider
from voxhub.core.config import get_settings
from voxhub.core.security import create_access_token
from voxhub.integrations.storage.base import StorageError
from voxhub.integrations.storage.local import LocalStorageProvider

BASE_URL = "http://testserver"
API = "/api/v1/storage"

MODEL_UPLOAD = {
    "fileName": "voice.zip",
    "fileType": "application/zip",
    "fileCategory": "model-file",
    "fileSize": 524288000,
    "totalChunks": 100,
}


async def _initiate(client, headers, **overrides):
    body = {**MODEL_UPLOAD, **overrides}
    response = await client.post(f"{API}/uploads/multipart", json=body, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


async def _upload_parts(client, session, numbers=None):
    parts = []
    for item in session["partUrls"]:
        if numbers is not None and item["partNumber"] not in numbers:
            continue
        response = await client.put(item["url"], content=f"part-{item['partNumber']};".encode())
        assert response.status_code == 200
        parts.append({"PartNumber": item["partNumber"], "ETag": response.headers["ETag"]})
    return parts


async def test_initiate_returns_session_and_part_urls(client, auth_headers):
    data = await _initiate(client, auth_headers("u1"))
    assert re.match(r"^model-file/u1/\d+-[a-z0-9]{12}\.zip$", data["key"])
    assert data["uploadId"]
    assert data["fileName"] == "voice.zip"
    assert data["fileType"] == "application/zip"
    assert data["endpoint"] == f"{BASE_URL}/api/v1/storage"
    assert data["expiresIn"] == 3600
    assert [p["partNumber"] for p in data["partUrls"]] == list(range(1, 101))
    assert "secretAccessKey" not in data


async def test_initiate_requires_auth(client):
    response = await client.post(f"{API}/uploads/multipart", json=MODEL_UPLOAD)
    assert response.status_code == 401
    assert response.json()["code"] == "Unauthorized"

    bad = {"Authorization": "Bearer not-a-jwt"}
    response = await client.post(f"{API}/uploads/multipart", json=MODEL_UPLOAD, headers=bad)
    assert response.status_code == 401


async def test_initiate_rejects_expired_token(client):
    headers = {"Authorization": f"Bearer {create_access_token('u1', ttl_minutes=-5)}"}
    response = await client.post(f"{API}/uploads/multipart", json=MODEL_UPLOAD, headers=headers)
    assert response.status_code == 401


async def test_initiate_missing_parameters(client, auth_headers):
    body = {"fileName": "voice.zip", "fileCategory": "model-file"}
    response = await client.post(f"{API}/uploads/multipart", json=body, headers=auth_headers())
    assert response.status_code == 400
    payload = response.json()
    assert payload["code"] == "MissingParameter"
    assert "fileType" in payload["error"]
    assert "totalChunks" in payload["error"]


async def test_initiate_rejects_disallowed_type(client, auth_headers, provider):
    body = {**MODEL_UPLOAD, "fileCategory": "cover"}
    response = await client.post(f"{API}/uploads/multipart", json=body, headers=auth_headers())
    assert response.status_code == 400
    assert response.json()["code"] == "InvalidArgument"
    assert provider.list_multipart_uploads() == []


async def test_initiate_rejects_oversize_and_too_many_chunks(client, auth_headers):
    response = await client.post(
        f"{API}/uploads/multipart", json={**MODEL_UPLOAD, "fileSize": 501 * 1024 * 1024}, headers=auth_headers()
    )
    assert response.status_code == 400
    response = await client.post(
        f"{API}/uploads/multipart", json={**MODEL_UPLOAD, "totalChunks": 10001}, headers=auth_headers()
    )
    assert response.status_code == 400
    assert response.json()["code"] == "InvalidArgument"


async def test_finalize_all_parts(client, auth_headers, provider):
    headers = auth_headers("u1")
    session = await _initiate(client, headers)
    parts = await _upload_parts(client, session)
    assert len(parts) == 100

    body = {"uploadId": session["uploadId"], "key": session["key"], "parts": parts, "totalChunks": 100}
    response = await client.put(f"{API}/uploads/multipart", json=body, headers=headers)
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["key"] == session["key"]
    assert data["url"].endswith(session["key"])
    assert data["etag"].endswith('-100"')

    stored = provider.object_path(session["key"]).read_bytes()
    assert stored.startswith(b"part-1;part-2;")
    assert stored.endswith(b"part-100;")
    assert provider.list_multipart_uploads() == []

    public = await client.get(data["url"])
    assert public.status_code == 200
    assert public.content == stored


async def test_finalize_with_gap_is_incomplete(client, auth_headers, provider):
    headers = auth_headers("u1")
    session = await _initiate(client, headers)
    parts = [p for p in await _upload_parts(client, session) if p["PartNumber"] != 57]

    body = {"uploadId": session["uploadId"], "key": session["key"], "parts": parts}
    response = await client.put(f"{API}/uploads/multipart", json=body, headers=headers)
    assert response.status_code == 400
    assert response.json()["code"] == "UploadIncomplete"
    assert not provider.object_path(session["key"]).exists()


async def test_finalize_with_duplicate_part_is_incomplete(client, auth_headers):
    headers = auth_headers("u1")
    session = await _initiate(client, headers, totalChunks=3, fileSize=None)
    parts = await _upload_parts(client, session)
    parts.append(dict(parts[0]))

    body = {"uploadId": session["uploadId"], "key": session["key"], "parts": parts}
    response = await client.put(f"{API}/uploads/multipart", json=body, headers=headers)
    assert response.status_code == 400
    assert response.json()["code"] == "UploadIncomplete"


async def test_finalize_missing_trailing_part_is_incomplete(client, auth_headers, provider):
    headers = auth_headers("u1")
    session = await _initiate(client, headers, totalChunks=3)
    parts = await _upload_parts(client, session)

    # contiguous 1..2 but the store holds part 3 as well
    body = {"uploadId": session["uploadId"], "key": session["key"], "parts": parts[:2]}
    response = await client.put(f"{API}/uploads/multipart", json=body, headers=headers)
    assert response.status_code == 400

    body["totalChunks"] = 3
    response = await client.put(f"{API}/uploads/multipart", json=body, headers=headers)
    assert response.status_code == 400
    assert not provider.object_path(session["key"]).exists()


async def test_finalize_part_never_uploaded_is_incomplete(client, auth_headers):
    headers = auth_headers("u1")
    session = await _initiate(client, headers, totalChunks=2)
    parts = await _upload_parts(client, session, numbers={1})
    parts.append({"PartNumber": 2, "ETag": '"0123456789abcdef0123456789abcdef"'})

    body = {"uploadId": session["uploadId"], "key": session["key"], "parts": parts}
    response = await client.put(f"{API}/uploads/multipart", json=body, headers=headers)
    assert response.status_code == 400
    assert response.json()["code"] == "UploadIncomplete"


async def test_finalize_with_undersized_part_is_incomplete(client, auth_headers, provider):
    headers = auth_headers("u1")
    session = await _initiate(client, headers, totalChunks=2)
    parts = []
    for item, content in zip(session["partUrls"], (b"x", b"final part"), strict=True):
        response = await client.put(item["url"], content=content)
        assert response.status_code == 200
        parts.append({"PartNumber": item["partNumber"], "ETag": response.headers["ETag"]})

    body = {"uploadId": session["uploadId"], "key": session["key"], "parts": parts}
    response = await client.put(f"{API}/uploads/multipart", json=body, headers=headers)
    assert response.status_code == 400
    assert response.json()["code"] == "UploadIncomplete"
    assert not provider.object_path(session["key"]).exists()
    assert len(provider.list_multipart_uploads()) == 1


async def test_short_final_part_is_accepted(client, auth_headers, provider):
    headers = auth_headers("u1")
    session = await _initiate(client, headers, totalChunks=2)
    parts = []
    for item, content in zip(session["partUrls"], (b"first part", b"x"), strict=True):
        response = await client.put(item["url"], content=content)
        parts.append({"PartNumber": item["partNumber"], "ETag": response.headers["ETag"]})

    body = {"uploadId": session["uploadId"], "key": session["key"], "parts": parts}
    response = await client.put(f"{API}/uploads/multipart", json=body, headers=headers)
    assert response.status_code == 200, response.text
    assert provider.object_path(session["key"]).read_bytes() == b"first partx"


async def test_finalize_by_other_owner_is_forbidden(client, auth_headers, provider):
    session = await _initiate(client, auth_headers("u1"), totalChunks=2)
    parts = await _upload_parts(client, session)

    body = {"uploadId": session["uploadId"], "key": session["key"], "parts": parts}
    response = await client.put(f"{API}/uploads/multipart", json=body, headers=auth_headers("u2"))
    assert response.status_code == 403
    assert response.json()["code"] == "Forbidden"
    assert len(provider.list_multipart_uploads()) == 1


async def test_ownership_checked_before_upload_id(client, auth_headers):
    body = {
        "uploadId": "does-not-exist",
        "key": "model-file/u1/1-abc.zip",
        "parts": [{"PartNumber": 1, "ETag": '"x"'}],
    }
    response = await client.put(f"{API}/uploads/multipart", json=body, headers=auth_headers("u2"))
    assert response.status_code == 403

    abort = {"uploadId": "does-not-exist", "key": "model-file/u1/1-abc.zip"}
    response = await client.request("DELETE", f"{API}/uploads/multipart", json=abort, headers=auth_headers("u2"))
    assert response.status_code == 403


async def test_finalize_missing_parameters(client, auth_headers):
    response = await client.put(f"{API}/uploads/multipart", json={"key": "x"}, headers=auth_headers())
    assert response.status_code == 400
    assert response.json()["code"] == "MissingParameter"


async def test_finalize_and_abort_without_body(client, auth_headers):
    for method in ("PUT", "DELETE"):
        response = await client.request(method, f"{API}/uploads/multipart", headers=auth_headers())
        assert response.status_code == 400
        assert response.json()["code"] == "MissingParameter"


async def test_abort_twice_succeeds(client, auth_headers, provider):
    headers = auth_headers("u1")
    session = await _initiate(client, headers, totalChunks=2)
    await _upload_parts(client, session, numbers={1})

    body = {"uploadId": session["uploadId"], "key": session["key"]}
    for _ in range(2):
        response = await client.request("DELETE", f"{API}/uploads/multipart", json=body, headers=headers)
        assert response.status_code == 200
        assert response.json() == {"success": True}
    assert provider.list_multipart_uploads() == []


async def test_abort_after_complete_is_noop(client, auth_headers):
    headers = auth_headers("u1")
    session = await _initiate(client, headers, totalChunks=1)
    parts = await _upload_parts(client, session)
    body = {"uploadId": session["uploadId"], "key": session["key"], "parts": parts}
    assert (await client.put(f"{API}/uploads/multipart", json=body, headers=headers)).status_code == 200

    abort = {"uploadId": session["uploadId"], "key": session["key"]}
    response = await client.request("DELETE", f"{API}/uploads/multipart", json=abort, headers=headers)
    assert response.status_code == 200
    assert response.json() == {"success": True}


async def test_part_url_rejects_tampered_token(client, auth_headers):
    session = await _initiate(client, auth_headers("u1"), totalChunks=1)
    url = session["partUrls"][0]["url"]
    response = await client.put(url[:-2] + "xx", content=b"data")
    assert response.status_code == 403


async def test_preflight_and_cors_headers(client):
    preflight = {
        "Origin": "https://app.voxhub.test",
        "Access-Control-Request-Method": "DELETE",
        "Access-Control-Request-Headers": "Authorization, Content-Type",
    }
    response = await client.options(f"{API}/uploads/multipart", headers=preflight)
    assert response.status_code == 200
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert "DELETE" in response.headers["Access-Control-Allow-Methods"]
    assert "Authorization" in response.headers["Access-Control-Allow-Headers"]

    response = await client.post(
        f"{API}/uploads/multipart", json=MODEL_UPLOAD, headers={"Origin": "https://app.voxhub.test"}
    )
    assert response.status_code == 401
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert "ETag" in response.headers["Access-Control-Expose-Headers"]


async def test_options_without_preflight_headers(client):
    response = await client.options(f"{API}/uploads/multipart")
    assert response.status_code == 200
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert "PUT" in response.headers["Access-Control-Allow-Methods"]


async def test_initiate_is_rate_limited(client, auth_headers, monkeypatch):
    monkeypatch.setenv("UPLOAD_RATE_LIMIT", "2")
    get_settings.cache_clear()
    headers = auth_headers("u1")
    body = {**MODEL_UPLOAD, "totalChunks": 1}
    for _ in range(2):
        assert (await client.post(f"{API}/uploads/multipart", json=body, headers=headers)).status_code == 200
    response = await client.post(f"{API}/uploads/multipart", json=body, headers=headers)
    assert response.status_code == 429
    assert response.json()["code"] == "RateLimited"


class FlakyStore(LocalStorageProvider):
    def __init__(self, base_dir, failing: str, code: str):
        super().__init__(base_dir, min_part_size=4)
        self.failing = failing
        self.code = code

    def _maybe_fail(self, operation: str) -> None:
        if operation == self.failing:
            raise StorageError(self.code, "store said no")

    def create_multipart_upload(self, object_key, content_type):
        self._maybe_fail("create_multipart_upload")
        return super().create_multipart_upload(object_key, content_type)

    def complete_multipart_upload(self, object_key, upload_id, parts):
        self._maybe_fail("complete_multipart_upload")
        return super().complete_multipart_upload(object_key, upload_id, parts)

    def abort_multipart_upload(self, object_key, upload_id):
        self._maybe_fail("abort_multipart_upload")
        return super().abort_multipart_upload(object_key, upload_id)


async def test_store_failure_on_initiate_is_upstream_unavailable(app, client, auth_headers, tmp_path):
    store = FlakyStore(tmp_path / "flaky", "create_multipart_upload", "InternalError")
    app.dependency_overrides[storage_provider] = lambda: store
    response = await client.post(f"{API}/uploads/multipart", json=MODEL_UPLOAD, headers=auth_headers())
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to initialize upload", "code": "UpstreamUnavailable"}


async def test_store_part_errors_on_finalize_are_incomplete(app, client, auth_headers, tmp_path):
    store = FlakyStore(tmp_path / "flaky", "complete_multipart_upload", "EntityTooSmall")
    app.dependency_overrides[storage_provider] = lambda: store
    headers = auth_headers("u1")
    session = await _initiate(client, headers, totalChunks=2)
    parts = await _upload_parts(client, session)

    body = {"uploadId": session["uploadId"], "key": session["key"], "parts": parts}
    response = await client.put(f"{API}/uploads/multipart", json=body, headers=headers)
    assert response.status_code == 400
    assert response.json()["code"] == "UploadIncomplete"

    store.code = "SlowDown"
    response = await client.put(f"{API}/uploads/multipart", json=body, headers=headers)
    assert response.status_code == 500
    assert response.json()["code"] == "UpstreamUnavailable"


async def test_abort_swallows_store_failures(app, client, auth_headers, tmp_path):
    store = FlakyStore(tmp_path / "flaky", "abort_multipart_upload", "InternalError")
    app.dependency_overrides[storage_provider] = lambda: store
    headers = auth_headers("u1")
    session = await _initiate(client, headers, totalChunks=1)
    body = {"uploadId": session["uploadId"], "key": session["key"]}
    response = await client.request("DELETE", f"{API}/uploads/multipart", json=body, headers=headers)
    assert response.status_code == 200
    assert response.json() == {"success": True}

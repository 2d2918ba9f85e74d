"""Tests for build upload session creation, chunk transfer and finalize."""

from __future__ import annotations

import json

import httpx
import pytest

from conftest import BASE_URL, json_response
from testflight_uploader.errors import (
    ApiRequestError,
    ChunkUploadFailedError,
    FinalizeFailedError,
    UploadOperationsMissingError,
)
from testflight_uploader.models import BuildUploadSession, Platform, UploadOperation
from testflight_uploader.uploader import UploadSessionManager, reconcile_operations

CHUNK_HOST = "https://upload.example.test"


def raw_operation(offset: int, length: int, part: int) -> dict:
    return {
        "method": "PUT",
        "url": f"{CHUNK_HOST}/part/{part}",
        "offset": offset,
        "length": length,
        "requestHeaders": [
            {"name": "Content-Type", "value": "application/octet-stream"},
            {"name": "X-Part", "value": str(part)},
        ],
    }


def session_handler(inline_ops=None, file_ops=None, file_id="file-1", calls=None):
    """Handler answering the two create calls of a session."""

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append((request.method, request.url.path, json.loads(request.content or b"{}")))
        if request.url.path.endswith("/buildUploads"):
            attributes = {"uploadOperations": inline_ops} if inline_ops is not None else {}
            return json_response({"data": {"id": "upload-1", "attributes": attributes}}, 201)
        if request.url.path.endswith("/buildUploadFiles"):
            data = {"attributes": {"uploadOperations": file_ops or []}}
            if file_id:
                data["id"] = file_id
            return json_response({"data": data}, 201)
        return httpx.Response(404)

    return handler


async def create(manager: UploadSessionManager) -> BuildUploadSession:
    return await manager.create_session(
        app_id="app-1",
        platform=Platform.IOS,
        short_version="1.2.3",
        build_number="42",
        file_name="Example.ipa",
        file_size=2000,
    )


# ======================================================================
# Session creation
# ======================================================================


class TestCreateSession:
    async def test_inline_operations_win(self, make_client):
        inline = [raw_operation(0, 1000, 1), raw_operation(1000, 1000, 2)]
        client = make_client(session_handler(inline_ops=inline, file_ops=[raw_operation(0, 2000, 9)]))

        session = await create(UploadSessionManager(client))

        assert session.id == "upload-1"
        assert session.file_id == "file-1"
        assert [op.url for op in session.operations] == [
            f"{CHUNK_HOST}/part/1",
            f"{CHUNK_HOST}/part/2",
        ]
        assert session.operations[0].headers == {
            "Content-Type": "application/octet-stream",
            "X-Part": "1",
        }

    async def test_file_operations_used_when_session_has_none(self, make_client):
        client = make_client(session_handler(file_ops=[raw_operation(0, 2000, 1)]))

        session = await create(UploadSessionManager(client))

        assert session.file_id == "file-1"
        assert len(session.operations) == 1
        assert session.total_bytes == 2000

    async def test_create_payloads(self, make_client):
        calls = []
        client = make_client(session_handler(file_ops=[raw_operation(0, 2000, 1)], calls=calls))

        await create(UploadSessionManager(client))

        (_, upload_path, upload_body), (_, file_path, file_body) = calls
        assert upload_path == "/v1/buildUploads"
        assert upload_body["data"]["attributes"] == {
            "platform": "IOS",
            "cfBundleShortVersionString": "1.2.3",
            "cfBundleVersion": "42",
        }
        assert upload_body["data"]["relationships"]["app"]["data"] == {"type": "apps", "id": "app-1"}
        assert file_path == "/v1/buildUploadFiles"
        assert file_body["data"]["attributes"] == {
            "fileName": "Example.ipa",
            "fileSize": 2000,
            "assetType": "ASSET",
            "uti": "com.apple.ipa",
        }
        assert file_body["data"]["relationships"]["buildUpload"]["data"]["id"] == "upload-1"

    async def test_no_operations_anywhere_fails(self, make_client):
        client = make_client(session_handler(file_ops=[]))

        with pytest.raises(UploadOperationsMissingError):
            await create(UploadSessionManager(client))

    async def test_missing_file_id_fails(self, make_client):
        client = make_client(session_handler(inline_ops=[raw_operation(0, 10, 1)], file_id=None))

        with pytest.raises(UploadOperationsMissingError):
            await create(UploadSessionManager(client))

    async def test_create_error_propagates(self, make_client):
        client = make_client(lambda request: httpx.Response(409, text="duplicate build"))

        with pytest.raises(ApiRequestError) as exc_info:
            await create(UploadSessionManager(client))

        assert exc_info.value.status == 409
        assert "duplicate build" in exc_info.value.body


class TestReconcileOperations:
    def test_file_operations_fallback(self):
        op = UploadOperation(method="PUT", url="u", offset=0, length=1)
        assert reconcile_operations([], "file-1", [op]) == ("file-1", [op])


# ======================================================================
# Transfer
# ======================================================================


def make_session(*operations: UploadOperation) -> BuildUploadSession:
    return BuildUploadSession(id="upload-1", file_id="file-1", operations=list(operations))


def chunk_op(offset: int, length: int, part: int) -> UploadOperation:
    return UploadOperation.from_dict(raw_operation(offset, length, part))


class TestTransfer:
    async def test_sends_exact_slices_in_list_order(self, make_client):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append((request.method, str(request.url), request.headers["X-Part"], request.content))
            return httpx.Response(200)

        artifact = bytes(range(256)) * 8  # 2048 bytes
        # Deliberately out of offset order: list order is what counts
        session = make_session(chunk_op(1000, 1048, 2), chunk_op(0, 1000, 1))

        await UploadSessionManager(make_client(handler)).transfer(session, artifact)

        assert [part for _, _, part, _ in received] == ["2", "1"]
        assert received[0][3] == artifact[1000:2048]
        assert received[1][3] == artifact[0:1000]
        assert received[0][0] == "PUT"
        assert received[0][1] == f"{CHUNK_HOST}/part/2"

    async def test_chunks_carry_no_bearer_token(self, make_client):
        headers = []

        def handler(request: httpx.Request) -> httpx.Response:
            headers.append(request.headers)
            return httpx.Response(200)

        await UploadSessionManager(make_client(handler)).transfer(make_session(chunk_op(0, 4, 1)), b"abcd")

        assert "authorization" not in headers[0]

    async def test_failed_chunk_stops_transfer(self, make_client):
        parts = []

        def handler(request: httpx.Request) -> httpx.Response:
            parts.append(request.headers["X-Part"])
            if request.headers["X-Part"] == "2":
                return httpx.Response(500, text="storage unavailable")
            return httpx.Response(200)

        session = make_session(chunk_op(0, 2, 1), chunk_op(2, 2, 2), chunk_op(4, 2, 3))

        with pytest.raises(ChunkUploadFailedError) as exc_info:
            await UploadSessionManager(make_client(handler)).transfer(session, b"abcdef")

        assert parts == ["1", "2"]
        assert exc_info.value.status == 500
        assert exc_info.value.body == "storage unavailable"
        assert (exc_info.value.index, exc_info.value.total) == (2, 3)

    async def test_progress_callback(self, make_client):
        progress = []
        session = make_session(chunk_op(0, 3, 1), chunk_op(3, 3, 2))

        await UploadSessionManager(make_client(lambda request: httpx.Response(200))).transfer(
            session,
            b"abcdef",
            on_progress=lambda index, total, size: progress.append((index, total, size)),
        )

        assert progress == [(1, 2, 3), (2, 2, 3)]


# ======================================================================
# Finalize
# ======================================================================


class TestFinalize:
    async def test_marks_file_uploaded(self, make_client):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append((request.method, str(request.url), json.loads(request.content)))
            return json_response({"data": {"id": "file-1"}})

        await UploadSessionManager(make_client(handler)).finalize("file-1")

        method, url, body = calls[0]
        assert method == "PATCH"
        assert url == f"{BASE_URL}/buildUploadFiles/file-1"
        assert body == {
            "data": {
                "id": "file-1",
                "type": "buildUploadFiles",
                "attributes": {"uploaded": True},
            }
        }

    async def test_failure_is_distinct_from_upload_failure(self, make_client):
        client = make_client(lambda request: httpx.Response(500, text="commit failed"))

        with pytest.raises(FinalizeFailedError) as exc_info:
            await UploadSessionManager(client).finalize("file-1")

        assert exc_info.value.file_id == "file-1"
        assert isinstance(exc_info.value.cause, ApiRequestError)
        assert not isinstance(exc_info.value, ChunkUploadFailedError)

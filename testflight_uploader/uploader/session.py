"""Build upload session management.

A build upload is a ``buildUploads`` resource plus one ``buildUploadFiles``
resource. App Store Connect returns the chunk transfer plan either inline on
the session or on the file resource; :func:`reconcile_operations` folds both
shapes into one ``(file_id, operations)`` pair so the transfer and finalize
steps never branch on it.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

import httpx

from testflight_uploader.api.client import MAX_ERROR_BODY, AppStoreConnectClient
from testflight_uploader.errors import (
    ApiRequestError,
    ChunkUploadFailedError,
    FinalizeFailedError,
    UploadOperationsMissingError,
)
from testflight_uploader.models import BuildUploadSession, Platform, UploadOperation
from testflight_uploader.utils.logging import get_logger

logger = get_logger("uploader.session")

ASSET_TYPE = "ASSET"
IPA_UTI = "com.apple.ipa"

ProgressCallback = Callable[[int, int, int], None]


def _parse_operations(raw: Optional[list[dict[str, Any]]]) -> list[UploadOperation]:
    return [UploadOperation.from_dict(item) for item in raw or []]


def reconcile_operations(
    inline: list[UploadOperation],
    file_id: Optional[str],
    file_operations: list[UploadOperation],
) -> tuple[str, list[UploadOperation]]:
    """
    Pick the canonical file id and transfer plan.

    Inline session operations win when present; otherwise the file
    resource's operations are used.

    Raises:
        UploadOperationsMissingError: If no file id or no operations remain
    """
    operations = inline if inline else file_operations
    if not file_id or not operations:
        raise UploadOperationsMissingError(
            "App Store API returned no upload operations."
            if file_id
            else "App Store API returned no build upload file id."
        )
    return file_id, operations


class UploadSessionManager:
    """
    Creates, transfers and finalizes one build upload.

    The session object is only mutated here; transfer is strictly sequential
    and a failed chunk aborts the whole session.
    """

    def __init__(self, client: AppStoreConnectClient) -> None:
        self.client = client

    async def create_session(
        self,
        app_id: str,
        platform: Platform,
        short_version: str,
        build_number: str,
        file_name: str,
        file_size: int,
    ) -> BuildUploadSession:
        """
        Create the build upload and its file resource.

        Args:
            app_id: App Store Connect app id
            platform: Target platform
            short_version: CFBundleShortVersionString
            build_number: CFBundleVersion
            file_name: Artifact file name
            file_size: Artifact size in bytes

        Returns:
            Session with file id and transfer plan

        Raises:
            ApiRequestError: If either create request fails
            UploadOperationsMissingError: If no file id or operations were returned
        """
        payload = {
            "data": {
                "type": "buildUploads",
                "attributes": {
                    "platform": platform.value,
                    "cfBundleShortVersionString": short_version,
                    "cfBundleVersion": build_number,
                },
                "relationships": {
                    "app": {"data": {"type": "apps", "id": app_id}},
                },
            }
        }
        response = await self.client.fetch_json(
            "/buildUploads",
            "Failed to create App Store build upload.",
            method="POST",
            payload=payload,
        )
        data = response.get("data") or {}
        upload_id = data.get("id")
        if not upload_id:
            raise UploadOperationsMissingError("App Store API buildUploads response missing id.")

        inline = _parse_operations((data.get("attributes") or {}).get("uploadOperations"))

        # The file resource is the only source of the file id needed to finalize
        file_id, file_operations = await self._create_upload_file(
            upload_id, file_name, file_size
        )
        file_id, operations = reconcile_operations(inline, file_id, file_operations)

        session = BuildUploadSession(id=upload_id, file_id=file_id, operations=operations)
        logger.info(
            "upload_session_created",
            build_upload_id=session.id,
            file_id=session.file_id,
            operations=len(session.operations),
            inline_operations=bool(inline),
        )
        return session

    async def _create_upload_file(
        self,
        upload_id: str,
        file_name: str,
        file_size: int,
    ) -> tuple[Optional[str], list[UploadOperation]]:
        response = await self.client.fetch_json(
            "/buildUploadFiles",
            "Failed to create App Store build upload file.",
            method="POST",
            payload={
                "data": {
                    "type": "buildUploadFiles",
                    "attributes": {
                        "fileName": file_name,
                        "fileSize": file_size,
                        "assetType": ASSET_TYPE,
                        "uti": IPA_UTI,
                    },
                    "relationships": {
                        "buildUpload": {"data": {"type": "buildUploads", "id": upload_id}},
                    },
                }
            },
        )
        data = response.get("data") or {}
        operations = _parse_operations((data.get("attributes") or {}).get("uploadOperations"))
        return data.get("id"), operations

    async def transfer(
        self,
        session: BuildUploadSession,
        artifact: bytes,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """
        Send every chunk of the artifact in list order.

        Args:
            session: Session with the transfer plan
            artifact: Full artifact contents
            on_progress: Called with (index, total, bytes) after each chunk

        Raises:
            ChunkUploadFailedError: On the first non-2xx chunk response
        """
        total = len(session.operations)
        for index, operation in enumerate(session.operations, start=1):
            chunk = artifact[operation.offset:operation.offset + operation.length]

            try:
                response = await self.client.send_chunk(
                    operation.method,
                    operation.url,
                    operation.headers,
                    chunk,
                )
            except httpx.TransportError as e:
                logger.error("chunk_transport_error", index=index, total=total, error=str(e))
                raise ChunkUploadFailedError(0, str(e), index, total) from e

            if not response.is_success:
                logger.error(
                    "chunk_upload_failed",
                    index=index,
                    total=total,
                    status=response.status_code,
                )
                raise ChunkUploadFailedError(
                    response.status_code,
                    response.text[:MAX_ERROR_BODY],
                    index,
                    total,
                )

            logger.debug("chunk_uploaded", index=index, total=total, bytes=len(chunk))
            if on_progress is not None:
                on_progress(index, total, len(chunk))

    async def finalize(self, file_id: str) -> None:
        """
        Mark the upload file as uploaded.

        Raises:
            FinalizeFailedError: If the commit request fails; the bytes stay
                on the server without being marked complete
        """
        try:
            await self.client.fetch_json(
                f"/buildUploadFiles/{file_id}",
                "Failed to finalize App Store build upload.",
                method="PATCH",
                payload={
                    "data": {
                        "id": file_id,
                        "type": "buildUploadFiles",
                        "attributes": {"uploaded": True},
                    }
                },
            )
        except ApiRequestError as e:
            logger.error("upload_finalize_failed", file_id=file_id, status=e.status)
            raise FinalizeFailedError(file_id, e) from e

        logger.info("upload_finalized", file_id=file_id)

"""Data models for the build upload session protocol."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class UploadOperation:
    """
    One server-dictated byte-range transfer.

    Attributes:
        method: HTTP method to use (usually PUT)
        url: Absolute upload URL
        offset: First byte of the artifact to send
        length: Number of bytes to send
        headers: Request headers to send verbatim
    """

    method: str
    url: str
    offset: int
    length: int
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UploadOperation":
        """
        Create from an App Store Connect ``uploadOperations`` entry.

        The API returns headers as a list of ``{"name", "value"}`` pairs.
        """
        headers: dict[str, str] = {}
        for header in data.get("requestHeaders") or []:
            name = header.get("name")
            if name:
                headers[name] = str(header.get("value", ""))

        return cls(
            method=data.get("method", "PUT"),
            url=data["url"],
            offset=int(data.get("offset", 0)),
            length=int(data["length"]),
            headers=headers,
        )


@dataclass
class BuildUploadSession:
    """
    A build upload with its file resource and transfer plan.

    Attributes:
        id: buildUploads resource id
        file_id: buildUploadFiles resource id, needed to finalize
        operations: Ordered chunk transfers covering the whole artifact
    """

    id: str
    file_id: str
    operations: list[UploadOperation] = field(default_factory=list)

    @property
    def total_bytes(self) -> int:
        """Total bytes covered by the transfer plan."""
        return sum(op.length for op in self.operations)

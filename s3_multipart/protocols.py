"""
Protocols (Interfaces) for Dependency Inversion.

The orchestrator only knows the storage service through IStorageClient.
"""
from typing import Optional, Protocol, runtime_checkable

from .models import CompleteResult, CompletionManifest


@runtime_checkable
class IStorageClient(Protocol):
    """Interface for multipart upload operations on an object store."""

    async def create_session(
        self,
        bucket: str,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> str:
        """Start a multipart upload and return its session id."""
        ...

    async def upload_part(
        self,
        bucket: str,
        key: str,
        session_id: str,
        part_number: int,
        payload: bytes,
    ) -> str:
        """Upload one part and return its ETag."""
        ...

    async def complete_session(
        self,
        bucket: str,
        key: str,
        session_id: str,
        manifest: CompletionManifest,
    ) -> CompleteResult:
        """Assemble the uploaded parts into one object."""
        ...

    async def abort_session(self, bucket: str, key: str, session_id: str) -> None:
        """Discard the session and its parts. Safe to call more than once."""
        ...

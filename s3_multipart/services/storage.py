"""
Storage Service - Single Responsibility: talk to S3 multipart upload API.

Wraps a boto3 S3 client. Blocking boto3 calls run in a worker thread,
one call at a time, so the event loop stays responsive.
"""
import asyncio
import logging
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import AbortError, CompletionError, ConfigError, PartUploadError, SessionError
from ..models import CompleteResult, CompletionManifest

logger = logging.getLogger(__name__)

# Returned by abort when the upload was already aborted or completed
BENIGN_ABORT_CODES = frozenset({"NoSuchUpload"})


def error_code(exc: BaseException) -> Optional[str]:
    """Service error code of a botocore ClientError, if any."""
    if isinstance(exc, ClientError):
        return (exc.response.get("Error", {}) or {}).get("Code")
    return None


def build_s3_client(
    profile: Optional[str] = None,
    region: Optional[str] = None,
    endpoint_url: Optional[str] = None,
    addressing_style: Optional[str] = None,
) -> Any:
    """
    Create a boto3 S3 client.

    Credentials come from the default boto3 chain (env, shared config,
    instance metadata) or the given profile.
    """
    session = boto3.Session(profile_name=profile, region_name=region)
    config = None
    if addressing_style:
        config = Config(s3={"addressing_style": addressing_style.strip().lower()})
    return session.client("s3", endpoint_url=endpoint_url, config=config)


class S3StorageService:
    """
    Service for multipart uploads to S3 and S3-compatible stores.

    Every failure is raised as the matching UploaderError subclass with
    the botocore exception chained as its cause.
    """

    def __init__(self, client: Any):
        """
        Initialize storage service.

        Args:
            client: boto3 S3 client (see build_s3_client)
        """
        self._client = client

    @classmethod
    def from_settings(
        cls,
        profile: Optional[str] = None,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
    ) -> "S3StorageService":
        try:
            client = build_s3_client(profile=profile, region=region, endpoint_url=endpoint_url)
        except BotoCoreError as exc:
            raise ConfigError(f"cannot build S3 client: {exc}", exc) from exc
        return cls(client)

    async def create_session(
        self,
        bucket: str,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> str:
        params = {"Bucket": bucket, "Key": key}
        if content_type:
            params["ContentType"] = content_type
        if metadata:
            params["Metadata"] = metadata

        try:
            response = await asyncio.to_thread(self._client.create_multipart_upload, **params)
        except (ClientError, BotoCoreError) as exc:
            raise SessionError(f"failed to create multipart upload: {exc}", exc) from exc

        upload_id = response.get("UploadId")
        if not upload_id:
            raise SessionError("S3 response missing UploadId")
        logger.debug(f"Created multipart upload {upload_id} for s3://{bucket}/{key}")
        return str(upload_id)

    async def upload_part(
        self,
        bucket: str,
        key: str,
        session_id: str,
        part_number: int,
        payload: bytes,
    ) -> str:
        try:
            response = await asyncio.to_thread(
                self._client.upload_part,
                Bucket=bucket,
                Key=key,
                UploadId=session_id,
                PartNumber=int(part_number),
                Body=payload,
            )
        except (ClientError, BotoCoreError) as exc:
            raise PartUploadError(part_number, exc) from exc

        etag = response.get("ETag")
        if not etag:
            raise PartUploadError(part_number, ValueError("S3 response missing ETag"))
        return etag

    async def complete_session(
        self,
        bucket: str,
        key: str,
        session_id: str,
        manifest: CompletionManifest,
    ) -> CompleteResult:
        try:
            response = await asyncio.to_thread(
                self._client.complete_multipart_upload,
                Bucket=bucket,
                Key=key,
                UploadId=session_id,
                MultipartUpload=manifest.to_request(),
            )
        except (ClientError, BotoCoreError) as exc:
            raise CompletionError(f"failed to complete multipart upload: {exc}", exc) from exc

        return CompleteResult(location=response.get("Location"), etag=response.get("ETag"))

    async def abort_session(self, bucket: str, key: str, session_id: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.abort_multipart_upload,
                Bucket=bucket,
                Key=key,
                UploadId=session_id,
            )
        except ClientError as exc:
            if error_code(exc) in BENIGN_ABORT_CODES:
                logger.debug(f"Upload {session_id} already finished: {exc}")
                return
            raise AbortError(f"failed to abort multipart upload: {exc}", exc) from exc
        except BotoCoreError as exc:
            raise AbortError(f"failed to abort multipart upload: {exc}", exc) from exc

    def close(self) -> None:
        """Close the underlying HTTP connections."""
        close = getattr(self._client, "close", None)
        if callable(close):
            close()

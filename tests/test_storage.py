"""Tests for the boto3 storage service, using botocore's Stubber."""
import boto3
import pytest
from botocore.exceptions import ClientError
from botocore.stub import Stubber

from s3_multipart.errors import AbortError, CompletionError, PartUploadError, SessionError
from s3_multipart.models import CompletionManifest, PartResult
from s3_multipart.services.storage import S3StorageService, error_code

BUCKET = "bucket"
KEY = "backups/big.bin"


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="test",
        aws_secret_access_key="test",
    )


@pytest.fixture
def stubber(s3_client):
    with Stubber(s3_client) as stub:
        yield stub
        stub.assert_no_pending_responses()


@pytest.fixture
def service(s3_client):
    return S3StorageService(s3_client)


class TestCreateSession:
    @pytest.mark.asyncio
    async def test_returns_upload_id(self, service, stubber):
        stubber.add_response(
            "create_multipart_upload",
            {"Bucket": BUCKET, "Key": KEY, "UploadId": "upload-1"},
            {"Bucket": BUCKET, "Key": KEY},
        )

        assert await service.create_session(BUCKET, KEY) == "upload-1"

    @pytest.mark.asyncio
    async def test_forwards_content_type_and_metadata(self, service, stubber):
        stubber.add_response(
            "create_multipart_upload",
            {"UploadId": "upload-2"},
            {"Bucket": BUCKET, "Key": KEY, "ContentType": "application/x-tar", "Metadata": {"a": "b"}},
        )

        upload_id = await service.create_session(
            BUCKET, KEY, content_type="application/x-tar", metadata={"a": "b"}
        )
        assert upload_id == "upload-2"

    @pytest.mark.asyncio
    async def test_access_denied_is_session_error(self, service, stubber):
        stubber.add_client_error(
            "create_multipart_upload",
            service_error_code="AccessDenied",
            service_message="Access Denied",
            http_status_code=403,
        )

        with pytest.raises(SessionError) as exc_info:
            await service.create_session(BUCKET, KEY)

        assert isinstance(exc_info.value.cause, ClientError)
        assert error_code(exc_info.value.cause) == "AccessDenied"
        assert exc_info.value.phase == "create"


class TestUploadPart:
    @pytest.mark.asyncio
    async def test_returns_etag(self, service, stubber):
        stubber.add_response(
            "upload_part",
            {"ETag": '"etag-1"'},
            None,
        )

        etag = await service.upload_part(BUCKET, KEY, "upload-1", 1, b"payload")
        assert etag == '"etag-1"'

    @pytest.mark.asyncio
    async def test_service_error_names_part(self, service, stubber):
        stubber.add_client_error(
            "upload_part",
            service_error_code="SlowDown",
            http_status_code=503,
        )

        with pytest.raises(PartUploadError, match="part 2 upload failed") as exc_info:
            await service.upload_part(BUCKET, KEY, "upload-1", 2, b"payload")

        assert exc_info.value.part_number == 2

    @pytest.mark.asyncio
    async def test_missing_etag_is_part_error(self, service, stubber):
        stubber.add_response("upload_part", {}, None)

        with pytest.raises(PartUploadError):
            await service.upload_part(BUCKET, KEY, "upload-1", 1, b"payload")


class TestCompleteSession:
    @pytest.mark.asyncio
    async def test_sends_sorted_manifest(self, service, stubber):
        manifest = CompletionManifest([PartResult(2, '"b"'), PartResult(1, '"a"')])
        stubber.add_response(
            "complete_multipart_upload",
            {"Location": "https://bucket.s3.amazonaws.com/big.bin", "ETag": '"final-2"'},
            {
                "Bucket": BUCKET,
                "Key": KEY,
                "UploadId": "upload-1",
                "MultipartUpload": {
                    "Parts": [
                        {"ETag": '"a"', "PartNumber": 1},
                        {"ETag": '"b"', "PartNumber": 2},
                    ]
                },
            },
        )

        completed = await service.complete_session(BUCKET, KEY, "upload-1", manifest)

        assert completed.etag == '"final-2"'
        assert completed.location.endswith("big.bin")

    @pytest.mark.asyncio
    async def test_failure_is_completion_error(self, service, stubber):
        stubber.add_client_error(
            "complete_multipart_upload",
            service_error_code="InvalidPart",
            http_status_code=400,
        )

        with pytest.raises(CompletionError):
            await service.complete_session(
                BUCKET, KEY, "upload-1", CompletionManifest([PartResult(1, '"a"')])
            )


class TestAbortSession:
    @pytest.mark.asyncio
    async def test_abort(self, service, stubber):
        stubber.add_response(
            "abort_multipart_upload",
            {},
            {"Bucket": BUCKET, "Key": KEY, "UploadId": "upload-1"},
        )

        assert await service.abort_session(BUCKET, KEY, "upload-1") is None

    @pytest.mark.asyncio
    async def test_abort_is_idempotent(self, service, stubber):
        stubber.add_response("abort_multipart_upload", {}, None)
        stubber.add_client_error(
            "abort_multipart_upload",
            service_error_code="NoSuchUpload",
            http_status_code=404,
        )

        await service.abort_session(BUCKET, KEY, "upload-1")
        await service.abort_session(BUCKET, KEY, "upload-1")

    @pytest.mark.asyncio
    async def test_abort_failure_is_abort_error(self, service, stubber):
        stubber.add_client_error(
            "abort_multipart_upload",
            service_error_code="AccessDenied",
            http_status_code=403,
        )

        with pytest.raises(AbortError):
            await service.abort_session(BUCKET, KEY, "upload-1")


def test_close_closes_client():
    class FakeClient:
        closed = False

        def close(self):
            self.closed = True

    client = FakeClient()
    S3StorageService(client).close()
    assert client.closed is True


def test_error_code_of_non_client_error():
    assert error_code(RuntimeError("x")) is None

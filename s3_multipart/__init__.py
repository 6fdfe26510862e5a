"""
s3_multipart - Upload one large file to S3 as a multipart upload.

The file is split into fixed-size parts that are uploaded one after
another and committed as a single object. The first failure aborts
the upload so no orphaned parts are left behind.

Usage:
    from s3_multipart import UploadOrchestrator, UploadConfig

    async with UploadOrchestrator(config=UploadConfig(chunk_size=15 * MIB)) as uploader:
        result = await uploader.upload(path, "my-bucket", "backups/big.tar")

    if not result.success:
        print(result.error.describe())
"""
__version__ = "0.1.0"

from .errors import (
    AbortError,
    CompletionError,
    ConfigError,
    PartUploadError,
    SessionError,
    SourceReadError,
    UploadCancelledError,
    UploaderError,
)
from .models import (
    MIB,
    CompletionManifest,
    PartResult,
    UploadConfig,
    UploadResult,
    UploadSession,
    UploadState,
    UploadStatus,
)
from .orchestrator import UploadOrchestrator
from .services import PartSource, S3StorageService

__all__ = [
    # Main
    "UploadOrchestrator",
    # Models
    "MIB",
    "CompletionManifest",
    "PartResult",
    "UploadConfig",
    "UploadResult",
    "UploadSession",
    "UploadState",
    "UploadStatus",
    # Errors
    "UploaderError",
    "ConfigError",
    "SourceReadError",
    "SessionError",
    "PartUploadError",
    "CompletionError",
    "AbortError",
    "UploadCancelledError",
    # Services
    "PartSource",
    "S3StorageService",
]

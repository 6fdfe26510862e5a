"""Services for multipart upload."""
from .part_source import PartSource
from .storage import S3StorageService, build_s3_client

__all__ = [
    "PartSource",
    "S3StorageService",
    "build_s3_client",
]

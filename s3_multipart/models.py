"""
Models for multipart upload.

Immutable dataclasses following Single Responsibility Principle.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from .errors import ConfigError, UploaderError

MIB = 1024 * 1024
DEFAULT_CHUNK_SIZE = 15 * MIB
MINIMUM_CHUNK_SIZE = 5 * MIB


class UploadState(Enum):
    """Lifecycle state of one multipart upload run."""
    IDLE = "idle"
    SESSION_OPEN = "session_open"
    PARTS_COMPLETE = "parts_complete"
    ABORTING = "aborting"
    ABORTED = "aborted"
    DONE = "done"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (UploadState.ABORTED, UploadState.DONE, UploadState.FAILED)

    def can_move_to(self, other: "UploadState") -> bool:
        return other in _TRANSITIONS[self]


_TRANSITIONS: Dict[UploadState, FrozenSet[UploadState]] = {
    UploadState.IDLE: frozenset({UploadState.SESSION_OPEN, UploadState.FAILED}),
    UploadState.SESSION_OPEN: frozenset({UploadState.PARTS_COMPLETE, UploadState.ABORTING}),
    UploadState.PARTS_COMPLETE: frozenset(
        {UploadState.DONE, UploadState.FAILED, UploadState.ABORTING}
    ),
    # FAILED after a completion failure still has an open session to abort.
    # ABORTING -> FAILED when the abort call itself is cancelled.
    UploadState.ABORTING: frozenset({UploadState.ABORTED, UploadState.FAILED}),
    UploadState.ABORTED: frozenset(),
    UploadState.DONE: frozenset(),
    UploadState.FAILED: frozenset({UploadState.ABORTING}),
}


@dataclass(frozen=True)
class UploadSession:
    """An in-progress multipart upload issued by the storage service."""
    session_id: str
    bucket: str
    key: str
    chunk_size: int


@dataclass(frozen=True)
class PartResult:
    """What outlives an uploaded part: its number, ETag and size."""
    part_number: int
    etag: str
    size: int = 0

    def __post_init__(self):
        if self.part_number < 1:
            raise ValueError("part_number must be at least 1")


class CompletionManifest:
    """
    Ordered (part_number, etag) list submitted to finalize a session.

    Parts are sorted on construction. Duplicated or missing part
    numbers are rejected, so a manifest always covers 1..N.
    """

    def __init__(self, parts: Iterable[PartResult]):
        ordered = sorted(parts, key=lambda p: p.part_number)
        for expected, part in enumerate(ordered, start=1):
            if part.part_number != expected:
                raise ValueError(
                    f"manifest is not contiguous: expected part {expected}, "
                    f"got part {part.part_number}"
                )
        self._parts: Tuple[PartResult, ...] = tuple(ordered)

    @property
    def parts(self) -> Tuple[PartResult, ...]:
        return self._parts

    @property
    def part_numbers(self) -> List[int]:
        return [p.part_number for p in self._parts]

    @property
    def total_bytes(self) -> int:
        return sum(p.size for p in self._parts)

    def __len__(self) -> int:
        return len(self._parts)

    def __iter__(self):
        return iter(self._parts)

    def to_request(self) -> Dict[str, list]:
        """Payload for the CompleteMultipartUpload call."""
        return {
            "Parts": [
                {"ETag": p.etag, "PartNumber": p.part_number}
                for p in self._parts
            ]
        }


@dataclass(frozen=True)
class PartLoopOutcome:
    """Result of the part loop: uploaded parts, or the failure that stopped it."""
    parts: Tuple[PartResult, ...] = ()
    error: Optional[UploaderError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, parts: Iterable[PartResult]) -> "PartLoopOutcome":
        return cls(parts=tuple(parts))

    @classmethod
    def failure(cls, parts: Iterable[PartResult], error: UploaderError) -> "PartLoopOutcome":
        return cls(parts=tuple(parts), error=error)


@dataclass(frozen=True)
class CompleteResult:
    """Acknowledgement of a completed multipart upload."""
    location: Optional[str] = None
    etag: Optional[str] = None


class UploadStatus(Enum):
    """Upload operation status."""
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"  # Failed without abort, session may be left open


@dataclass(frozen=True)
class UploadResult:
    """Immutable result of an upload run."""
    bucket: str
    key: str
    status: UploadStatus = UploadStatus.COMPLETED
    session_id: Optional[str] = None
    parts: int = 0
    bytes_uploaded: int = 0
    location: Optional[str] = None
    etag: Optional[str] = None
    error: Optional[UploaderError] = None
    abort_error: Optional[UploaderError] = None

    @property
    def success(self) -> bool:
        return self.status == UploadStatus.COMPLETED

    @property
    def phase(self) -> Optional[str]:
        """Phase that failed, if any."""
        return self.error.phase if self.error else None

    @classmethod
    def ok(
        cls,
        session: UploadSession,
        manifest: CompletionManifest,
        completed: Optional[CompleteResult] = None,
    ):
        completed = completed or CompleteResult()
        return cls(
            bucket=session.bucket,
            key=session.key,
            status=UploadStatus.COMPLETED,
            session_id=session.session_id,
            parts=len(manifest),
            bytes_uploaded=manifest.total_bytes,
            location=completed.location,
            etag=completed.etag,
        )

    @classmethod
    def aborted(
        cls,
        session: UploadSession,
        error: UploaderError,
        abort_error: Optional[UploaderError] = None,
        parts: Iterable[PartResult] = (),
    ):
        parts = tuple(parts)
        return cls(
            bucket=session.bucket,
            key=session.key,
            status=UploadStatus.ABORTED,
            session_id=session.session_id,
            parts=len(parts),
            bytes_uploaded=sum(p.size for p in parts),
            error=error,
            abort_error=abort_error,
        )

    @classmethod
    def fail(
        cls,
        bucket: str,
        key: str,
        error: UploaderError,
        session_id: Optional[str] = None,
        parts: Iterable[PartResult] = (),
    ):
        parts = tuple(parts)
        return cls(
            bucket=bucket,
            key=key,
            status=UploadStatus.FAILED,
            session_id=session_id,
            parts=len(parts),
            bytes_uploaded=sum(p.size for p in parts),
            error=error,
        )


@dataclass(frozen=True)
class UploadConfig:
    """Immutable configuration for upload operations."""
    chunk_size: int = DEFAULT_CHUNK_SIZE
    min_chunk_size: int = MINIMUM_CHUNK_SIZE
    allow_empty_source: bool = False
    abort_on_complete_failure: bool = False
    content_type: Optional[str] = None
    # (name, value) pairs, sent as x-amz-meta-* headers
    metadata: Tuple[Tuple[str, str], ...] = ()

    @property
    def metadata_dict(self) -> Dict[str, str]:
        return dict(self.metadata)

    def validate(self) -> "UploadConfig":
        """Check the chunk size floor. Returns self for chaining."""
        if self.chunk_size <= 0:
            raise ConfigError(f"chunk size must be positive, got {self.chunk_size}")
        if self.chunk_size < self.min_chunk_size:
            raise ConfigError(
                f"chunk size {self.chunk_size} is below the minimum of "
                f"{self.min_chunk_size} bytes"
            )
        return self

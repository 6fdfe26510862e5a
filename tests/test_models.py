"""Tests for multipart upload models."""
import pytest

from s3_multipart.errors import CompletionError, ConfigError, PartUploadError
from s3_multipart.models import (
    DEFAULT_CHUNK_SIZE,
    MIB,
    MINIMUM_CHUNK_SIZE,
    CompleteResult,
    CompletionManifest,
    PartLoopOutcome,
    PartResult,
    UploadConfig,
    UploadResult,
    UploadSession,
    UploadState,
    UploadStatus,
)


SESSION = UploadSession(session_id="upload-1", bucket="bucket", key="big.bin", chunk_size=15 * MIB)


class TestPartResult:
    def test_part_number_starts_at_one(self):
        with pytest.raises(ValueError):
            PartResult(part_number=0, etag='"abc"')

    def test_immutable(self):
        part = PartResult(1, '"abc"', 10)
        with pytest.raises(Exception):
            part.etag = "xyz"


class TestCompletionManifest:
    def test_sorts_by_part_number(self):
        manifest = CompletionManifest([
            PartResult(3, '"c"', 2),
            PartResult(1, '"a"', 5),
            PartResult(2, '"b"', 5),
        ])
        assert manifest.part_numbers == [1, 2, 3]
        assert manifest.total_bytes == 12
        assert len(manifest) == 3

    def test_to_request_payload(self):
        manifest = CompletionManifest([PartResult(2, '"b"'), PartResult(1, '"a"')])
        assert manifest.to_request() == {
            "Parts": [
                {"ETag": '"a"', "PartNumber": 1},
                {"ETag": '"b"', "PartNumber": 2},
            ]
        }

    def test_rejects_gap(self):
        with pytest.raises(ValueError, match="expected part 2"):
            CompletionManifest([PartResult(1, '"a"'), PartResult(3, '"c"')])

    def test_rejects_duplicate(self):
        with pytest.raises(ValueError):
            CompletionManifest([PartResult(1, '"a"'), PartResult(1, '"a2"')])

    def test_rejects_missing_first_part(self):
        with pytest.raises(ValueError):
            CompletionManifest([PartResult(2, '"b"')])

    def test_empty_manifest(self):
        manifest = CompletionManifest([])
        assert len(manifest) == 0
        assert manifest.to_request() == {"Parts": []}


class TestUploadState:
    def test_happy_path_transitions(self):
        assert UploadState.IDLE.can_move_to(UploadState.SESSION_OPEN)
        assert UploadState.SESSION_OPEN.can_move_to(UploadState.PARTS_COMPLETE)
        assert UploadState.PARTS_COMPLETE.can_move_to(UploadState.DONE)

    def test_failure_transitions(self):
        assert UploadState.SESSION_OPEN.can_move_to(UploadState.ABORTING)
        assert UploadState.ABORTING.can_move_to(UploadState.ABORTED)
        assert UploadState.PARTS_COMPLETE.can_move_to(UploadState.FAILED)

    def test_no_shortcuts(self):
        assert not UploadState.IDLE.can_move_to(UploadState.DONE)
        assert not UploadState.SESSION_OPEN.can_move_to(UploadState.DONE)
        assert not UploadState.SESSION_OPEN.can_move_to(UploadState.ABORTED)

    def test_terminal_states(self):
        for state in (UploadState.DONE, UploadState.ABORTED, UploadState.FAILED):
            assert state.terminal
        for state in (UploadState.DONE, UploadState.ABORTED):
            assert not any(state.can_move_to(other) for other in UploadState)

    def test_failed_session_can_still_be_aborted(self):
        assert UploadState.FAILED.can_move_to(UploadState.ABORTING)
        assert not UploadState.FAILED.can_move_to(UploadState.DONE)

    def test_interrupted_abort_fails(self):
        assert UploadState.ABORTING.can_move_to(UploadState.FAILED)


class TestPartLoopOutcome:
    def test_success(self):
        outcome = PartLoopOutcome.success([PartResult(1, '"a"')])
        assert outcome.ok is True
        assert outcome.error is None

    def test_failure_keeps_parts_and_error(self):
        error = PartUploadError(2)
        outcome = PartLoopOutcome.failure([PartResult(1, '"a"')], error)
        assert outcome.ok is False
        assert outcome.error is error
        assert len(outcome.parts) == 1


class TestUploadResult:
    def test_ok_result(self):
        manifest = CompletionManifest([PartResult(1, '"a"', 7), PartResult(2, '"b"', 3)])
        result = UploadResult.ok(SESSION, manifest, CompleteResult(location="loc", etag='"x-2"'))
        assert result.success is True
        assert result.status == UploadStatus.COMPLETED
        assert result.parts == 2
        assert result.bytes_uploaded == 10
        assert result.etag == '"x-2"'
        assert result.phase is None

    def test_aborted_result(self):
        error = PartUploadError(2, RuntimeError("boom"))
        result = UploadResult.aborted(SESSION, error)
        assert result.success is False
        assert result.status == UploadStatus.ABORTED
        assert result.session_id == "upload-1"
        assert result.phase == "upload"

    def test_fail_result(self):
        result = UploadResult.fail("bucket", "key", CompletionError("nope"), session_id="upload-1")
        assert result.status == UploadStatus.FAILED
        assert result.phase == "complete"
        assert result.session_id == "upload-1"


class TestUploadConfig:
    def test_default_config(self):
        config = UploadConfig()
        assert config.chunk_size == DEFAULT_CHUNK_SIZE == 15 * MIB
        assert config.min_chunk_size == MINIMUM_CHUNK_SIZE == 5 * MIB
        assert config.allow_empty_source is False
        assert config.abort_on_complete_failure is False

    def test_validate_accepts_minimum(self):
        config = UploadConfig(chunk_size=MINIMUM_CHUNK_SIZE)
        assert config.validate() is config

    def test_validate_rejects_below_minimum(self):
        with pytest.raises(ConfigError, match="below the minimum"):
            UploadConfig(chunk_size=MINIMUM_CHUNK_SIZE - 1).validate()

    def test_validate_rejects_non_positive(self):
        with pytest.raises(ConfigError):
            UploadConfig(chunk_size=0, min_chunk_size=0).validate()

    def test_config_is_hashable_with_metadata(self):
        config = UploadConfig(metadata=(("owner", "ops"), ("source", "nightly")))
        assert hash(config) == hash(UploadConfig(metadata=(("owner", "ops"), ("source", "nightly"))))
        assert config.metadata_dict == {"owner": "ops", "source": "nightly"}
        assert UploadConfig().metadata_dict == {}

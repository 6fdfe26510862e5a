"""Core orchestrator - drives one multipart upload from initiation to completion or abort."""
import asyncio
import logging
from pathlib import Path
from typing import Callable, List, Optional

from ..errors import (
    AbortError,
    CompletionError,
    ConfigError,
    PartUploadError,
    SessionError,
    SourceReadError,
    UploadCancelledError,
)
from ..models import (
    CompletionManifest,
    PartLoopOutcome,
    PartResult,
    UploadConfig,
    UploadResult,
    UploadSession,
    UploadState,
)
from ..protocols import IStorageClient
from ..services.part_source import PartSource
from ..services.storage import S3StorageService
from ..utils.events import (
    PART_UPLOADED,
    SESSION_CREATED,
    STATE_CHANGED,
    UPLOAD_ABORTED,
    UPLOAD_COMPLETE,
    EventEmitter,
)

logger = logging.getLogger(__name__)


class UploadOrchestrator:
    """
    Orchestrates a multipart upload using an injected storage client.

    One run at a time: initiate a session, upload parts in order, then
    complete the session or abort it on the first failure. Parts are
    uploaded strictly one after another.

    Usage:
        async with UploadOrchestrator(config=UploadConfig()) as orchestrator:
            orchestrator.on(PART_UPLOADED, print)
            result = await orchestrator.upload(path, "bucket", "key")

        # With an explicit storage client
        orchestrator = UploadOrchestrator(storage=S3StorageService(client))
    """

    def __init__(
        self,
        storage: Optional[IStorageClient] = None,
        config: Optional[UploadConfig] = None,
        events: Optional[EventEmitter] = None,
        profile: Optional[str] = None,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
    ):
        """
        Initialize orchestrator with dependencies.

        Args:
            storage: Storage client; built from profile/region/endpoint_url
                on __aenter__ when omitted
            config: Upload configuration
            events: Event emitter for progress notifications
        """
        self._storage = storage
        self._config = config or UploadConfig()
        self._events = events or EventEmitter()
        self._client_settings = dict(profile=profile, region=region, endpoint_url=endpoint_url)
        self._owns_storage = False

        self._state = UploadState.IDLE
        self._cancel_requested = False

    async def __aenter__(self):
        """Build the storage client if none was injected."""
        if self._storage is None:
            self._storage = S3StorageService.from_settings(**self._client_settings)
            self._owns_storage = True
        return self

    async def __aexit__(self, *args):
        """Cleanup resources."""
        if self._owns_storage:
            close = getattr(self._storage, "close", None)
            if callable(close):
                close()
            self._storage = None
            self._owns_storage = False

    @property
    def state(self) -> UploadState:
        return self._state

    @property
    def config(self) -> UploadConfig:
        return self._config

    @property
    def events(self) -> EventEmitter:
        return self._events

    def on(self, event_name: str, callback: Callable) -> None:
        """Subscribe to an upload event."""
        self._events.on(event_name, callback)

    def cancel(self) -> None:
        """
        Request cancellation.

        Takes effect before the next part starts; a part already in
        flight is allowed to finish.
        """
        self._cancel_requested = True

    async def upload(self, path: Path, bucket: str, key: str) -> UploadResult:
        """
        Upload one file end to end.

        Never raises for upload failures: the returned result carries the
        failing phase and error instead.
        """
        self._start_run()
        path = Path(path)

        try:
            self._check_inputs(bucket, key)
            with PartSource.open(path, self._config.chunk_size) as source:
                if source.size == 0 and not self._config.allow_empty_source:
                    raise ConfigError(f"source file is empty: {path}")

                session = await self.initiate(bucket, key)
                try:
                    outcome = await self.run_part_loop(session, source)
                    return await self.finalize(session, outcome)
                except asyncio.CancelledError:
                    await self._settle_cancelled(session)
                    raise
        except (ConfigError, SourceReadError, SessionError) as exc:
            if self._state == UploadState.IDLE:
                await self._transition(UploadState.FAILED)
            logger.error(f"Upload of {path} failed: {exc.describe()}")
            return UploadResult.fail(bucket, key, exc)

    async def initiate(self, bucket: str, key: str) -> UploadSession:
        """
        Request a new upload session.

        Raises:
            SessionError: If the storage service rejects the request.
        """
        self._require_storage()
        try:
            session_id = await self._storage.create_session(
                bucket,
                key,
                content_type=self._config.content_type,
                metadata=self._config.metadata_dict or None,
            )
        except Exception as exc:
            await self._transition(UploadState.FAILED)
            if isinstance(exc, SessionError):
                raise
            raise SessionError(f"failed to create multipart upload: {exc}", exc) from exc

        session = UploadSession(
            session_id=session_id,
            bucket=bucket,
            key=key,
            chunk_size=self._config.chunk_size,
        )
        logger.info(f"Upload ID: {session_id}")
        await self._transition(UploadState.SESSION_OPEN)
        await self._events.emit(SESSION_CREATED, session)
        return session

    async def run_part_loop(self, session: UploadSession, source: PartSource) -> PartLoopOutcome:
        """
        Upload the source chunk by chunk with part numbers 1, 2, 3...

        Stops at the first read or upload failure, or at a cancellation
        request, without attempting any further part.
        """
        self._require_storage()
        parts: List[PartResult] = []
        expected_parts = source.expected_parts(session.chunk_size)
        part_number = 1

        while True:
            if self._cancel_requested:
                error = UploadCancelledError(f"upload cancelled before part {part_number}")
                logger.warning(str(error))
                return PartLoopOutcome.failure(parts, error)

            try:
                payload = await asyncio.to_thread(source.next, session.chunk_size)
            except SourceReadError as exc:
                logger.error(f"Reading part {part_number} failed: {exc}")
                return PartLoopOutcome.failure(parts, exc)

            if payload is None:
                break

            try:
                etag = await self._storage.upload_part(
                    session.bucket,
                    session.key,
                    session.session_id,
                    part_number,
                    payload,
                )
            except Exception as exc:
                error = exc if isinstance(exc, PartUploadError) else PartUploadError(part_number, exc)
                logger.error(str(error))
                return PartLoopOutcome.failure(parts, error)

            part = PartResult(part_number=part_number, etag=etag, size=len(payload))
            parts.append(part)
            logger.info(f"Uploaded part {part_number}, ETag: {etag}")
            await self._events.emit(PART_UPLOADED, part, expected_parts)
            part_number += 1

        await self._transition(UploadState.PARTS_COMPLETE)
        return PartLoopOutcome.success(parts)

    async def finalize(self, session: UploadSession, outcome: PartLoopOutcome) -> UploadResult:
        """Complete the session on success, abort it on failure."""
        if outcome.ok:
            return await self._complete(session, outcome.parts)
        return await self._abort_after_failure(session, outcome)

    async def abort(self, session: UploadSession) -> Optional[AbortError]:
        """
        Best-effort abort of an open session.

        Returns the abort failure, if any, instead of raising it. Aborting
        an already aborted or completed session does nothing. A session
        left open by a failed completion (state FAILED) is aborted.
        """
        if self._state == UploadState.ABORTED:
            logger.debug(f"Upload {session.session_id} already aborted")
            return None
        if self._state == UploadState.DONE:
            logger.warning(f"Upload {session.session_id} already completed, nothing to abort")
            return None

        tracked = self._state == UploadState.ABORTING or self._state.can_move_to(UploadState.ABORTING)
        if tracked and self._state != UploadState.ABORTING:
            await self._transition(UploadState.ABORTING)

        abort_error = None
        try:
            await self._storage.abort_session(session.bucket, session.key, session.session_id)
            logger.info(f"Aborted upload {session.session_id}")
        except asyncio.CancelledError:
            if tracked:
                await self._transition(UploadState.FAILED)
            logger.error(f"Abort of upload {session.session_id} interrupted, session may be left open")
            raise
        except Exception as exc:
            abort_error = exc if isinstance(exc, AbortError) else AbortError(
                f"failed to abort multipart upload: {exc}", exc
            )
            logger.warning(f"Abort of upload {session.session_id} failed: {abort_error}")

        if tracked:
            await self._transition(UploadState.ABORTED)
        return abort_error

    async def abort_upload(self, bucket: str, key: str, session_id: str) -> None:
        """
        Abort a session left open by an earlier run, by id.

        Raises:
            AbortError: If the storage service rejects the abort.
        """
        self._require_storage()
        try:
            await self._storage.abort_session(bucket, key, session_id)
        except AbortError:
            raise
        except Exception as exc:
            raise AbortError(f"failed to abort multipart upload: {exc}", exc) from exc
        logger.info(f"Aborted upload {session_id}")

    async def _complete(self, session: UploadSession, parts) -> UploadResult:
        try:
            manifest = CompletionManifest(parts)
            completed = await self._storage.complete_session(
                session.bucket, session.key, session.session_id, manifest
            )
        except Exception as exc:
            error = exc if isinstance(exc, CompletionError) else CompletionError(
                f"failed to complete multipart upload: {exc}", exc
            )
            if self._config.abort_on_complete_failure:
                return await self._abort_after_failure(session, PartLoopOutcome.failure(parts, error))

            await self._transition(UploadState.FAILED)
            logger.error(
                f"Completion failed, upload {session.session_id} left open "
                f"with {len(parts)} parts: {error}"
            )
            return UploadResult.fail(
                session.bucket, session.key, error, session_id=session.session_id, parts=parts
            )

        await self._transition(UploadState.DONE)
        result = UploadResult.ok(session, manifest, completed)
        logger.info(f"Upload completed: s3://{session.bucket}/{session.key} ({len(manifest)} parts)")
        await self._events.emit(UPLOAD_COMPLETE, result)
        return result

    async def _abort_after_failure(self, session: UploadSession, outcome: PartLoopOutcome) -> UploadResult:
        abort_error = await self.abort(session)
        result = UploadResult.aborted(session, outcome.error, abort_error, parts=outcome.parts)
        await self._events.emit(UPLOAD_ABORTED, result)
        return result

    async def _settle_cancelled(self, session: UploadSession) -> None:
        """Leave the orchestrator in a terminal state after task cancellation."""
        if self._state == UploadState.SESSION_OPEN:
            error = UploadCancelledError(f"upload task cancelled, aborting {session.session_id}")
            await self._abort_after_failure(session, PartLoopOutcome.failure((), error))
        elif self._state == UploadState.PARTS_COMPLETE:
            # completion may or may not have reached the service
            await self._transition(UploadState.FAILED)
            logger.error(
                f"Upload task cancelled during completion, upload {session.session_id} left open"
            )

    async def _transition(self, new_state: UploadState) -> None:
        if not self._state.can_move_to(new_state):
            raise RuntimeError(f"illegal upload state change: {self._state.value} -> {new_state.value}")
        old_state, self._state = self._state, new_state
        logger.debug(f"Upload state {old_state.value} -> {new_state.value}")
        await self._events.emit(STATE_CHANGED, old_state, new_state)

    def _start_run(self) -> None:
        if self._state != UploadState.IDLE and not self._state.terminal:
            raise RuntimeError("an upload is already running on this orchestrator")
        self._state = UploadState.IDLE
        self._cancel_requested = False

    def _check_inputs(self, bucket: str, key: str) -> None:
        if not bucket:
            raise ConfigError("bucket must be provided")
        if not key:
            raise ConfigError("key must be provided")
        self._config.validate()

    def _require_storage(self) -> None:
        if self._storage is None:
            raise RuntimeError("storage client not initialized, use 'async with' or pass storage")

"""Application service wiring the analysis pipeline per dashboard session."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Protocol

from pathtrack.config import Settings
from pathtrack.core.assembler import AssemblySummary, ResultAssembler
from pathtrack.core.errors import PathTrackError
from pathtrack.core.highlight import HighlightStateAdapter, HighlightSynchronizer
from pathtrack.core.resolver import AccessionResolver
from pathtrack.core.schema import JobStatusPayload, SimilarityQuery
from pathtrack.core.timelapse import TimeLapsePlayer
from pathtrack.domain import Coordinates, Job, JobStatus, ResolvedPoint, SimilarityResult, TimeWindowState
from pathtrack.infrastructure import (
    CredentialStore,
    PathTrackClient,
    ReferenceCache,
    configure_api_key,
    get_credential_store,
)
from pathtrack.workers.job_tracker import JobLifecycleController

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[object]]


class AnalysisApi(Protocol):
    """Subset of :class:`PathTrackClient` the sessions depend on."""

    async def upload_sequence(self, filename: str, content: bytes, model: str = ...) -> str: ...

    async def get_job_status(self, job_id: str) -> JobStatusPayload: ...

    async def get_similar_sequences(
        self, job_id: str, query: SimilarityQuery | None = None
    ) -> list[SimilarityResult]: ...

    async def get_umap_projection(self, job_id: str) -> Coordinates | None: ...

    async def fetch_reference_dataset(self, model: str = ...) -> list[dict[str, Any]]: ...


class PointView(Protocol):
    """Contract for visual components fed by a session."""

    def render(self, points: list[ResolvedPoint]) -> None: ...

    def apply_highlight(self, sequence_id: str, on: bool) -> None: ...


class AnalysisSession:
    """One dashboard session: exactly one active job and its derived views."""

    def __init__(
        self,
        session_id: str,
        client: AnalysisApi,
        cache: ReferenceCache,
        settings: Settings,
        *,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.session_id = session_id
        self._client = client
        self._cache = cache
        self._settings = settings
        self._sleep = sleep

        self._views: list[PointView] = []
        self._assembler = ResultAssembler(
            AccessionResolver(cache, allow_contains=settings.enable_contains_match)
        )
        self._player = TimeLapsePlayer(
            interval=settings.playback_interval,
            sleep=sleep,
            on_change=self._publish,
        )
        self._highlights = HighlightSynchronizer()
        self._highlight_state = HighlightStateAdapter()
        self._highlights.subscribe(self._highlight_state)

        self._job: Job | None = None
        self._controller: JobLifecycleController | None = None
        self._points: list[ResolvedPoint] = []
        self._summary: AssemblySummary | None = None
        self._error: str | None = None
        self._submit_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # accessors
    # ------------------------------------------------------------------
    @property
    def job(self) -> Job | None:
        return self._job

    @property
    def player(self) -> TimeLapsePlayer:
        return self._player

    @property
    def highlights(self) -> HighlightSynchronizer:
        return self._highlights

    @property
    def points(self) -> list[ResolvedPoint]:
        return list(self._points)

    @property
    def summary(self) -> AssemblySummary | None:
        return self._summary

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def is_polling(self) -> bool:
        return self._controller is not None and self._controller.is_polling

    def visible_points(self) -> list[ResolvedPoint]:
        return self._player.get_visible()

    # ------------------------------------------------------------------
    # job orchestration
    # ------------------------------------------------------------------
    async def submit(self, filename: str, content: bytes, model: str | None = None) -> Job:
        """Upload a sequence and start polling; any previous job is discarded.

        Overlapping submissions are serialised, so the last one to upload
        replaces every earlier job and only its poller keeps running.
        """

        model = model or self._settings.model
        async with self._submit_lock:
            self._discard_job()
            job_id = await self._client.upload_sequence(filename, content, model)

            job = Job(job_id=job_id, model=model, filename=filename)
            controller = JobLifecycleController(
                job,
                self._client,
                on_complete=self._handle_completion,
                poll_interval=self._settings.poll_interval,
                max_attempts=self._settings.poll_max_attempts,
                sleep=self._sleep,
            )
            self._job = job
            self._controller = controller
            task = controller.start()

        task.add_done_callback(lambda done: self._record_outcome(controller, done))
        return job

    async def wait(self) -> Job:
        if self._controller is None:
            raise LookupError(f"session {self.session_id} has no submitted job")
        return await self._controller.wait()

    def cancel(self) -> None:
        if self._controller is not None:
            self._controller.cancel()

    def _discard_job(self) -> None:
        self.cancel()
        self._controller = None
        self._job = None
        self._points = []
        self._summary = None
        self._error = None
        self._highlights.reset()
        self._player.reset()
        self._player.set_points(())

    def reset(self) -> None:
        self._discard_job()
        logger.info("Session %s reset", self.session_id)

    def _record_outcome(self, controller: JobLifecycleController, task: asyncio.Task[Job]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if controller is not self._controller:
            if exc is not None:
                logger.info("Session %s dropped outcome of replaced job: %s", self.session_id, exc)
            return
        if exc is not None:
            self._error = str(exc)
            if isinstance(exc, PathTrackError):
                logger.error("Session %s job ended with %s: %s", self.session_id, type(exc).__name__, exc)
            else:
                logger.error("Session %s job crashed", self.session_id, exc_info=exc)

    async def _handle_completion(self, job: Job, payload: JobStatusPayload) -> None:
        await self._cache.ensure_loaded()
        query = SimilarityQuery(n_results=self._settings.n_results)
        results = await self._client.get_similar_sequences(job.job_id, query)
        coordinates = await self._client.get_umap_projection(job.job_id)
        if job is not self._job:
            return

        points = self._assembler.assemble(job, results, coordinates)
        self._points = points
        self._summary = self._assembler.summarize(points)
        self._player.set_points(points)

    async def retry_assembly(self) -> AssemblySummary:
        """Re-run assembly for a completed job whose results were never placed.

        Used after a reference-cache failure once the cache has been refreshed;
        the remote job is not resubmitted.
        """

        job = self._job
        if (
            job is None
            or job.status is not JobStatus.COMPLETED
            or job.terminal_result is None
            or self.is_polling
        ):
            raise LookupError(f"session {self.session_id} has no completed job to assemble")
        if self._summary is not None:
            return self._summary

        try:
            await self._handle_completion(job, JobStatusPayload.model_validate(job.terminal_result))
        except PathTrackError as exc:
            self._error = str(exc)
            logger.error("Session %s assembly retry failed: %s", self.session_id, exc)
            raise
        if job is not self._job or self._summary is None:
            raise LookupError(f"session {self.session_id} job was replaced during assembly")
        self._error = None
        logger.info("Session %s assembled job %s on retry", self.session_id, job.job_id)
        return self._summary

    # ------------------------------------------------------------------
    # filters, playback and highlighting
    # ------------------------------------------------------------------
    def set_similarity_threshold(self, threshold: float) -> None:
        self._player.set_similarity_threshold(threshold)

    def set_year(self, year: int | None) -> None:
        self._player.set_year(year)

    def play(self) -> None:
        self._player.play()

    def pause(self) -> None:
        self._player.pause()

    def reset_playback(self) -> None:
        self._player.reset()

    def highlight(self, sequence_id: str, on: bool = True) -> bool:
        return self._highlights.highlight(sequence_id, on)

    def highlighted(self) -> frozenset[str]:
        return self._highlight_state.active

    def attach_view(self, view: PointView) -> Callable[[], None]:
        """Render ``view`` now and after every filter change; returns a detach callable."""

        self._views.append(view)
        unsubscribe = self._highlights.subscribe(view)
        view.render(self.visible_points())

        def detach() -> None:
            unsubscribe()
            if view in self._views:
                self._views.remove(view)

        return detach

    def _publish(self, state: TimeWindowState) -> None:
        if not self._views:
            return
        visible = self._player.get_visible()
        for view in list(self._views):
            view.render(visible)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "job": self._job.to_dict() if self._job else None,
            "polling": self.is_polling,
            "error": self._error,
            "summary": self._summary.to_dict() if self._summary else None,
            "time_window": self._player.state.to_dict(),
        }


class SessionService:
    """Hands out analysis sessions that share one reference cache."""

    def __init__(
        self,
        client: AnalysisApi,
        settings: Settings,
        *,
        cache: ReferenceCache | None = None,
        credentials: CredentialStore | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._client = client
        self._credentials = credentials or get_credential_store()
        self._settings = settings
        self._sleep = sleep
        self._cache = cache or ReferenceCache(
            lambda: client.fetch_reference_dataset(settings.model),
            prefixes=settings.accession_prefixes,
        )
        self._sessions: dict[str, AnalysisSession] = {}

    @property
    def cache(self) -> ReferenceCache:
        return self._cache

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def credentials(self) -> CredentialStore:
        return self._credentials

    def get_session(self, session_id: str) -> AnalysisSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = AnalysisSession(session_id, self._client, self._cache, self._settings, sleep=self._sleep)
            self._sessions[session_id] = session
        return session

    def find_session(self, session_id: str) -> AnalysisSession | None:
        return self._sessions.get(session_id)

    def discard_session(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.reset()
        return True

    def list_sessions(self) -> list[dict[str, Any]]:
        return [session.to_dict() for session in self._sessions.values()]

    def reset(self) -> None:
        for session in self._sessions.values():
            session.reset()
        self._sessions.clear()

    async def aclose(self) -> None:
        self.reset()
        close = getattr(self._client, "aclose", None)
        if close is not None:
            await close()


_service: SessionService | None = None


def build_session_service(settings: Settings) -> SessionService:
    if settings.api_key:
        configure_api_key(settings.api_key)
    credentials = get_credential_store()
    client = PathTrackClient(credentials, api_base=settings.api_base, timeout=settings.timeout)
    return SessionService(client, settings, credentials=credentials)


def configure_session_service(service: SessionService) -> None:
    """Install the session service used by the HTTP routes."""

    global _service
    _service = service


def get_session_service() -> SessionService:
    """Return the process-wide session service, building it from the environment if needed."""

    global _service
    if _service is None:
        _service = build_session_service(Settings.from_env())
    return _service


def reset_session_state() -> None:
    """Reset every session (used in tests)."""

    if _service is not None:
        _service.reset()

"""Async client for the PathTrack sequence-analysis HTTP API."""
from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlparse

import httpx
from pydantic import ValidationError

from pathtrack.core.errors import AuthError, NetworkError
from pathtrack.core.schema import (
    JobStatusPayload,
    SequenceRecord,
    SimilarityQuery,
    UploadResponse,
    extract_projection,
    extract_records,
)
from pathtrack.domain import Coordinates, SimilarityResult

from .credentials import CredentialStore

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "http://localhost:8000/api/v1"
DEFAULT_MODEL = "DNABERT-S"


class PathTrackClient:
    """Client for the upload, job, similarity and reference endpoints."""

    def __init__(
        self,
        credentials: CredentialStore,
        *,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        parsed = urlparse(api_base)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("api_base must include scheme and host")

        self._credentials = credentials
        self._api_base = api_base.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    @property
    def credentials(self) -> CredentialStore:
        return self._credentials

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _headers(self) -> dict[str, str]:
        return {"X-API-Key": self._credentials.require(), "accept": "application/json"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self._api_base}{path}"
        headers = self._headers()
        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as exc:
            raise NetworkError(f"{method} {path} timed out") from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"{method} {path} failed: {exc}") from exc

        if response.status_code in (401, 403):
            self._credentials.discard()
            raise AuthError(f"API key rejected ({response.status_code})")
        if response.is_error:
            detail = response.text[:200]
            raise NetworkError(
                f"{method} {path} returned {response.status_code}: {detail}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise NetworkError(f"{method} {path} returned a non-JSON body") from exc

    @staticmethod
    def _to_results(records: list[dict[str, Any]]) -> list[SimilarityResult]:
        results: list[SimilarityResult] = []
        for rank, raw in enumerate(records, start=1):
            try:
                record = SequenceRecord.model_validate(raw)
            except ValidationError:
                logger.warning("Skipping malformed similarity record at rank %d", rank)
                continue
            results.append(record.to_result(rank))
        return results

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def upload_sequence(self, filename: str, content: bytes, model: str = DEFAULT_MODEL) -> str:
        payload = await self._request(
            "POST",
            "/pathtrack/sequence/embed",
            files={"file": (filename, content, "application/octet-stream")},
            data={"model": model},
        )
        try:
            job_id = UploadResponse.model_validate(payload).job_id
        except ValidationError as exc:
            raise NetworkError("upload response did not include a job_id") from exc
        logger.info("Uploaded %s with model %s as job %s", filename, model, job_id)
        return job_id

    async def get_job_status(self, job_id: str) -> JobStatusPayload:
        payload = await self._request("GET", f"/pathtrack/jobs/{job_id}")
        if not isinstance(payload, dict):
            raise NetworkError(f"unexpected job status payload for {job_id}")
        return JobStatusPayload.model_validate(payload)

    async def get_similar_sequences(
        self,
        job_id: str,
        query: SimilarityQuery | None = None,
    ) -> list[SimilarityResult]:
        query = query or SimilarityQuery()
        payload = await self._request(
            "POST",
            "/pathtrack/sequence/similar",
            params={"job_id": job_id},
            json=query.model_dump(),
        )
        return self._to_results(extract_records(payload))

    async def get_umap_projection(self, job_id: str) -> Coordinates | None:
        payload = await self._request(
            "POST",
            "/pathtrack/sequence/umap",
            params={"job_id": job_id},
            json={},
        )
        coordinates = extract_projection(payload)
        if coordinates is None:
            logger.warning("Projection for job %s carried no coordinates", job_id)
        return coordinates

    async def fetch_reference_dataset(self, model: str = DEFAULT_MODEL) -> list[dict[str, Any]]:
        payload = await self._request(
            "GET",
            "/pathtrack/umap/all",
            params={"embedding_model": model},
        )
        return extract_records(payload)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["DEFAULT_API_BASE", "DEFAULT_MODEL", "PathTrackClient"]

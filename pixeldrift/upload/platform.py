"""Upload coordinator — ships run artifacts and the run manifest to the reporting platform."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import httpx

from pixeldrift.models.config import PlatformConfig
from pixeldrift.models.result import ComparisonStatus, RunSummary

logger = logging.getLogger(__name__)

MEDIA_UPLOAD_CONCURRENCY = 10
UPLOAD_ATTEMPTS = 3
UPLOAD_BACKOFF_SECONDS = 1.0


@dataclass
class Artifact:
    kind: str  # current, baseline, difference
    target_key: str
    path: Path

    @property
    def name(self) -> str:
        return f"{self.kind}/{self.path.name}"


@dataclass
class UploadReport:
    uploaded: int = 0
    failed: list[str] = field(default_factory=list)
    report_id: Optional[str] = None
    manifest_sent: bool = False

    @property
    def incomplete(self) -> bool:
        return bool(self.failed) or not self.manifest_sent


def collect_artifacts(summary: RunSummary) -> list[Artifact]:
    """Current image of every captured shot, new baselines, and diffs of failures."""
    artifacts = []
    for r in summary.results:
        if r.current_image_path:
            artifacts.append(Artifact("current", r.target_key, Path(r.current_image_path)))
        if r.status == ComparisonStatus.NEW_BASELINE_CREATED and r.baseline_image_path:
            artifacts.append(Artifact("baseline", r.target_key, Path(r.baseline_image_path)))
        if r.status == ComparisonStatus.FAILED and r.diff_image_path:
            artifacts.append(Artifact("difference", r.target_key, Path(r.diff_image_path)))
    return artifacts


def build_manifest(summary: RunSummary, platform: PlatformConfig) -> dict:
    return {
        "project_id": platform.project_id,
        "build": {
            "ci_build_id": platform.ci_build_id,
            "ci_build_number": platform.ci_build_number,
            "repository": platform.repository,
            "branch": platform.commit_ref_name,
            "commit": platform.commit_hash,
        },
        "summary": summary.model_dump(mode="json"),
    }


class PlatformClient:
    """Thin HTTP client for the reporting platform."""

    def __init__(self, platform: PlatformConfig, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None):
        self.platform = platform
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def build_url(self) -> str:
        base = self.platform.api_url.rstrip("/")
        return f"{base}/projects/{self.platform.project_id}/builds/{self.platform.ci_build_id}"

    async def __aenter__(self) -> "PlatformClient":
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers={"Authorization": f"Bearer {self.platform.api_key}"},
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _require_client(self) -> httpx.AsyncClient:
        if not self._client:
            raise RuntimeError("Client not initialized. Use async with.")
        return self._client

    async def upload_artifact(self, artifact: Artifact) -> None:
        client = self._require_client()
        data = await asyncio.to_thread(artifact.path.read_bytes)
        resp = await client.put(
            f"{self.build_url}/artifacts/{artifact.name}",
            content=data,
            headers={"Content-Type": "image/png"},
        )
        resp.raise_for_status()

    async def send_manifest(self, manifest: dict) -> Optional[str]:
        client = self._require_client()
        resp = await client.post(f"{self.build_url}/manifest", json=manifest)
        resp.raise_for_status()
        if not resp.content:
            return None
        try:
            body = resp.json()
        except ValueError:
            logger.warning("Manifest response is not JSON; no report id recorded")
            return None
        return body.get("report_id") if isinstance(body, dict) else None


class UploadCoordinator:
    """Uploads artifacts with bounded concurrency, then the manifest.

    Upload failures are retried with exponential backoff and end up as
    warnings; they never change the run verdict.
    """

    def __init__(
        self,
        client: PlatformClient,
        concurrency: int = MEDIA_UPLOAD_CONCURRENCY,
        attempts: int = UPLOAD_ATTEMPTS,
        backoff_seconds: float = UPLOAD_BACKOFF_SECONDS,
    ):
        self.client = client
        self.concurrency = concurrency
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds

    async def upload(self, summary: RunSummary, platform: PlatformConfig) -> UploadReport:
        artifacts = collect_artifacts(summary)
        report = UploadReport()
        semaphore = asyncio.Semaphore(self.concurrency)
        logger.info("Uploading %d artifacts (concurrency=%d)", len(artifacts), self.concurrency)

        async def _upload_one(artifact: Artifact) -> None:
            async with semaphore:
                if await self._with_retry(f"artifact {artifact.name}",
                                          lambda: self.client.upload_artifact(artifact)):
                    report.uploaded += 1
                else:
                    report.failed.append(artifact.name)

        await asyncio.gather(*(_upload_one(a) for a in artifacts))

        if report.failed:
            logger.warning("%d artifact upload(s) failed, manifest not sent; report incomplete",
                           len(report.failed))
            return report

        manifest = build_manifest(summary, platform)
        report_ids: list[Optional[str]] = []

        async def _send_manifest() -> None:
            report_ids.append(await self.client.send_manifest(manifest))

        if await self._with_retry("manifest", _send_manifest):
            report.manifest_sent = True
            report.report_id = report_ids[-1]
            logger.info("Report uploaded (id=%s)", report.report_id)
        else:
            logger.warning("Manifest upload failed; report incomplete")
        return report

    async def _with_retry(self, label: str, call) -> bool:
        for attempt in range(1, self.attempts + 1):
            try:
                await call()
                return True
            except (httpx.HTTPError, OSError, ValueError) as e:
                logger.warning("Upload of %s failed (attempt %d/%d): %s",
                               label, attempt, self.attempts, e)
                if attempt < self.attempts:
                    await asyncio.sleep(self.backoff_seconds * 2 ** (attempt - 1))
        return False

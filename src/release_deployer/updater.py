"""Update loop for the release deployer.

Each sweep visits every configured target in order:

1. Look up the latest GitHub release
2. Compare its id with the one the active pointer references
3. Download the tarball and signature
4. Verify the signature (unless explicitly disabled)
5. Deploy: allocate, extract, promote, retire

A failing target is logged and retried on the next sweep; nothing short of
a startup configuration error stops the loop.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from release_deployer.config import DeployerConfig, Target
from release_deployer.deploy.coordinator import deploy
from release_deployer.deploy.signature import require_valid_signature
from release_deployer.deploy.store import current_release_id, orphaned_release_ids
from release_deployer.errors import (
    AssetValidationError,
    ConfigError,
    DeployerError,
    ReleaseStoreError,
    SignatureError,
)
from release_deployer.github import GitHubReleaseClient
from release_deployer.logging import get_logger, target_context

log = get_logger("release_deployer.updater")


class OutcomeStatus(Enum):
    """Result of processing one target in one sweep."""

    UP_TO_DATE = "up_to_date"
    UPDATED = "updated"
    FAILED = "failed"


@dataclass
class TargetOutcome:
    """What happened to a target during a sweep."""

    target: str
    status: OutcomeStatus = OutcomeStatus.FAILED
    release_id: str | None = None
    previous_release_id: str | None = None
    error_type: str | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)
    started_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    duration_seconds: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "status": self.status.value,
            "release_id": self.release_id,
            "previous_release_id": self.previous_release_id,
            "error_type": self.error_type,
            "error": self.error,
            "warnings": self.warnings,
            "started_at": self.started_at,
            "duration_seconds": self.duration_seconds,
        }


class UpdateRunner:
    """Keeps every configured target on its latest signed release."""

    def __init__(self, config: DeployerConfig, client: GitHubReleaseClient) -> None:
        self._config = config
        self._client = client
        self._public_key = ""
        if not config.unsafe_skip_signature_verification:
            self._public_key = config.public_key()
            if not self._public_key:
                raise ConfigError("public signing key is empty")

    @property
    def config(self) -> DeployerConfig:
        return self._config

    def prepare(self) -> None:
        """Create the deploy directory if it does not exist yet."""
        try:
            self._config.deploy_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigError(
                f"cannot create deploy directory {self._config.deploy_dir}: {exc}"
            ) from exc

    # ------------------------------------------------------------------
    # Single target
    # ------------------------------------------------------------------

    async def update_target(self, target: Target) -> TargetOutcome:
        """Bring one target up to date. Never raises for per-target failures."""
        start = time.monotonic()
        outcome = TargetOutcome(target=target.name)
        with target_context(target.name):
            log.info("updater_checking")
            try:
                await self._update_target(target, outcome)
            except DeployerError as exc:
                self._record_failure(outcome, exc)
            except Exception as exc:
                outcome.error_type = type(exc).__name__
                outcome.error = f"Unexpected error: {exc}"
                log.exception("updater_unexpected_error")
            finally:
                outcome.duration_seconds = round(time.monotonic() - start, 2)
            self._report_orphans(target, outcome)
        return outcome

    async def _update_target(self, target: Target, outcome: TargetOutcome) -> None:
        deploy_dir = self._config.deploy_dir

        release = await self._client.get_latest_release(target.owner, target.repo)
        outcome.release_id = release.id

        previous = current_release_id(deploy_dir, target.name)
        outcome.previous_release_id = previous
        if previous == release.id:
            outcome.status = OutcomeStatus.UP_TO_DATE
            log.info("updater_up_to_date", release_id=release.id)
            return

        log.info("updater_update_found", release_id=release.id, current=previous, tag=release.tag)
        archive, signature = await self._client.fetch_release_assets(release, target.repo)

        if self._config.unsafe_skip_signature_verification:
            log.warning("updater_signature_verification_skipped", release_id=release.id)
        else:
            require_valid_signature(self._public_key, archive, signature)
            log.info("updater_signature_verified", release_id=release.id)

        result = await asyncio.to_thread(
            deploy, deploy_dir, target.name, release.id, previous, archive
        )
        if result.retire_error is not None:
            outcome.warnings.append(str(result.retire_error))

        outcome.status = OutcomeStatus.UPDATED
        log.info(
            "updater_update_successful",
            release_id=release.id,
            previous=previous,
            steps=result.steps_completed,
        )

    @staticmethod
    def _record_failure(outcome: TargetOutcome, exc: DeployerError) -> None:
        outcome.status = OutcomeStatus.FAILED
        outcome.error_type = type(exc).__name__
        outcome.error = str(exc)
        if isinstance(exc, (AssetValidationError, SignatureError, ReleaseStoreError)):
            # Recurs every sweep until someone fixes the release or the deploy dir
            log.error("updater_update_failed", error_type=outcome.error_type, error=outcome.error)
        else:
            log.warning("updater_update_failed", error_type=outcome.error_type, error=outcome.error)

    def _report_orphans(self, target: Target, outcome: TargetOutcome) -> None:
        try:
            orphans = orphaned_release_ids(self._config.deploy_dir, target.name)
        except ReleaseStoreError:
            # Already recorded as this sweep's failure
            return
        except OSError as exc:
            outcome.warnings.append(f"cannot scan for orphaned release directories: {exc}")
            log.warning("updater_orphan_scan_failed", error=str(exc))
            return
        if orphans:
            outcome.warnings.append(f"orphaned release directories: {', '.join(orphans)}")
            log.warning("updater_orphaned_releases", release_ids=orphans)

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    async def run_once(self) -> list[TargetOutcome]:
        """Process every target once, sequentially."""
        outcomes = []
        for target in self._config.targets:
            outcomes.append(await self.update_target(target))
        return outcomes

    async def run_forever(self) -> None:
        """Sweep all targets, sleep ``update_interval`` seconds, repeat."""
        while True:
            outcomes = await self.run_once()
            log.info(
                "updater_sweep_complete",
                updated=sum(o.status is OutcomeStatus.UPDATED for o in outcomes),
                failed=sum(o.status is OutcomeStatus.FAILED for o in outcomes),
                next_sweep_in=self._config.update_interval,
            )
            await asyncio.sleep(self._config.update_interval)

"""Deployment transaction: allocate -> extract -> promote -> retire.

Lifecycle:
1. Allocate a fresh release directory ``<target>-<release_id>``
2. Extract the verified archive into it (one wrapper directory stripped)
3. Promote: swing the ``<target>`` symlink over with an atomic rename
4. Retire the previous release directory (best effort, after commit)

The rename in step 3 is the only transition the active pointer ever goes
through. Failures before it leave the pointer untouched; failures after it
do not undo it.
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from release_deployer.constants import DEFAULT_STRIP_COMPONENTS, POINTER_TMP_SUFFIX
from release_deployer.deploy.extract import extract
from release_deployer.deploy.store import (
    active_pointer_path,
    release_dir_name,
    release_dir_path,
)
from release_deployer.errors import AllocationFailed, AlreadyExists, PromotionFailed, RetireFailed
from release_deployer.logging import get_logger

log = get_logger("release_deployer.deploy.coordinator")


@dataclass
class DeploymentResult:
    """Outcome of a committed deployment."""

    target: str
    release_id: str
    release_dir: Path
    previous_release_id: str | None = None
    steps_completed: list[str] = field(default_factory=list)
    retired_release_id: str | None = None
    retire_error: RetireFailed | None = None
    started_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    completed_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "release_id": self.release_id,
            "release_dir": str(self.release_dir),
            "previous_release_id": self.previous_release_id,
            "steps_completed": self.steps_completed,
            "retired_release_id": self.retired_release_id,
            "retire_error": str(self.retire_error) if self.retire_error else None,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }


def allocate(deploy_dir: str | Path, target_name: str, release_id: str) -> Path:
    """Create the release directory, refusing to reuse an existing one."""
    release_dir = release_dir_path(deploy_dir, target_name, release_id)
    try:
        release_dir.mkdir(mode=0o755)
    except FileExistsError as exc:
        raise AlreadyExists(f"release directory {release_dir} already exists") from exc
    except OSError as exc:
        raise AllocationFailed(f"cannot create release directory {release_dir}: {exc}") from exc
    return release_dir


def promote(deploy_dir: str | Path, target_name: str, release_id: str) -> None:
    """Atomically point ``<deploy_dir>/<target_name>`` at the given release.

    A symlink is created next to the pointer and renamed over it, so readers
    resolving the pointer see either the old or the new release.
    """
    pointer = active_pointer_path(deploy_dir, target_name)
    tmp_pointer = pointer.with_name(pointer.name + POINTER_TMP_SUFFIX)
    link_target = release_dir_name(target_name, release_id)

    if tmp_pointer.is_dir() and not tmp_pointer.is_symlink():
        raise PromotionFailed(f"{tmp_pointer} is a directory; remove it so the pointer can switch")

    try:
        if os.path.lexists(tmp_pointer):
            # left behind by an interrupted promotion
            tmp_pointer.unlink()
        os.symlink(link_target, tmp_pointer)
    except OSError as exc:
        raise PromotionFailed(f"cannot create temporary pointer {tmp_pointer}: {exc}") from exc

    try:
        os.replace(tmp_pointer, pointer)
    except OSError as exc:
        try:
            tmp_pointer.unlink()
        except OSError:
            log.warning("deploy_tmp_pointer_cleanup_failed", path=str(tmp_pointer))
        raise PromotionFailed(f"cannot rename {tmp_pointer} onto {pointer}: {exc}") from exc


def retire(deploy_dir: str | Path, target_name: str, release_id: str) -> None:
    """Delete a superseded release directory.

    Raises:
        RetireFailed: if the directory cannot be removed.
    """
    release_dir = release_dir_path(deploy_dir, target_name, release_id)
    if not os.path.lexists(release_dir):
        return
    try:
        shutil.rmtree(release_dir)
    except OSError as exc:
        raise RetireFailed(f"cannot remove retired release {release_dir}: {exc}") from exc


def deploy(
    deploy_dir: str | Path,
    target_name: str,
    release_id: str,
    previous_release_id: str | None,
    archive: bytes,
) -> DeploymentResult:
    """Install a verified archive as the active release of ``target_name``.

    ``archive`` must already have passed signature verification (or
    verification must have been disabled in configuration), and
    ``release_id`` must differ from ``previous_release_id``.

    Raises:
        AlreadyExists: if the release directory is already present.
        AllocationFailed: if the release directory cannot be created.
        ExtractionError: if extraction fails; the partial directory is kept.
        PromotionFailed: if the active pointer cannot be switched.

    A failure to remove the previous release is not raised; it is logged and
    recorded on the returned result.
    """
    result = DeploymentResult(
        target=target_name,
        release_id=release_id,
        release_dir=release_dir_path(deploy_dir, target_name, release_id),
        previous_release_id=previous_release_id,
    )

    allocate(deploy_dir, target_name, release_id)
    result.steps_completed.append("allocate")

    extract(archive, result.release_dir, DEFAULT_STRIP_COMPONENTS)
    result.steps_completed.append("extract")

    promote(deploy_dir, target_name, release_id)
    result.steps_completed.append("promote")
    log.info("deploy_promoted", target=target_name, release_id=release_id)

    if previous_release_id and previous_release_id != release_id:
        try:
            retire(deploy_dir, target_name, previous_release_id)
        except RetireFailed as exc:
            result.retire_error = exc
            log.warning(
                "deploy_retire_failed",
                target=target_name,
                release_id=previous_release_id,
                error=str(exc),
            )
        else:
            result.retired_release_id = previous_release_id
            result.steps_completed.append("retire")

    result.completed_at = datetime.now(UTC).isoformat()
    return result

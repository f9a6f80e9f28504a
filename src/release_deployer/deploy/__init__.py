"""Deployment core: signature verification, extraction, release layout and promotion."""

from release_deployer.deploy.coordinator import DeploymentResult, deploy, promote, retire
from release_deployer.deploy.signature import require_valid_signature, verify
from release_deployer.deploy.store import (
    active_pointer_path,
    current_release_id,
    orphaned_release_ids,
    release_dir_path,
)

__all__ = [
    "DeploymentResult",
    "active_pointer_path",
    "current_release_id",
    "deploy",
    "orphaned_release_ids",
    "promote",
    "release_dir_path",
    "require_valid_signature",
    "retire",
    "verify",
]

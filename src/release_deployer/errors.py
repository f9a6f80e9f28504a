"""Error taxonomy for the release deployer.

Every failure the runtime core can produce derives from ``DeployerError``
so the update loop can log it and retry the target on the next cycle.
Only ``ConfigError`` is fatal, and only at startup.
"""

from __future__ import annotations


class DeployerError(Exception):
    """Base class for all release deployer errors."""


class ConfigError(DeployerError):
    """Raised when the configuration file or environment is invalid."""


# ---------------------------------------------------------------------------
# Remote release source
# ---------------------------------------------------------------------------


class RemoteError(DeployerError):
    """Raised on transient failures talking to the release API or downloading assets."""


class AssetValidationError(DeployerError):
    """Raised when a release's assets have the wrong shape or come from an unexpected host."""


# ---------------------------------------------------------------------------
# Signature verification
# ---------------------------------------------------------------------------


class SignatureError(DeployerError):
    """Base class for authentication failures."""


class MalformedKey(SignatureError):
    """Raised when the public key cannot be decoded."""


class MalformedSignature(SignatureError):
    """Raised when the detached signature cannot be decoded."""


class VerificationFailed(SignatureError):
    """Raised when a well-formed signature does not match the payload."""


# ---------------------------------------------------------------------------
# Archive extraction
# ---------------------------------------------------------------------------


class ExtractionError(DeployerError):
    """Base class for archive extraction failures."""


class PathTraversal(ExtractionError):
    """Raised when an archive entry would be written outside the destination."""


class UnsupportedEntryKind(ExtractionError):
    """Raised for archive entries that are neither directories nor regular files."""


class ExtractionIOError(ExtractionError):
    """Raised when reading the archive or writing its content fails."""


# ---------------------------------------------------------------------------
# Release store
# ---------------------------------------------------------------------------


class ReleaseStoreError(DeployerError):
    """Base class for active pointer inspection failures."""


class PointerCorrupted(ReleaseStoreError):
    """Raised when the active pointer path exists but is not a symlink."""


class MalformedReleaseRecord(ReleaseStoreError):
    """Raised when the active pointer names a directory that is not ``<target>-<id>``."""


# ---------------------------------------------------------------------------
# Deployment transaction
# ---------------------------------------------------------------------------


class DeploymentError(DeployerError):
    """Base class for deployment transaction failures."""


class AlreadyExists(DeploymentError):
    """Raised when the release directory for a deployment is already present."""


class AllocationFailed(DeploymentError):
    """Raised when the release directory cannot be created."""


class PromotionFailed(DeploymentError):
    """Raised when the active pointer cannot be switched to the new release."""


class RetireFailed(DeploymentError):
    """Raised when the superseded release directory cannot be removed."""

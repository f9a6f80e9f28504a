"""Centralized constants for the release deployer."""

# Archives
PAX_GLOBAL_HEADER_NAME = "pax_global_header"
DEFAULT_STRIP_COMPONENTS = 1

# Release directories and the active pointer
RELEASE_ID_SEPARATOR = "-"
POINTER_TMP_SUFFIX = ".tmp"
TARGET_NAME_PATTERN = r"^[A-Za-z0-9_-]+$"

# Release assets
ALLOWED_ASSET_HOST = "github.com"
ASSET_VERSION_PATTERN = r"[\w.]+"
TARBALL_SUFFIX = ".tar.gz"
SIGNATURE_SUFFIX = ".minisig"

# GitHub API
GITHUB_API_URL = "https://api.github.com"
HTTP_TIMEOUT_SECONDS = 30.0

"""On-disk release layout.

For a target ``myapp`` deployed into ``/srv/deploy``::

    /srv/deploy/myapp-42/...        release directory for release id 42
    /srv/deploy/myapp -> myapp-42   active pointer (symlink)

The active pointer and the directory name it references are the only
record of which release is installed.
"""

from __future__ import annotations

import os
from pathlib import Path, PurePath

from release_deployer.constants import RELEASE_ID_SEPARATOR
from release_deployer.errors import MalformedReleaseRecord, PointerCorrupted


def release_dir_name(target_name: str, release_id: str) -> str:
    return f"{target_name}{RELEASE_ID_SEPARATOR}{release_id}"


def release_dir_path(deploy_dir: str | Path, target_name: str, release_id: str) -> Path:
    """Path of the directory holding one release of a target."""
    return Path(deploy_dir) / release_dir_name(target_name, release_id)


def active_pointer_path(deploy_dir: str | Path, target_name: str) -> Path:
    """Path of the symlink naming the active release of a target."""
    return Path(deploy_dir) / target_name


def parse_release_dir_name(name: str) -> tuple[str, str]:
    """Split ``<target>-<release_id>`` on the last separator.

    Raises:
        MalformedReleaseRecord: if either half is missing.
    """
    target_name, sep, release_id = name.rpartition(RELEASE_ID_SEPARATOR)
    if not sep or not target_name or not release_id:
        raise MalformedReleaseRecord(f"{name!r} is not of the form <target>-<release id>")
    return target_name, release_id


def current_release_id(deploy_dir: str | Path, target_name: str) -> str | None:
    """Return the release id the active pointer references.

    Returns None when no release has been deployed yet.

    Raises:
        PointerCorrupted: if the pointer path exists but is not a symlink.
        MalformedReleaseRecord: if the link target is not a release directory
            of this target.
    """
    pointer = active_pointer_path(deploy_dir, target_name)
    if not os.path.lexists(pointer):
        return None
    if not pointer.is_symlink():
        raise PointerCorrupted(f"{pointer} exists but is not a symlink")

    link_target = os.readlink(pointer)
    linked_name, release_id = parse_release_dir_name(PurePath(link_target).name)
    if linked_name != target_name:
        raise MalformedReleaseRecord(
            f"{pointer} references {link_target!r}, which belongs to {linked_name!r}"
        )
    return release_id


def release_ids(deploy_dir: str | Path, target_name: str) -> list[str]:
    """Release ids of every release directory present for ``target_name``."""
    root = Path(deploy_dir)
    if not root.is_dir():
        return []

    prefix = f"{target_name}{RELEASE_ID_SEPARATOR}"
    ids: list[str] = []
    for entry in sorted(root.iterdir()):
        if entry.is_symlink() or not entry.is_dir() or not entry.name.startswith(prefix):
            continue
        try:
            linked_name, release_id = parse_release_dir_name(entry.name)
        except MalformedReleaseRecord:
            continue
        # "my-app-1" must not be attributed to target "my"
        if linked_name == target_name:
            ids.append(release_id)
    return ids


def orphaned_release_ids(deploy_dir: str | Path, target_name: str) -> list[str]:
    """Release directories of ``target_name`` that the active pointer does not reference."""
    active = current_release_id(deploy_dir, target_name)
    return [
        release_id for release_id in release_ids(deploy_dir, target_name) if release_id != active
    ]

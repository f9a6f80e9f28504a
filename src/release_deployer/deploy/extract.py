"""Streaming, traversal-safe extraction of ``.tar.gz`` release archives."""

from __future__ import annotations

import io
import os
import shutil
import tarfile
import zlib
from pathlib import Path, PurePosixPath

from release_deployer.constants import PAX_GLOBAL_HEADER_NAME
from release_deployer.errors import ExtractionIOError, PathTraversal, UnsupportedEntryKind
from release_deployer.logging import get_logger

log = get_logger("release_deployer.deploy.extract")


def strip_path(name: str, strip_components: int) -> PurePosixPath | None:
    """Return the entry path with ``strip_components`` leading segments removed.

    Returns None when nothing remains, i.e. the entry is one of the stripped
    wrapper directories.
    """
    if name.startswith("/"):
        raise PathTraversal(f"entry {name!r} is an absolute path")
    parts = name.split("/")[strip_components:]
    remaining = [part for part in parts if part not in ("", ".")]
    if not remaining:
        return None
    if ".." in remaining:
        raise PathTraversal(f"entry {name!r} contains a parent directory segment")
    return PurePosixPath(*remaining)


def _resolve_inside(destination: Path, relative: PurePosixPath, name: str) -> Path:
    target = (destination / relative).resolve()
    if not target.is_relative_to(destination):
        raise PathTraversal(f"entry {name!r} resolves outside {destination}")
    return target


def extract(archive: bytes, destination: str | Path, strip_components: int) -> None:
    """Unpack a gzip-compressed tar archive into ``destination``.

    Entries are processed in archive order. Only directories and regular
    files are written; ancestors are created on demand so archives that list
    files before their directories still extract.

    Raises:
        PathTraversal: if an entry would land outside ``destination``.
        UnsupportedEntryKind: for symlinks, hardlinks, devices and fifos.
        ExtractionIOError: if the archive is corrupt or writing fails.
    """
    base = Path(destination).resolve()
    files = 0
    try:
        with tarfile.open(fileobj=io.BytesIO(archive), mode="r|gz") as tar:
            for member in tar:
                if member.name == PAX_GLOBAL_HEADER_NAME or member.type == tarfile.XGLTYPE:
                    continue

                relative = strip_path(member.name, strip_components)
                if relative is None:
                    continue
                target = _resolve_inside(base, relative, member.name)

                if member.isdir():
                    target.mkdir(parents=True, exist_ok=True)
                elif member.isreg():
                    target.parent.mkdir(parents=True, exist_ok=True)
                    source = tar.extractfile(member)
                    if source is None:
                        raise ExtractionIOError(f"cannot read content of {member.name!r}")
                    with source, open(target, "wb") as fh:
                        shutil.copyfileobj(source, fh)
                    os.chmod(target, (member.mode & 0o777) | 0o600)
                    files += 1
                else:
                    raise UnsupportedEntryKind(
                        f"unsupported entry type {member.type!r} for {member.name!r}"
                    )
    except (tarfile.TarError, OSError, EOFError, zlib.error) as exc:
        raise ExtractionIOError(f"extraction into {base} failed: {exc}") from exc

    log.debug("archive_extracted", destination=str(base), files=files)

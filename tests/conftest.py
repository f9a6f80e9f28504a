"""Shared fixtures: release archives, minisign keypairs and deploy directories."""

from __future__ import annotations

import base64
import hashlib
import io
import tarfile
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

import pytest
from nacl.signing import SigningKey

# An archive entry is either a ready TarInfo (added without content), or a
# (name, content) pair where content None means a directory.
ArchiveEntry = tarfile.TarInfo | tuple[str, bytes | None]


def build_tar_gz(
    entries: Iterable[ArchiveEntry],
    *,
    fmt: int = tarfile.GNU_FORMAT,
    pax_headers: dict[str, str] | None = None,
) -> bytes:
    """Build a gzip-compressed tarball from ``entries`` in the given order."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz", format=fmt, pax_headers=pax_headers) as tar:
        for entry in entries:
            if isinstance(entry, tarfile.TarInfo):
                tar.addfile(entry)
                continue
            name, content = entry
            info = tarfile.TarInfo(name)
            if content is None:
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tar.addfile(info)
            else:
                info.size = len(content)
                info.mode = 0o644
                tar.addfile(info, io.BytesIO(content))
    return buf.getvalue()


@dataclass
class MinisignKeypair:
    """Test signer producing minisign-compatible keys and signatures."""

    signing_key: SigningKey
    key_id: bytes

    @property
    def public_key(self) -> str:
        raw = b"Ed" + self.key_id + bytes(self.signing_key.verify_key)
        return f"untrusted comment: minisign public key\n{base64.b64encode(raw).decode()}\n"

    def sign(
        self,
        payload: bytes,
        *,
        prehashed: bool = True,
        trusted_comment: str = "timestamp:1700000000\tfile:myapp-1.0.0.tar.gz",
    ) -> bytes:
        algorithm = b"ED" if prehashed else b"Ed"
        message = hashlib.blake2b(payload, digest_size=64).digest() if prehashed else payload
        signature = self.signing_key.sign(message).signature
        global_signature = self.signing_key.sign(signature + trusted_comment.encode()).signature
        lines = [
            "untrusted comment: signature from minisign secret key",
            base64.b64encode(algorithm + self.key_id + signature).decode(),
            f"trusted comment: {trusted_comment}",
            base64.b64encode(global_signature).decode(),
        ]
        return ("\n".join(lines) + "\n").encode()


@pytest.fixture
def make_archive() -> Callable[..., bytes]:
    """Factory fixture wrapping ``build_tar_gz``."""
    return build_tar_gz


@pytest.fixture
def keypair() -> MinisignKeypair:
    return MinisignKeypair(SigningKey(b"\x07" * 32), key_id=bytes.fromhex("0102030405060708"))


@pytest.fixture
def other_keypair() -> MinisignKeypair:
    return MinisignKeypair(SigningKey(b"\x09" * 32), key_id=bytes.fromhex("a1a2a3a4a5a6a7a8"))


@pytest.fixture
def deploy_dir(tmp_path: Path) -> Path:
    path = tmp_path / "deploy"
    path.mkdir()
    return path

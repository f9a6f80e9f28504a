"""Detached minisign signature verification.

Release archives are published with a ``.minisig`` file produced by
minisign. The public key and signature formats are:

* public key: base64 of ``alg(2) || key_id(8) || ed25519_pk(32)``,
  optionally preceded by an ``untrusted comment:`` line.
* signature file, four lines::

      untrusted comment: <free text>
      base64(alg(2) || key_id(8) || ed25519_sig(64))
      trusted comment: <text>
      base64(global_sig(64))

``alg`` is ``Ed`` for a signature over the raw payload and ``ED`` for a
signature over its BLAKE2b-512 digest. The global signature covers the
payload signature followed by the trusted comment text.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass

from nacl.encoding import RawEncoder
from nacl.exceptions import BadSignatureError
from nacl.exceptions import ValueError as NaClValueError
from nacl.hash import blake2b
from nacl.signing import VerifyKey

from release_deployer.errors import MalformedKey, MalformedSignature, VerificationFailed
from release_deployer.logging import get_logger

log = get_logger("release_deployer.deploy.signature")

ALG_ED25519 = b"Ed"
ALG_ED25519_PREHASHED = b"ED"
KEY_ID_LEN = 8
PUBLIC_KEY_LEN = 32
SIGNATURE_LEN = 64

UNTRUSTED_COMMENT_PREFIX = "untrusted comment:"
TRUSTED_COMMENT_PREFIX = "trusted comment: "


@dataclass(frozen=True)
class PublicKey:
    """A decoded minisign public key."""

    key_id: bytes
    key: bytes


@dataclass(frozen=True)
class Signature:
    """A decoded minisign signature."""

    algorithm: bytes
    key_id: bytes
    signature: bytes
    trusted_comment: str
    global_signature: bytes

    @property
    def prehashed(self) -> bool:
        return self.algorithm == ALG_ED25519_PREHASHED


def _b64decode(value: str) -> bytes:
    return base64.b64decode(value.strip(), validate=True)


def decode_public_key(text: str) -> PublicKey:
    """Decode a minisign public key from its textual form.

    Raises:
        MalformedKey: if the key is not valid minisign key material.
    """
    lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
    if lines and lines[0].startswith(UNTRUSTED_COMMENT_PREFIX):
        lines = lines[1:]
    if len(lines) != 1:
        raise MalformedKey("public key must be a single base64 line")

    try:
        raw = _b64decode(lines[0])
    except (binascii.Error, ValueError) as exc:
        raise MalformedKey(f"public key is not valid base64: {exc}") from exc

    if len(raw) != len(ALG_ED25519) + KEY_ID_LEN + PUBLIC_KEY_LEN:
        raise MalformedKey(f"public key has unexpected length {len(raw)}")
    if raw[:2] != ALG_ED25519:
        raise MalformedKey(f"unsupported public key algorithm {raw[:2]!r}")

    return PublicKey(key_id=raw[2 : 2 + KEY_ID_LEN], key=raw[2 + KEY_ID_LEN :])


def decode_signature(data: bytes) -> Signature:
    """Decode a minisign signature file.

    Raises:
        MalformedSignature: if the signature file is not valid minisign output.
    """
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedSignature("signature is not valid UTF-8") from exc

    lines = text.splitlines()
    if len(lines) < 4:
        raise MalformedSignature(f"signature must have 4 lines (have {len(lines)})")
    if not lines[0].startswith(UNTRUSTED_COMMENT_PREFIX):
        raise MalformedSignature("signature is missing the untrusted comment line")
    if not lines[2].startswith(TRUSTED_COMMENT_PREFIX):
        raise MalformedSignature("signature is missing the trusted comment line")

    try:
        raw = _b64decode(lines[1])
        global_signature = _b64decode(lines[3])
    except (binascii.Error, ValueError) as exc:
        raise MalformedSignature(f"signature is not valid base64: {exc}") from exc

    if len(raw) != 2 + KEY_ID_LEN + SIGNATURE_LEN:
        raise MalformedSignature(f"signature has unexpected length {len(raw)}")
    if len(global_signature) != SIGNATURE_LEN:
        raise MalformedSignature(f"global signature has unexpected length {len(global_signature)}")

    algorithm = raw[:2]
    if algorithm not in (ALG_ED25519, ALG_ED25519_PREHASHED):
        raise MalformedSignature(f"unsupported signature algorithm {algorithm!r}")

    return Signature(
        algorithm=algorithm,
        key_id=raw[2 : 2 + KEY_ID_LEN],
        signature=raw[2 + KEY_ID_LEN :],
        trusted_comment=lines[2][len(TRUSTED_COMMENT_PREFIX) :],
        global_signature=global_signature,
    )


def verify(public_key: str, payload: bytes, signature: bytes) -> bool:
    """Check a detached minisign ``signature`` over ``payload``.

    Returns False, without raising, when the key and signature decode but do
    not authenticate the payload.

    Raises:
        MalformedKey: if ``public_key`` cannot be decoded.
        MalformedSignature: if ``signature`` cannot be decoded.
    """
    pk = decode_public_key(public_key)
    sig = decode_signature(signature)

    if pk.key_id != sig.key_id:
        log.warning(
            "signature_key_id_mismatch",
            key_id=pk.key_id.hex(),
            signature_key_id=sig.key_id.hex(),
        )
        return False

    message = blake2b(payload, digest_size=64, encoder=RawEncoder) if sig.prehashed else payload
    verify_key = VerifyKey(pk.key)
    try:
        verify_key.verify(message, sig.signature)
        verify_key.verify(
            sig.signature + sig.trusted_comment.encode("utf-8"),
            sig.global_signature,
        )
    except (BadSignatureError, NaClValueError):
        log.warning("signature_mismatch", key_id=pk.key_id.hex())
        return False

    log.debug("signature_verified", key_id=pk.key_id.hex(), trusted_comment=sig.trusted_comment)
    return True


def require_valid_signature(public_key: str, payload: bytes, signature: bytes) -> None:
    """Like ``verify`` but raise ``VerificationFailed`` instead of returning False."""
    if not verify(public_key, payload, signature):
        raise VerificationFailed("signature does not match the release archive")

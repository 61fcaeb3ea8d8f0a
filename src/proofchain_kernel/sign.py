"""
Signing and signature checks for export documents.

A signature covers the canonical JSON of the document with its
``signatures`` field removed, so signatures can be appended without
invalidating earlier ones.

Supported algorithms:
- hmac-sha256 (shared secret)
- ed25519 (via the ``cryptography`` package)

SECURITY: Keep HMAC secrets and private keys in a secrets manager; never
commit them.
"""

import base64
import binascii
import hashlib
import hmac
import uuid
from datetime import datetime, timezone
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from .canonical import canonical_json
from .errors import ErrorCode, VerificationError, VerificationResult


def signing_payload(document: dict[str, Any]) -> bytes:
    """Bytes covered by a signature: the document minus ``signatures``."""
    unsigned = {k: v for k, v in document.items() if k != "signatures"}
    return canonical_json(unsigned).encode("utf-8")


def _document_id(document: dict[str, Any]) -> str:
    doc_id = document.get("chainId") or document.get("proofChainId")
    if not doc_id:
        raise ValueError("Document missing chainId/proofChainId")
    return doc_id


def _signature_envelope(
    algorithm: str,
    signature: bytes,
    content: bytes,
    signer_id: str,
    key_id: str,
) -> dict[str, Any]:
    return {
        "signature_id": f"sig-{uuid.uuid4()}",
        "signer_id": signer_id,
        "algorithm": algorithm,
        "public_key_id": key_id,
        "signature_value": base64.b64encode(signature).decode("ascii"),
        "signed_at": datetime.now(timezone.utc).isoformat(),
        "content_hash": hashlib.sha256(content).hexdigest(),
    }


def sign_export_hmac(
    document: dict[str, Any],
    secret: str,
    signer_id: str = "proofchain",
    key_id: str = "default",
) -> dict[str, Any]:
    """
    Sign an export document with HMAC-SHA256 and return a signature object.

    Raises:
        ValueError: If secret is empty or the document has no chain id
    """
    if not secret:
        raise ValueError("HMAC secret must not be empty")
    _document_id(document)

    content = signing_payload(document)
    mac = hmac.new(secret.encode("utf-8"), content, hashlib.sha256)
    return _signature_envelope("hmac-sha256", mac.digest(), content, signer_id, key_id)


def sign_export_ed25519(
    document: dict[str, Any],
    private_key: ed25519.Ed25519PrivateKey,
    signer_id: str = "proofchain",
    key_id: str = "default",
) -> dict[str, Any]:
    """
    Sign an export document with an Ed25519 private key.

    Raises:
        ValueError: If the document has no chain id
    """
    _document_id(document)
    content = signing_payload(document)
    return _signature_envelope("ed25519", private_key.sign(content), content, signer_id, key_id)


def public_key_pem(private_key: ed25519.Ed25519PrivateKey) -> str:
    """PEM (SubjectPublicKeyInfo) text of the matching public key."""
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")


def attach_signature(
    document: dict[str, Any],
    signature: dict[str, Any],
) -> dict[str, Any]:
    """
    Return a new document with ``signature`` appended to ``signatures``.

    Does not mutate the original document.
    """
    signed = dict(document)
    existing = list(signed.get("signatures", []))
    existing.append(signature)
    signed["signatures"] = existing
    return signed


def _load_ed25519_public_key(key_value: str) -> ed25519.Ed25519PublicKey:
    """Load an Ed25519 public key from PEM text or base64 (raw 32 bytes or DER)."""
    key_text = (key_value or "").strip()
    if not key_text:
        raise ValueError("empty public key")

    if "BEGIN" in key_text:
        try:
            key_obj = serialization.load_pem_public_key(key_text.encode("utf-8"))
        except ValueError as exc:
            raise ValueError(f"invalid PEM public key ({exc})") from exc
    else:
        try:
            decoded = base64.b64decode(key_text, validate=True)
        except binascii.Error as exc:
            raise ValueError("public key must be PEM or base64") from exc

        if len(decoded) == 32:
            key_obj = ed25519.Ed25519PublicKey.from_public_bytes(decoded)
        else:
            try:
                key_obj = serialization.load_der_public_key(decoded)
            except ValueError as exc:
                raise ValueError(f"invalid DER public key ({exc})") from exc

    if not isinstance(key_obj, ed25519.Ed25519PublicKey):
        raise ValueError("expected Ed25519 public key")
    return key_obj


def verify_signatures(
    document: dict[str, Any],
    public_keys: dict[str, str] | None = None,
    hmac_secret: str | None = None,
) -> VerificationResult:
    """
    Verify every signature attached to an export document.

    A document without signatures is valid here; use ``require_signatures``
    on the document verifiers to demand them.
    """
    errors: list[VerificationError] = []
    signatures = document.get("signatures") or []
    if not isinstance(signatures, list):
        errors.append(VerificationError(
            code=ErrorCode.SIGNATURE_INVALID,
            message="signatures must be an array",
            details={"received": type(signatures).__name__},
        ))
        return VerificationResult(valid=False, errors=errors)
    if not signatures:
        return VerificationResult(valid=True, errors=errors)

    try:
        content = signing_payload(document)
    except (TypeError, ValueError) as exc:
        errors.append(VerificationError(
            code=ErrorCode.SIGNATURE_INVALID,
            message=f"Document has no canonical form to verify against: {exc}",
        ))
        return VerificationResult(valid=False, errors=errors)

    for sig in signatures:
        sig_id = sig.get("signature_id") if isinstance(sig, dict) else None
        signature_value = sig.get("signature_value") if isinstance(sig, dict) else None
        if not signature_value:
            errors.append(VerificationError(
                code=ErrorCode.SIGNATURE_INVALID,
                message="Signature missing signature_value",
                details={"signature_id": sig_id},
            ))
            continue

        try:
            signature_bytes = base64.b64decode(signature_value, validate=True)
        except (binascii.Error, TypeError, ValueError):
            errors.append(VerificationError(
                code=ErrorCode.SIGNATURE_INVALID,
                message="Signature is not valid base64",
                details={"signature_id": sig_id},
            ))
            continue

        algo = sig.get("algorithm")

        if algo == "hmac-sha256":
            if not hmac_secret:
                errors.append(VerificationError(
                    code=ErrorCode.SIGNATURE_INVALID,
                    message="HMAC signature present but no hmac_secret provided",
                    details={"signature_id": sig_id},
                ))
                continue

            expected = hmac.new(hmac_secret.encode("utf-8"), content, hashlib.sha256).digest()
            if not hmac.compare_digest(expected, signature_bytes):
                errors.append(VerificationError(
                    code=ErrorCode.SIGNATURE_INVALID,
                    message="HMAC signature verification failed",
                    details={"signature_id": sig_id},
                ))
            continue

        if algo == "ed25519":
            key_id = sig.get("public_key_id")
            if not public_keys or key_id not in public_keys:
                errors.append(VerificationError(
                    code=ErrorCode.SIGNATURE_INVALID,
                    message=f"Missing public key for key_id={key_id}",
                    details={"signature_id": sig_id, "public_key_id": key_id},
                ))
                continue

            try:
                public_key = _load_ed25519_public_key(public_keys[key_id])
                public_key.verify(signature_bytes, content)
            except InvalidSignature:
                errors.append(VerificationError(
                    code=ErrorCode.SIGNATURE_INVALID,
                    message="ed25519 signature verification failed",
                    details={"signature_id": sig_id, "public_key_id": key_id},
                ))
            except ValueError as exc:
                errors.append(VerificationError(
                    code=ErrorCode.SIGNATURE_INVALID,
                    message=f"Invalid public key for ed25519: {exc}",
                    details={"signature_id": sig_id, "public_key_id": key_id},
                ))
            continue

        errors.append(VerificationError(
            code=ErrorCode.SIGNATURE_INVALID,
            message=f"Unsupported signature algorithm: {algo}",
            details={"signature_id": sig_id},
        ))

    return VerificationResult(valid=len(errors) == 0, errors=errors)


__all__ = [
    "signing_payload",
    "sign_export_hmac",
    "sign_export_ed25519",
    "public_key_pem",
    "attach_signature",
    "verify_signatures",
]

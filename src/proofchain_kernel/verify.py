"""
Offline verification of exported chains and event logs.

These functions take an export document (parsed dict or JSON text) and
never raise for bad content: structural problems, broken links, digest
mismatches and signature failures all come back as errors in a
:class:`VerificationResult`.
"""

import json
from typing import Any, Callable

from .errors import (
    ChainVerificationResult,
    ErrorCode,
    InvalidInputError,
    VerificationError,
    VerificationResult,
)
from .eventlog import LogEntry, replay_entries
from .hashing import DIGEST_LENGTH
from .ledger import ProofRecord, replay_records
from .sign import verify_signatures


CHAIN_REQUIRED_FIELDS = ["chainId", "createdAt", "recordCount", "lastDigest", "records"]
LOG_REQUIRED_FIELDS = ["proofChainId", "entryCount", "lastDigest", "entries"]


def _parse(source: str | bytes | dict[str, Any]) -> tuple[dict[str, Any] | None, list[VerificationError]]:
    if isinstance(source, dict):
        return source, []
    try:
        data = json.loads(source)
    except (TypeError, ValueError) as exc:
        return None, [VerificationError(
            code=ErrorCode.INPUT_VALIDATION_FAILED,
            message=f"Document is not valid JSON: {exc}",
        )]
    if not isinstance(data, dict):
        return None, [VerificationError(
            code=ErrorCode.INPUT_VALIDATION_FAILED,
            message="Document must be a JSON object",
            details={"received": type(data).__name__},
        )]
    return data, []


def _verify_document(
    source: str | bytes | dict[str, Any],
    required_fields: list[str],
    id_field: str,
    items_field: str,
    count_field: str,
    parse_item: Callable[[dict[str, Any], int], Any],
    replay: Callable[[list[Any], str | None], ChainVerificationResult],
    public_keys: dict[str, str] | None,
    hmac_secret: str | None,
    require_signatures: bool,
) -> VerificationResult:
    data, errors = _parse(source)
    if data is None:
        return VerificationResult(valid=False, errors=errors)

    for name in required_fields:
        if data.get(name) is None:
            errors.append(VerificationError(
                code=ErrorCode.MISSING_REQUIRED_FIELD,
                message=f"Missing required field: {name}",
                details={"field": name},
            ))

    def invalid_field(name: str, message: str) -> None:
        errors.append(VerificationError(
            code=ErrorCode.INPUT_VALIDATION_FAILED,
            message=message,
            details={"field": name, "received": type(data[name]).__name__},
        ))

    chain_id = data.get(id_field)
    if chain_id is not None and (not isinstance(chain_id, str) or not chain_id):
        invalid_field(id_field, f"{id_field} must be a non-empty string")

    count = data.get(count_field)
    if count is not None and (isinstance(count, bool) or not isinstance(count, int)):
        invalid_field(count_field, f"{count_field} must be an integer")
        count = None

    last_digest = data.get("lastDigest")
    if last_digest is not None and (
        not isinstance(last_digest, str) or len(last_digest) != DIGEST_LENGTH
    ):
        invalid_field("lastDigest", f"lastDigest must be a {DIGEST_LENGTH}-character hex digest")
        last_digest = None

    raw_items = data.get(items_field)
    if not isinstance(raw_items, list):
        if raw_items is not None:
            errors.append(VerificationError(
                code=ErrorCode.INPUT_VALIDATION_FAILED,
                message=f"{items_field} must be an array",
                details={"received": type(raw_items).__name__},
            ))
        return VerificationResult(valid=False, errors=errors)

    items = []
    for index, raw in enumerate(raw_items):
        try:
            items.append(parse_item(raw, index))
        except InvalidInputError as exc:
            errors.append(VerificationError(
                code=ErrorCode.INPUT_VALIDATION_FAILED,
                message=str(exc),
                details=exc.details,
            ))

    if count is not None and count != len(raw_items):
        errors.append(VerificationError(
            code=ErrorCode.COUNT_MISMATCH,
            message=f"{count_field} ({count}) does not match {items_field} length ({len(raw_items)})",
            details={count_field: count, items_field: len(raw_items)},
        ))

    # Replaying a partially parsed sequence would report spurious breaks
    if len(items) == len(raw_items):
        replayed = replay(items, last_digest)
        errors.extend(replayed.errors)

    sig_result = verify_signatures(data, public_keys, hmac_secret)
    errors.extend(sig_result.errors)

    if require_signatures and not data.get("signatures"):
        errors.append(VerificationError(
            code=ErrorCode.SIGNATURE_REQUIRED,
            message="Document must be signed when require_signatures is True",
        ))

    return VerificationResult(valid=len(errors) == 0, errors=errors)


def verify_chain_export(
    source: str | bytes | dict[str, Any],
    public_keys: dict[str, str] | None = None,
    hmac_secret: str | None = None,
    require_signatures: bool = False,
) -> VerificationResult:
    """
    Full verification of a proof-chain export: required fields, record
    structure, record count, links, chain/input/output digests, tail digest
    and signatures.

    Args:
        source: Export document produced by ``ProofChain.export_to_json``
        public_keys: Map of public_key_id -> PEM or base64 Ed25519 key
        hmac_secret: Shared secret for HMAC-SHA256 signatures
        require_signatures: If True, the document MUST carry signatures
    """
    return _verify_document(
        source,
        CHAIN_REQUIRED_FIELDS,
        "chainId",
        "records",
        "recordCount",
        ProofRecord.from_dict,
        replay_records,
        public_keys,
        hmac_secret,
        require_signatures,
    )


def verify_log_export(
    source: str | bytes | dict[str, Any],
    public_keys: dict[str, str] | None = None,
    hmac_secret: str | None = None,
    require_signatures: bool = False,
) -> VerificationResult:
    """Full verification of an event-log export. See :func:`verify_chain_export`."""
    return _verify_document(
        source,
        LOG_REQUIRED_FIELDS,
        "proofChainId",
        "entries",
        "entryCount",
        LogEntry.from_dict,
        replay_entries,
        public_keys,
        hmac_secret,
        require_signatures,
    )


__all__ = ["verify_chain_export", "verify_log_export"]

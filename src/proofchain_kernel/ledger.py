"""
Proof ledger: named, independently addressable hash chains of typed
proof records.

Each record links the digest of its raw input, the digest of its raw
output and the chain digest of its predecessor. The chain digest covers
the link fields only:

    chain_digest = SHA-256(canonical_json({
        id, timestamp, type, inputDigest, outputDigest, previousDigest
    }))

so raw bodies and metadata can be re-checked independently of the chain
structure.
"""

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .canonical import canonicalize, format_timestamp, parse_timestamp, utc_now
from .errors import (
    ChainVerificationResult,
    ErrorCode,
    InvalidInputError,
    VerificationError,
)
from .hashing import ZERO_DIGEST, compare_hashes, hash_data, hash_object, merkle_root
from .ids import generate_chain_id, sequence_id


logger = logging.getLogger(__name__)


class ProofType(str, Enum):
    """
    Kinds of proof a record can carry.
    Values are part of the export wire format.
    """
    FORMULA = "FORMULA"
    THEOREM = "THEOREM"
    COMPUTATION = "COMPUTATION"
    AXIOM = "AXIOM"
    VALIDATION = "VALIDATION"
    INTEGRATION = "INTEGRATION"

    @classmethod
    def coerce(cls, value: "ProofType | str") -> "ProofType":
        try:
            return cls(value)
        except ValueError:
            raise InvalidInputError(
                f"Unknown proof type: {value!r}",
                details={"type": value, "supported": [t.value for t in cls]},
            ) from None


def compute_chain_digest(
    record_id: str,
    timestamp: datetime,
    proof_type: ProofType,
    input_digest: str,
    output_digest: str,
    previous_digest: str,
) -> str:
    """Digest over the link-relevant fields of a record."""
    return hash_object({
        "id": record_id,
        "timestamp": format_timestamp(timestamp),
        "type": proof_type.value,
        "inputDigest": input_digest,
        "outputDigest": output_digest,
        "previousDigest": previous_digest,
    })


@dataclass(frozen=True)
class ProofRecord:
    """A single proof in a chain. Never mutated after creation."""
    id: str
    timestamp: datetime
    type: ProofType
    input: str
    output: str
    input_digest: str
    output_digest: str
    previous_digest: str
    chain_digest: str
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "timestamp": format_timestamp(self.timestamp),
            "type": self.type.value,
            "input": self.input,
            "output": self.output,
            "inputDigest": self.input_digest,
            "outputDigest": self.output_digest,
            "previousDigest": self.previous_digest,
            "chainDigest": self.chain_digest,
        }
        if self.metadata is not None:
            result["metadata"] = self.metadata
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any], index: int = 0) -> "ProofRecord":
        """
        Rebuild a record from its exported form.

        Digests are taken as stored; use :meth:`ProofChain.verify` to check
        them.

        Raises:
            InvalidInputError: if a field is missing or has the wrong type
        """
        if not isinstance(data, dict):
            raise InvalidInputError(
                f"Record {index} must be an object",
                details={"index": index, "received": type(data).__name__},
            )

        string_fields = [
            "id", "timestamp", "input", "output",
            "inputDigest", "outputDigest", "previousDigest", "chainDigest",
        ]
        for name in string_fields + ["type"]:
            if name not in data:
                raise InvalidInputError(
                    f"Record {index} missing required field: {name}",
                    details={"index": index, "field": name},
                )
        for name in string_fields:
            if not isinstance(data[name], str):
                raise InvalidInputError(
                    f"Record {index} field {name} must be a string",
                    details={"index": index, "field": name},
                )

        metadata = data.get("metadata")
        if metadata is not None and not isinstance(metadata, dict):
            raise InvalidInputError(
                f"Record {index} metadata must be an object",
                details={"index": index, "field": "metadata"},
            )
        try:
            metadata = canonicalize(metadata)
        except (TypeError, ValueError) as exc:
            raise InvalidInputError(
                f"Record {index} metadata cannot be canonicalized: {exc}",
                details={"index": index, "field": "metadata"},
            ) from exc

        try:
            timestamp = parse_timestamp(data["timestamp"])
        except ValueError as exc:
            raise InvalidInputError(
                f"Record {index} has an invalid timestamp: {exc}",
                details={"index": index, "field": "timestamp"},
            ) from exc

        return cls(
            id=data["id"],
            timestamp=timestamp,
            type=ProofType.coerce(data["type"]),
            input=data["input"],
            output=data["output"],
            input_digest=data["inputDigest"],
            output_digest=data["outputDigest"],
            previous_digest=data["previousDigest"],
            chain_digest=data["chainDigest"],
            metadata=metadata,
        )


def replay_records(
    records: list[ProofRecord],
    last_digest: str | None = None,
) -> ChainVerificationResult:
    """
    Walk a record sequence once and report every problem found.

    For each record the link to its predecessor, the chain digest and the
    input/output digests are checked independently, so content tampering
    shows up even when the chain structure is intact. When ``last_digest``
    is given it must equal the chain digest of the final record (or the
    zero sentinel for an empty sequence).
    """
    errors: list[VerificationError] = []
    broken: list[int] = []
    first_error: str | None = None
    seen_ids: set[str] = set()
    previous = ZERO_DIGEST

    def fail(index: int | None, code: ErrorCode, message: str, details: dict[str, Any]) -> None:
        nonlocal first_error
        errors.append(VerificationError(code=code, message=message, details=details))
        if first_error is None:
            first_error = message
        if index is not None and (not broken or broken[-1] != index):
            broken.append(index)

    for i, record in enumerate(records):
        if not compare_hashes(record.previous_digest, previous):
            fail(i, ErrorCode.HASH_CHAIN_BROKEN,
                 f"Broken link at record {i}: previousDigest mismatch",
                 {"index": i, "expected": previous, "actual": record.previous_digest})

        expected_chain = compute_chain_digest(
            record.id, record.timestamp, record.type,
            record.input_digest, record.output_digest, record.previous_digest,
        )
        if not compare_hashes(record.chain_digest, expected_chain):
            fail(i, ErrorCode.CHAIN_HASH_MISMATCH,
                 f"Invalid chain digest at record {i}",
                 {"index": i, "expected": expected_chain, "actual": record.chain_digest})

        expected_input = hash_data(record.input)
        if not compare_hashes(record.input_digest, expected_input):
            fail(i, ErrorCode.INPUT_HASH_MISMATCH,
                 f"Invalid input digest at record {i}",
                 {"index": i, "expected": expected_input, "actual": record.input_digest})

        expected_output = hash_data(record.output)
        if not compare_hashes(record.output_digest, expected_output):
            fail(i, ErrorCode.OUTPUT_HASH_MISMATCH,
                 f"Invalid output digest at record {i}",
                 {"index": i, "expected": expected_output, "actual": record.output_digest})

        if record.id in seen_ids:
            fail(i, ErrorCode.DUPLICATE_RECORD_ID,
                 f"Duplicate record id at record {i}: {record.id}",
                 {"index": i, "id": record.id})
        seen_ids.add(record.id)

        previous = record.chain_digest

    if last_digest is not None and not compare_hashes(last_digest, previous):
        fail(None, ErrorCode.LAST_DIGEST_MISMATCH,
             "Last digest does not match the final record",
             {"expected": previous, "actual": last_digest})

    invalid = len(broken)
    return ChainVerificationResult(
        valid=not errors,
        total_records=len(records),
        valid_records=len(records) - invalid,
        invalid_records=invalid,
        broken_links=broken,
        first_error=first_error,
        errors=errors,
    )


class ProofChain:
    """
    An append-only chain of proof records.

    Writers serialize on an internal lock so concurrent ``add_record`` calls
    cannot race on the tail digest. Verification scans a snapshot.

    Records live in memory until :meth:`clear`; capping growth (for example
    by exporting and clearing periodically) is the caller's responsibility.
    """

    def __init__(self, chain_id: str | None = None) -> None:
        if chain_id is not None and (not isinstance(chain_id, str) or not chain_id.strip()):
            raise InvalidInputError("chain_id must be a non-empty string", details={"chain_id": chain_id})
        self._chain_id = chain_id or generate_chain_id("CHAIN")
        self._created_at = utc_now()
        self._lock = threading.RLock()
        self._records: list[ProofRecord] = []
        self._by_id: dict[str, ProofRecord] = {}
        self._last_digest = ZERO_DIGEST
        self._counter = 0

    def __repr__(self) -> str:
        return f"ProofChain(chain_id={self._chain_id!r}, records={len(self._records)})"

    def __len__(self) -> int:
        return len(self._records)

    @property
    def chain_id(self) -> str:
        return self._chain_id

    @property
    def created_at(self) -> datetime:
        return self._created_at

    @property
    def last_digest(self) -> str:
        return self._last_digest

    @property
    def record_count(self) -> int:
        return len(self._records)

    @property
    def records(self) -> list[ProofRecord]:
        with self._lock:
            return list(self._records)

    def add_record(
        self,
        proof_type: ProofType | str,
        input: str,
        output: str,
        metadata: dict[str, Any] | None = None,
    ) -> ProofRecord:
        """
        Append a proof record and advance the tail digest.

        Raises:
            InvalidInputError: for an unknown proof type, non-string bodies,
                or metadata with no canonical JSON form
        """
        kind = ProofType.coerce(proof_type)
        if not isinstance(input, str) or not isinstance(output, str):
            raise InvalidInputError(
                "Record input and output must be strings",
                details={"input": type(input).__name__, "output": type(output).__name__},
            )
        if metadata is not None:
            if not isinstance(metadata, dict):
                raise InvalidInputError("metadata must be a mapping", details={"received": type(metadata).__name__})
            try:
                metadata = canonicalize(metadata)
            except (TypeError, ValueError) as exc:
                raise InvalidInputError(f"metadata cannot be canonicalized: {exc}") from exc

        input_digest = hash_data(input)
        output_digest = hash_data(output)

        with self._lock:
            self._counter += 1
            record_id = sequence_id(f"{self._chain_id}-REC", self._counter)
            timestamp = utc_now()
            previous = self._last_digest
            record = ProofRecord(
                id=record_id,
                timestamp=timestamp,
                type=kind,
                input=input,
                output=output,
                input_digest=input_digest,
                output_digest=output_digest,
                previous_digest=previous,
                chain_digest=compute_chain_digest(
                    record_id, timestamp, kind, input_digest, output_digest, previous,
                ),
                metadata=metadata,
            )
            self._records.append(record)
            self._by_id.setdefault(record_id, record)
            self._last_digest = record.chain_digest

        logger.debug("chain %s appended %s (%s)", self._chain_id, record.id, kind.value)
        return record

    def get_record_by_id(self, record_id: str) -> ProofRecord | None:
        with self._lock:
            return self._by_id.get(record_id)

    def get_records_by_type(self, proof_type: ProofType | str) -> list[ProofRecord]:
        kind = ProofType.coerce(proof_type)
        with self._lock:
            return [r for r in self._records if r.type is kind]

    def verify(self) -> ChainVerificationResult:
        with self._lock:
            snapshot = list(self._records)
            last_digest = self._last_digest
        return replay_records(snapshot, last_digest)

    def merkle_root(self) -> str:
        """Merkle root over the chain digests of all records, in order."""
        return merkle_root(r.chain_digest for r in self.records)

    def clear(self) -> None:
        """Drop every record and return to the zero sentinel."""
        with self._lock:
            self._records = []
            self._by_id = {}
            self._last_digest = ZERO_DIGEST
            self._counter = 0

    def to_document(self) -> dict[str, Any]:
        """Export document; ``verified`` is computed now, not copied."""
        with self._lock:
            snapshot = list(self._records)
            last_digest = self._last_digest
        verification = replay_records(snapshot, last_digest)
        return {
            "chainId": self._chain_id,
            "createdAt": format_timestamp(self._created_at),
            "recordCount": len(snapshot),
            "lastDigest": last_digest,
            "verified": verification.valid,
            "records": [r.to_dict() for r in snapshot],
        }

    def export_to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_document(), indent=indent, ensure_ascii=False)

    @classmethod
    def import_from_json(cls, source: str | bytes | dict[str, Any]) -> "ProofChain":
        """
        Rebuild a chain from an export document (JSON text or parsed dict).

        Only the document structure is validated here; call :meth:`verify`
        on the result to re-derive every digest.

        Raises:
            InvalidInputError: if the document is malformed
        """
        data = _load_document(source)

        for name in ("chainId", "createdAt", "lastDigest", "records"):
            if name not in data:
                raise InvalidInputError(f"Missing required field: {name}", details={"field": name})
        if not isinstance(data["chainId"], str) or not data["chainId"]:
            raise InvalidInputError("chainId must be a non-empty string", details={"field": "chainId"})
        if not isinstance(data["lastDigest"], str):
            raise InvalidInputError("lastDigest must be a string", details={"field": "lastDigest"})
        if not isinstance(data["records"], list):
            raise InvalidInputError("records must be an array", details={"field": "records"})

        try:
            created_at = parse_timestamp(data["createdAt"])
        except ValueError as exc:
            raise InvalidInputError(f"createdAt is invalid: {exc}", details={"field": "createdAt"}) from exc

        records = [ProofRecord.from_dict(r, i) for i, r in enumerate(data["records"])]

        chain = cls(data["chainId"])
        chain._created_at = created_at
        chain._records = records
        for record in records:
            chain._by_id.setdefault(record.id, record)
        chain._last_digest = data["lastDigest"]
        chain._counter = len(records)
        return chain


def _load_document(source: str | bytes | dict[str, Any]) -> dict[str, Any]:
    if isinstance(source, dict):
        return source
    try:
        data = json.loads(source)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"Export document is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise InvalidInputError(
            "Export document must be a JSON object",
            details={"received": type(data).__name__},
        )
    return data


def create_hash_chain(chain_id: str | None = None) -> ProofChain:
    return ProofChain(chain_id)


__all__ = [
    "ProofType",
    "ProofRecord",
    "ProofChain",
    "compute_chain_digest",
    "replay_records",
    "create_hash_chain",
]

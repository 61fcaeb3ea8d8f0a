"""
Hashing primitives for proofchain-kernel.

Uses hashlib for SHA-256. All digests are 64-character lowercase hex
strings computed over UTF-8 bytes.
"""

import hashlib
import hmac
import threading
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .canonical import canonical_json, format_timestamp, utc_now
from .storage import CollisionStore, InMemoryCollisionStore


DIGEST_LENGTH = 64

# Link value for the first element of any chain (no predecessor)
ZERO_DIGEST = "0" * DIGEST_LENGTH


def _to_bytes(data: str | bytes) -> bytes:
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    if isinstance(data, str):
        return data.encode("utf-8")
    raise TypeError(f"Expected str or bytes, got {type(data).__name__}")


def hash_data(data: str | bytes) -> str:
    """
    Compute the SHA-256 digest of raw data.

    Args:
        data: Text (encoded as UTF-8) or bytes

    Returns:
        64-character lowercase hex digest
    """
    return hashlib.sha256(_to_bytes(data)).hexdigest()


def hash_with_timestamp(data: str | bytes, timestamp: datetime | None = None) -> str:
    """
    Hash ``"<ISO timestamp>|<data>"``.

    Not deterministic across calls unless ``timestamp`` is pinned, since the
    current time is used when it is omitted.
    """
    ts = format_timestamp(timestamp or utc_now())
    return hashlib.sha256(ts.encode("utf-8") + b"|" + _to_bytes(data)).hexdigest()


def hash_object(value: Any) -> str:
    """Hash the canonical JSON form of a structured value."""
    return hash_data(canonical_json(value))


def hash_number(value: int | float | str) -> str:
    """Hash a number through its decimal text, prefixed with ``NUM:``."""
    return hash_data(f"NUM:{value}")


def hash_formula(name: str, inputs: Mapping[str, Any], output: Any) -> str:
    """Fingerprint one evaluation of a named formula."""
    return hash_object({"formula": name, "inputs": dict(inputs), "output": output})


def generate_proof_hash(
    proof_type: Any,
    statement: str,
    evidence: Sequence[Any],
    timestamp: datetime | None = None,
) -> str:
    """
    Fingerprint a statement together with the digests of its evidence.

    The timestamp is part of the digest; pin it for a reproducible value.
    """
    return hash_object({
        "type": proof_type,
        "statement": statement,
        "evidence": [hash_object(item) for item in evidence],
        "timestamp": format_timestamp(timestamp or utc_now()),
    })


def record_fingerprint(
    data: str,
    chain_id: str,
    record_id: str,
    timestamp: datetime | None = None,
) -> str:
    """Digest binding ``data`` to a chain and record id at a point in time."""
    ts = format_timestamp(timestamp or utc_now())
    return hash_data(f"{chain_id}|{record_id}|{data}|{ts}")


def compare_hashes(left: str, right: str) -> bool:
    """
    Constant-time string comparison to prevent timing side-channel attacks.

    Anything that is not a string never matches.
    """
    if not isinstance(left, str) or not isinstance(right, str):
        return False
    return hmac.compare_digest(left.encode("utf-8"), right.encode("utf-8"))


def merkle_root(digests: Iterable[str]) -> str:
    """
    Fold an ordered list of digests into a single root.

    Adjacent digests are paired as ``hash(left + right)``; the last one is
    paired with itself when a level has odd length. An empty list yields
    ``hash("")`` and a single digest is returned unchanged.
    """
    level = list(digests)
    if not level:
        return hash_data("")

    while len(level) > 1:
        if len(level) % 2:
            level.append(level[-1])
        level = [hash_data(level[i] + level[i + 1]) for i in range(0, len(level), 2)]

    return level[0]


@dataclass
class HashVerification:
    """Outcome of checking one input against an expected digest."""
    valid: bool
    digest: str
    expected_digest: str
    timestamp: datetime
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "valid": self.valid,
            "digest": self.digest,
            "expectedDigest": self.expected_digest,
            "timestamp": format_timestamp(self.timestamp),
        }
        if self.error_message is not None:
            result["errorMessage"] = self.error_message
        return result


@dataclass
class BatchVerification:
    valid: bool
    results: list[HashVerification] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "results": [r.to_dict() for r in self.results]}


def verify_hash(data: str | bytes, expected_digest: str) -> HashVerification:
    """Recompute the digest of ``data`` and compare it with ``expected_digest``."""
    digest = hash_data(data)
    valid = compare_hashes(digest, expected_digest)
    return HashVerification(
        valid=valid,
        digest=digest,
        expected_digest=expected_digest,
        timestamp=utc_now(),
        error_message=None if valid else "Hash mismatch",
    )


def batch_verify(items: Iterable[Any]) -> BatchVerification:
    """
    Verify every item independently; never stops at the first failure.

    Args:
        items: ``(data, expected_digest)`` pairs, or mappings with ``input``
            and ``expectedDigest`` (or ``expected_digest``) keys
    """
    results = []
    for item in items:
        if isinstance(item, Mapping):
            data = item["input"]
            expected = item.get("expectedDigest", item.get("expected_digest"))
        else:
            data, expected = item
        results.append(verify_hash(data, expected or ""))

    return BatchVerification(valid=all(r.valid for r in results), results=results)


@dataclass
class CollisionReport:
    is_collision: bool
    existing_inputs: list[str] = field(default_factory=list)


class CollisionTracker:
    """
    Best-effort instrumentation that remembers which inputs produced which
    digest. Meant for test and audit environments; it is not a security
    control and the default store does not bound memory.
    """

    def __init__(self, store: CollisionStore | None = None) -> None:
        self.store: CollisionStore = store if store is not None else InMemoryCollisionStore()
        self._lock = threading.Lock()

    def detect(self, data: str) -> CollisionReport:
        digest = hash_data(data)
        with self._lock:
            existing = self.store.get(digest)
            if existing and data not in existing:
                return CollisionReport(is_collision=True, existing_inputs=existing)
            self.store.add(digest, data)
        return CollisionReport(is_collision=False)

    def clear(self) -> None:
        self.store.clear()

    def __len__(self) -> int:
        return len(self.store)


_default_tracker = CollisionTracker()


def detect_collision(data: str) -> CollisionReport:
    """Check ``data`` against the process-wide collision tracker."""
    return _default_tracker.detect(data)


def clear_collision_map() -> None:
    _default_tracker.clear()


def collision_map_size() -> int:
    return len(_default_tracker)


__all__ = [
    "DIGEST_LENGTH",
    "ZERO_DIGEST",
    "hash_data",
    "hash_with_timestamp",
    "hash_object",
    "hash_number",
    "hash_formula",
    "generate_proof_hash",
    "record_fingerprint",
    "compare_hashes",
    "merkle_root",
    "verify_hash",
    "batch_verify",
    "HashVerification",
    "BatchVerification",
    "CollisionReport",
    "CollisionTracker",
    "detect_collision",
    "clear_collision_map",
    "collision_map_size",
]

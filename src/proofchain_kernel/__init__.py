"""
proofchain-kernel: tamper-evident event logs and proof chains.

Every log entry and proof record carries a SHA-256 digest linked to the
digest of its predecessor, so any edit, removal or reordering shows up
when the chain is replayed.
"""

from .canonical import canonical_json, canonicalize, format_timestamp, parse_timestamp
from .config import EventLogConfig, LogLevel, load_config
from .context import ProofContext
from .errors import (
    ChainVerificationResult,
    ErrorCode,
    InvalidInputError,
    ProofChainError,
    VerificationError,
    VerificationResult,
)
from .eventlog import EventLog, LogEntry
from .hashing import (
    DIGEST_LENGTH,
    ZERO_DIGEST,
    CollisionTracker,
    batch_verify,
    clear_collision_map,
    collision_map_size,
    compare_hashes,
    detect_collision,
    generate_proof_hash,
    hash_data,
    hash_formula,
    hash_number,
    hash_object,
    hash_with_timestamp,
    merkle_root,
    record_fingerprint,
    verify_hash,
)
from .ledger import ProofChain, ProofRecord, ProofType, create_hash_chain
from .sign import attach_signature, sign_export_ed25519, sign_export_hmac, verify_signatures
from .sinks import ConsoleSink, FileSink, SinkDispatcher
from .storage import BoundedCollisionStore, InMemoryCollisionStore
from .summary import chain_summary, format_chain_summary
from .verify import verify_chain_export, verify_log_export

__version__ = "0.1.0"
__all__ = [
    # Canonical JSON
    "canonical_json",
    "canonicalize",
    "format_timestamp",
    "parse_timestamp",
    # Hashing
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
    "detect_collision",
    "clear_collision_map",
    "collision_map_size",
    "CollisionTracker",
    "InMemoryCollisionStore",
    "BoundedCollisionStore",
    # Event log
    "LogLevel",
    "EventLogConfig",
    "load_config",
    "EventLog",
    "LogEntry",
    "ConsoleSink",
    "FileSink",
    "SinkDispatcher",
    # Proof chains
    "ProofType",
    "ProofRecord",
    "ProofChain",
    "create_hash_chain",
    "ProofContext",
    # Verification
    "verify_chain_export",
    "verify_log_export",
    "verify_signatures",
    "sign_export_hmac",
    "sign_export_ed25519",
    "attach_signature",
    "chain_summary",
    "format_chain_summary",
    # Errors
    "ProofChainError",
    "InvalidInputError",
    "ErrorCode",
    "VerificationError",
    "VerificationResult",
    "ChainVerificationResult",
]

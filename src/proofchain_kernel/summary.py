"""
Summary utilities for human-readable inspection of export documents.

Extracts key metadata without modifying the document.
"""

from typing import Any

from .config import LogLevel
from .hashing import merkle_root


def _level_name(value: Any) -> str:
    try:
        return LogLevel(value).name
    except (TypeError, ValueError):
        return str(value)


def chain_summary(document: dict[str, Any]) -> dict[str, Any]:
    """
    Summarize a proof-chain or event-log export.

    Returns:
        Dict with kind, id, count, kinds (proof types or level names),
        last_digest, merkle_root and verified
    """
    if "entries" in document:
        items = document.get("entries") or []
        kinds = sorted(set(_level_name(e.get("level")) for e in items))
        return {
            "kind": "event_log",
            "id": document.get("proofChainId", ""),
            "count": len(items),
            "kinds": kinds,
            "last_digest": document.get("lastDigest", ""),
            "merkle_root": merkle_root(e.get("digest", "") for e in items),
            "verified": bool(document.get("verified")),
        }

    items = document.get("records") or []
    return {
        "kind": "proof_chain",
        "id": document.get("chainId", ""),
        "count": len(items),
        "kinds": sorted(set(r.get("type", "unknown") for r in items)),
        "last_digest": document.get("lastDigest", ""),
        "merkle_root": merkle_root(r.get("chainDigest", "") for r in items),
        "verified": bool(document.get("verified")),
    }


def format_chain_summary(document: dict[str, Any]) -> str:
    """
    Format an export document as a single-line string, e.g.
    ``CHAIN-abc (proof_chain) | 3 records [AXIOM, FORMULA] | last 1f2e3d4c5b6a7980... | verified``
    """
    s = chain_summary(document)
    noun = "entries" if s["kind"] == "event_log" else "records"
    last = s["last_digest"][:16] + "..." if len(s["last_digest"]) > 16 else s["last_digest"]
    kinds = ", ".join(s["kinds"]) if s["kinds"] else "none"
    status = "verified" if s["verified"] else "UNVERIFIED"
    return f"{s['id']} ({s['kind']}) | {s['count']} {noun} [{kinds}] | last {last} | {status}"

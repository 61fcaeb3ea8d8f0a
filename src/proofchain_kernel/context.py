"""
Application context holding one event log and a registry of named proof
chains. Code that needs "the" log or a shared chain receives the context
explicitly instead of reaching for a global.
"""

import logging
import threading
from typing import Any, Iterable

from .config import EventLogConfig
from .errors import InvalidInputError
from .eventlog import EventLog
from .hashing import merkle_root
from .ledger import ProofChain, ProofRecord, ProofType
from .sinks import Sink


logger = logging.getLogger(__name__)


class ProofContext:
    def __init__(
        self,
        config: EventLogConfig | None = None,
        sinks: Iterable[Sink] | None = None,
        event_log: EventLog | None = None,
    ) -> None:
        self.event_log = event_log if event_log is not None else EventLog(config, sinks)
        self._lock = threading.Lock()
        self._chains: dict[str, ProofChain] = {}

    def __enter__(self) -> "ProofContext":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def chains(self) -> dict[str, ProofChain]:
        with self._lock:
            return dict(self._chains)

    def create_chain(self, chain_id: str | None = None) -> ProofChain:
        """
        Create and register a new chain.

        Raises:
            InvalidInputError: if a chain with the same explicit id exists
        """
        with self._lock:
            if chain_id is not None and chain_id in self._chains:
                raise InvalidInputError(
                    f"Chain already exists: {chain_id}",
                    details={"chain_id": chain_id},
                )
            chain = ProofChain(chain_id)
            # Generated ids carry a random suffix; retry on the unlikely clash
            while chain.chain_id in self._chains:
                chain = ProofChain()
            self._chains[chain.chain_id] = chain
        logger.debug("registered chain %s", chain.chain_id)
        return chain

    def register_chain(self, chain: ProofChain) -> ProofChain:
        """Register an existing chain, e.g. one rebuilt from an export."""
        with self._lock:
            if chain.chain_id in self._chains:
                raise InvalidInputError(
                    f"Chain already exists: {chain.chain_id}",
                    details={"chain_id": chain.chain_id},
                )
            self._chains[chain.chain_id] = chain
        return chain

    def chain(self, chain_id: str) -> ProofChain:
        with self._lock:
            try:
                return self._chains[chain_id]
            except KeyError:
                raise InvalidInputError(f"Unknown chain: {chain_id}", details={"chain_id": chain_id}) from None

    def record_proof(
        self,
        chain_id: str,
        proof_type: ProofType | str,
        input: str,
        output: str,
        metadata: dict[str, Any] | None = None,
    ) -> ProofRecord:
        """Add a record to a registered chain and log a PROOF entry for it."""
        record = self.chain(chain_id).add_record(proof_type, input, output, metadata)
        self.event_log.proof(
            f"{record.type.value} recorded",
            {
                "chainId": chain_id,
                "recordId": record.id,
                "chainDigest": record.chain_digest,
            },
        )
        return record

    def integrity_report(self) -> dict[str, Any]:
        """
        Verify the event log and every registered chain.

        ``root`` is the Merkle root over the tail digests of all chains,
        ordered by chain id.
        """
        chains = self.chains
        log_result = self.event_log.verify()
        chain_results = {cid: chains[cid].verify() for cid in sorted(chains)}
        return {
            "valid": log_result.valid and all(r.valid for r in chain_results.values()),
            "eventLog": log_result.to_dict(),
            "chains": {cid: r.to_dict() for cid, r in chain_results.items()},
            "root": merkle_root(chains[cid].last_digest for cid in sorted(chains)),
        }

    def close(self) -> None:
        self.event_log.close()


__all__ = ["ProofContext"]

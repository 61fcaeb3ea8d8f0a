"""Proof chain tests: linking, verification, tamper detection, export/import."""

import json
import threading

import pytest

from proofchain_kernel import (
    ErrorCode,
    InvalidInputError,
    ProofChain,
    ProofType,
    ZERO_DIGEST,
    create_hash_chain,
    hash_data,
    merkle_root,
)
from proofchain_kernel.ids import to_base36
from proofchain_kernel.ledger import compute_chain_digest


def _codes(result):
    return [e.code for e in result.errors]


def _filled(chain, n=4):
    for i in range(n):
        chain.add_record(ProofType.COMPUTATION, f"{i}+{i}", str(i + i), {"step": i})
    return chain


class TestAddRecord:
    def test_first_record_links_to_zero_sentinel(self, chain):
        record = chain.add_record(ProofType.AXIOM, "a", "a")
        assert record.previous_digest == ZERO_DIGEST
        assert chain.last_digest == record.chain_digest

    def test_records_link_to_predecessor(self, chain):
        _filled(chain, 5)
        records = chain.records
        for prev, cur in zip(records, records[1:]):
            assert cur.previous_digest == prev.chain_digest

    def test_content_digests(self, chain):
        record = chain.add_record(ProofType.FORMULA, "F=ma", "10")
        assert record.input_digest == hash_data("F=ma")
        assert record.output_digest == hash_data("10")

    def test_chain_digest_excludes_raw_bodies(self, chain):
        record = chain.add_record(ProofType.FORMULA, "F=ma", "10", {"unit": "N"})
        expected = compute_chain_digest(
            record.id, record.timestamp, record.type,
            record.input_digest, record.output_digest, record.previous_digest,
        )
        assert record.chain_digest == expected

    def test_ids_are_zero_padded_and_increasing(self, chain):
        _filled(chain, 3)
        ids = [r.id for r in chain.records]
        assert ids == [
            "test-chain-REC-00000001",
            "test-chain-REC-00000002",
            "test-chain-REC-00000003",
        ]
        assert ids == sorted(set(ids))

    def test_accepts_wire_string_type(self, chain):
        record = chain.add_record("THEOREM", "p", "q")
        assert record.type is ProofType.THEOREM

    def test_rejects_unknown_type(self, chain):
        with pytest.raises(InvalidInputError):
            chain.add_record("CONJECTURE", "p", "q")

    def test_rejects_non_string_bodies(self, chain):
        with pytest.raises(InvalidInputError):
            chain.add_record(ProofType.COMPUTATION, 4, "4")

    def test_rejects_uncanonical_metadata(self, chain):
        with pytest.raises(InvalidInputError):
            chain.add_record(ProofType.COMPUTATION, "a", "b", {"bad": object()})
        assert chain.record_count == 0

    def test_metadata_is_canonicalized(self, chain):
        record = chain.add_record(ProofType.COMPUTATION, "a", "b", {"pair": (1, 2)})
        assert record.metadata == {"pair": [1, 2]}

    def test_records_are_immutable(self, chain):
        record = chain.add_record(ProofType.AXIOM, "a", "a")
        with pytest.raises(AttributeError):
            record.output = "b"


class TestChainIdentity:
    def test_generated_chain_id(self):
        chain = ProofChain()
        assert chain.chain_id.startswith("CHAIN-")
        assert chain.chain_id != ProofChain().chain_id

    def test_base36_timestamps(self):
        assert to_base36(0) == "0"
        assert to_base36(35) == "z"
        assert to_base36(36) == "10"

    def test_factory(self):
        assert create_hash_chain("named").chain_id == "named"

    def test_rejects_blank_chain_id(self):
        with pytest.raises(InvalidInputError):
            ProofChain("   ")

    def test_empty_chain(self):
        chain = ProofChain()
        assert chain.last_digest == ZERO_DIGEST
        assert chain.record_count == 0
        assert chain.merkle_root() == hash_data("")


class TestLookup:
    def test_get_record_by_id(self, chain):
        _filled(chain, 3)
        target = chain.records[1]
        assert chain.get_record_by_id(target.id) is target
        assert chain.get_record_by_id("missing") is None

    def test_get_records_by_type(self, chain):
        chain.add_record(ProofType.AXIOM, "a", "a")
        chain.add_record(ProofType.FORMULA, "f", "1")
        chain.add_record(ProofType.AXIOM, "b", "b")
        axioms = chain.get_records_by_type(ProofType.AXIOM)
        assert [r.input for r in axioms] == ["a", "b"]
        assert chain.get_records_by_type("INTEGRATION") == []

    def test_records_returns_copy(self, chain):
        _filled(chain, 2)
        chain.records.clear()
        assert chain.record_count == 2


class TestVerify:
    def test_empty_chain_is_valid(self, chain):
        result = chain.verify()
        assert result.valid
        assert result.total_records == 0
        assert result.broken_links == []

    def test_untampered_chain_is_valid(self, chain):
        _filled(chain, 10)
        result = chain.verify()
        assert result.valid
        assert result.total_records == 10
        assert result.valid_records == 10
        assert result.invalid_records == 0
        assert result.broken_links == []
        assert result.first_error is None

    def test_wrong_answer_still_verifies(self, chain):
        """Content integrity is verified, not mathematical correctness."""
        chain.add_record(ProofType.COMPUTATION, "2+2", "4")
        wrong = chain.add_record(ProofType.COMPUTATION, "2+2", "5")

        assert chain.verify().valid
        assert hash_data("5") == wrong.output_digest

    def test_clear_resets_to_sentinel(self, chain):
        _filled(chain, 3)
        chain.clear()
        assert chain.record_count == 0
        assert chain.last_digest == ZERO_DIGEST
        record = chain.add_record(ProofType.AXIOM, "a", "a")
        assert record.previous_digest == ZERO_DIGEST
        assert record.id.endswith("-00000001")

    def test_merkle_root_over_chain_digests(self, chain):
        _filled(chain, 3)
        assert chain.merkle_root() == merkle_root(r.chain_digest for r in chain.records)


class TestTamperDetection:
    """Tampering is simulated on the export document, then re-imported."""

    def _tampered(self, chain, mutate):
        document = json.loads(chain.export_to_json())
        mutate(document)
        return ProofChain.import_from_json(document).verify()

    def test_output_body_tamper(self, chain):
        _filled(chain)

        def mutate(doc):
            doc["records"][1]["output"] = "999"

        result = self._tampered(chain, mutate)
        assert not result.valid
        assert result.broken_links == [1]
        assert _codes(result) == [ErrorCode.OUTPUT_HASH_MISMATCH]
        assert result.first_error == "Invalid output digest at record 1"

    def test_input_body_tamper(self, chain):
        _filled(chain)

        def mutate(doc):
            doc["records"][2]["input"] = "tampered"

        result = self._tampered(chain, mutate)
        assert not result.valid
        assert result.broken_links == [2]
        assert _codes(result) == [ErrorCode.INPUT_HASH_MISMATCH]

    def test_chain_digest_tamper_breaks_next_link(self, chain):
        _filled(chain)

        def mutate(doc):
            doc["records"][1]["chainDigest"] = "f" * 64

        result = self._tampered(chain, mutate)
        assert not result.valid
        assert result.broken_links == [1, 2]
        assert ErrorCode.CHAIN_HASH_MISMATCH in _codes(result)
        assert ErrorCode.HASH_CHAIN_BROKEN in _codes(result)

    def test_timestamp_tamper(self, chain):
        _filled(chain)

        def mutate(doc):
            doc["records"][0]["timestamp"] = "1999-01-01T00:00:00.000Z"

        result = self._tampered(chain, mutate)
        assert result.broken_links == [0]
        assert _codes(result) == [ErrorCode.CHAIN_HASH_MISMATCH]

    def test_reordering_is_detected(self, chain):
        _filled(chain)

        def mutate(doc):
            records = doc["records"]
            records[1], records[2] = records[2], records[1]

        result = self._tampered(chain, mutate)
        assert not result.valid
        # record 3 still points at the original record 2
        assert result.broken_links == [1, 2, 3]
        assert ErrorCode.LAST_DIGEST_MISMATCH not in _codes(result)
        assert ErrorCode.CHAIN_HASH_MISMATCH not in _codes(result)

    def test_removed_tail_is_detected(self, chain):
        _filled(chain)

        def mutate(doc):
            doc["records"].pop()

        result = self._tampered(chain, mutate)
        assert not result.valid
        assert result.broken_links == []
        assert _codes(result) == [ErrorCode.LAST_DIGEST_MISMATCH]

    def test_duplicate_ids_are_reported(self, chain):
        _filled(chain)

        def mutate(doc):
            doc["records"][3]["id"] = doc["records"][2]["id"]

        result = self._tampered(chain, mutate)
        assert 3 in result.broken_links
        assert ErrorCode.DUPLICATE_RECORD_ID in _codes(result)

    def test_every_break_is_reported(self, chain):
        _filled(chain, 6)

        def mutate(doc):
            doc["records"][1]["output"] = "x"
            doc["records"][4]["input"] = "y"

        result = self._tampered(chain, mutate)
        assert result.broken_links == [1, 4]
        assert result.invalid_records == 2
        assert result.valid_records == 4


class TestExportImport:
    def test_export_document_shape(self, chain):
        _filled(chain, 2)
        document = json.loads(chain.export_to_json())
        assert document["chainId"] == "test-chain"
        assert document["recordCount"] == 2
        assert document["lastDigest"] == chain.last_digest
        assert document["verified"] is True
        assert document["createdAt"].endswith("Z")
        record = document["records"][0]
        assert set(record) == {
            "id", "timestamp", "type", "input", "output",
            "inputDigest", "outputDigest", "previousDigest", "chainDigest", "metadata",
        }
        assert record["type"] == "COMPUTATION"

    def test_round_trip_preserves_verification(self, chain):
        _filled(chain, 5)
        imported = ProofChain.import_from_json(chain.export_to_json())

        assert imported.verify().to_dict() == chain.verify().to_dict()
        assert imported.records == chain.records
        assert imported.chain_id == chain.chain_id
        assert imported.last_digest == chain.last_digest

    def test_imported_chain_keeps_growing(self, chain):
        _filled(chain, 2)
        imported = ProofChain.import_from_json(chain.export_to_json())
        record = imported.add_record(ProofType.INTEGRATION, "x", "y")

        assert record.id == "test-chain-REC-00000003"
        assert record.previous_digest == chain.last_digest
        assert imported.verify().valid

    def test_round_trip_of_empty_chain(self):
        chain = ProofChain()
        imported = ProofChain.import_from_json(chain.export_to_json())
        assert imported.verify().valid
        assert imported.record_count == 0

    def test_import_rejects_invalid_json(self):
        with pytest.raises(InvalidInputError):
            ProofChain.import_from_json("{not json")

    def test_import_rejects_non_object(self):
        with pytest.raises(InvalidInputError):
            ProofChain.import_from_json("[1, 2]")

    def test_import_rejects_missing_field(self, chain):
        document = chain.to_document()
        del document["records"]
        with pytest.raises(InvalidInputError) as exc_info:
            ProofChain.import_from_json(document)
        assert exc_info.value.details == {"field": "records"}

    def test_import_rejects_bad_record(self, chain):
        _filled(chain, 2)
        document = chain.to_document()
        del document["records"][1]["chainDigest"]
        with pytest.raises(InvalidInputError):
            ProofChain.import_from_json(document)

    def test_imported_metadata_is_detached_from_source(self, chain):
        chain.add_record(ProofType.FORMULA, "F=ma", "12", {"m": 3, "a": 4})
        document = chain.to_document()
        imported = ProofChain.import_from_json(document)

        document["records"][0]["metadata"]["m"] = 99
        assert imported.records[0].metadata == {"a": 4, "m": 3}

    def test_import_rejects_non_finite_metadata(self, chain):
        chain.add_record(ProofType.FORMULA, "F=ma", "12", {"m": 3})
        text = chain.export_to_json().replace('"m": 3', '"m": NaN')
        with pytest.raises(InvalidInputError) as exc_info:
            ProofChain.import_from_json(text)
        assert exc_info.value.details == {"index": 0, "field": "metadata"}

    def test_import_rejects_unknown_type(self, chain):
        _filled(chain, 1)
        document = chain.to_document()
        document["records"][0]["type"] = "MAGIC"
        with pytest.raises(InvalidInputError):
            ProofChain.import_from_json(document)


class TestConcurrency:
    def test_concurrent_writers_keep_chain_valid(self):
        chain = ProofChain()

        def writer(n):
            for i in range(50):
                chain.add_record(ProofType.COMPUTATION, f"{n}:{i}", str(i))

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        result = chain.verify()
        assert result.valid
        assert result.total_records == 400
        assert len({r.id for r in chain.records}) == 400

"""Application context tests."""

import pytest

from proofchain_kernel import (
    EventLogConfig,
    InvalidInputError,
    LogLevel,
    ProofChain,
    ProofContext,
    ProofType,
    merkle_root,
)


@pytest.fixture
def context(quiet_config):
    ctx = ProofContext(quiet_config)
    yield ctx
    ctx.close()


class TestChains:
    def test_create_named_chain(self, context):
        chain = context.create_chain("core-integration")
        assert context.chain("core-integration") is chain

    def test_duplicate_chain_id_rejected(self, context):
        context.create_chain("core")
        with pytest.raises(InvalidInputError) as exc_info:
            context.create_chain("core")
        assert exc_info.value.details == {"chain_id": "core"}

    def test_generated_ids_are_unique(self, context):
        ids = {context.create_chain().chain_id for _ in range(20)}
        assert len(ids) == 20
        assert set(context.chains) == ids

    def test_unknown_chain(self, context):
        with pytest.raises(InvalidInputError):
            context.chain("missing")

    def test_register_imported_chain(self, context):
        source = ProofChain("imported")
        source.add_record(ProofType.AXIOM, "a", "a")
        chain = context.register_chain(ProofChain.import_from_json(source.export_to_json()))
        assert context.chain("imported") is chain
        with pytest.raises(InvalidInputError):
            context.register_chain(ProofChain("imported"))

    def test_independent_chains(self, context):
        first = context.create_chain("first")
        second = context.create_chain("second")
        first.add_record(ProofType.AXIOM, "a", "a")
        assert second.record_count == 0
        assert second.add_record(ProofType.AXIOM, "a", "a").chain_digest != first.last_digest


class TestRecordProof:
    def test_record_proof_logs_entry(self, context):
        context.create_chain("physics")
        record = context.record_proof("physics", ProofType.FORMULA, "E=mc^2", "9e16", {"m": 1})

        entries = context.event_log.get_entries_by_level(LogLevel.PROOF)
        assert len(entries) == 1
        assert entries[0].message == "FORMULA recorded"
        assert entries[0].payload == {
            "chainId": "physics",
            "recordId": record.id,
            "chainDigest": record.chain_digest,
        }

    def test_record_proof_unknown_chain(self, context):
        with pytest.raises(InvalidInputError):
            context.record_proof("nowhere", ProofType.AXIOM, "a", "a")
        assert context.event_log.entry_count == 0


class TestIntegrityReport:
    def test_clean_report(self, context):
        context.create_chain("a")
        context.create_chain("b")
        context.record_proof("a", ProofType.AXIOM, "x", "x")
        context.record_proof("b", ProofType.THEOREM, "y", "y")

        report = context.integrity_report()
        assert report["valid"]
        assert sorted(report["chains"]) == ["a", "b"]
        assert report["eventLog"]["totalRecords"] == 2
        expected_root = merkle_root([context.chain("a").last_digest, context.chain("b").last_digest])
        assert report["root"] == expected_root

    def test_report_flags_broken_chain(self, context):
        source = ProofChain("bad")
        source.add_record(ProofType.AXIOM, "x", "x")
        document = source.to_document()
        document["records"][0]["input"] = "y"
        context.register_chain(ProofChain.import_from_json(document))

        report = context.integrity_report()
        assert not report["valid"]
        assert report["chains"]["bad"]["brokenLinks"] == [0]

    def test_context_manager_closes_log(self):
        with ProofContext(EventLogConfig(enable_console=False)) as ctx:
            ctx.event_log.info("x")
        assert ctx.event_log.verify_chain()

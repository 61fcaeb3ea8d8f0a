import sys
from pathlib import Path

import pytest

# Add parent src to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from proofchain_kernel import EventLog, EventLogConfig, ProofChain, clear_collision_map


class ListSink:
    """Sink that keeps every entry it is handed."""

    def __init__(self):
        self.entries = []
        self.closed = False

    def write(self, entry):
        self.entries.append(entry)

    def close(self):
        self.closed = True


class BrokenSink:
    """Sink whose every write fails."""

    def __init__(self):
        self.attempts = 0

    def write(self, entry):
        self.attempts += 1
        raise OSError("disk full")

    def close(self):
        raise OSError("already gone")


@pytest.fixture
def quiet_config():
    return EventLogConfig(enable_console=False, sink_mode="inline")


@pytest.fixture
def event_log(quiet_config):
    log = EventLog(quiet_config)
    yield log
    log.close()


@pytest.fixture
def chain():
    return ProofChain("test-chain")


@pytest.fixture(autouse=True)
def _fresh_collision_map():
    clear_collision_map()
    yield
    clear_collision_map()

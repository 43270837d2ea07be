import os
import sys
import tempfile

import pytest

# Settings are read at import time: point the module-level app in main.py at a
# throwaway database and keep its workers off before anything imports wnr.
os.environ.setdefault("WNR_DB_PATH", os.path.join(tempfile.mkdtemp(prefix="wnr-tests-"), "wnr.db"))
os.environ.setdefault("WNR_START_WORKERS", "false")

# Ensure project root is importable (so `import main` works reliably across environments)
_project_root = os.path.dirname(os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from wnr.events import MemoryEventSink  # noqa: E402
from wnr.models import NodeSpec  # noqa: E402
from wnr.store import MemoryStore  # noqa: E402

PEER_ADDR = "/ip4/10.0.0.5/tcp/60000"


def make_node(name="n1", namespace="default", image="img:v1", **kw) -> NodeSpec:
    return NodeSpec(name=name, namespace=namespace, image=image, **kw)


class FakeResolver:
    """Stands in for Resolver: returns a fixed address or raises a fixed failure."""

    def __init__(self, answer=PEER_ADDR, failure=None):
        self.answer = answer
        self.failure = failure
        self.calls = []

    def __call__(self, ref, namespace, cancel=None):
        self.calls.append((ref, namespace))
        if self.failure is not None:
            raise self.failure
        return self.answer


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def sink():
    return MemoryEventSink()

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[3]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from services.assistant.edit_workflow import workflows
from services.assistant.session import sessions


@pytest.fixture(autouse=True)
def _reset_state() -> None:
    sessions.clear()
    workflows.clear()
    yield
    sessions.clear()
    workflows.clear()

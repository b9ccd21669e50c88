import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from tippool.application import reset_tip_pool_state


@pytest.fixture(autouse=True)
def reset_state():
    reset_tip_pool_state()
    yield
    reset_tip_pool_state()

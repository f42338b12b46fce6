"""
Pytest fixtures for the Timelock SDK tests.
"""
import os
import time

import pytest

from timelock_sdk._rate_limited_log import reset_rate_limits
from timelock_sdk.config import NetworkConfig
from timelock_sdk.executor import SubmissionExecutor
from timelock_sdk.models import Operation
from timelock_sdk.network.simulated import SimulatedNetwork
from timelock_sdk.registry import OperationRegistry

# Constants for testing
TEST_PRIV_KEY = "0x0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"
TEST_RPC_URL = "https://rpc.example.com"
TEST_TARGET = "0x4d9f91728A0EC27a000C9723d1aa9491d286b697"
TEST_RECIPIENT = "0x0D745Ff007d343D79164E30Ad00340d5770bFE27"
TEST_SALT = "0x" + "01" * 32
MIN_DELAY = 48 * 60 * 60  # 172800 seconds (48 hours)
START_TIME = 1_700_000_000


# ─────────────────────────────────────────────────────────────────────────
#  FAST RETRY BEHAVIOUR FOR TESTS
# ─────────────────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def _fast_sleep(monkeypatch):
    """Make time.sleep instantaneous and record the requested waits."""
    calls = []
    monkeypatch.setattr(time, "sleep", lambda seconds, *_a, **_kw: calls.append(seconds))
    return calls


@pytest.fixture
def sleeps(_fast_sleep):
    return _fast_sleep


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch):
    """Drop TIMELOCK_* variables and cached state that would leak between tests."""
    for name in list(os.environ):
        if name.startswith("TIMELOCK_"):
            monkeypatch.delenv(name, raising=False)
    NetworkConfig._networks_cache = None
    reset_rate_limits()
    yield
    NetworkConfig._networks_cache = None


@pytest.fixture
def network():
    """In-memory chain whose clock starts at START_TIME."""
    return SimulatedNetwork(now=START_TIME)


@pytest.fixture
def timelock(network):
    """Address of a timelock with a 48 hour minimum delay."""
    return network.deploy_timelock(MIN_DELAY)


@pytest.fixture
def executor(network):
    return SubmissionExecutor(network, max_attempts=3, attempt_timeout=30, backoff_unit=2)


@pytest.fixture
def registry(network, executor, timelock):
    return OperationRegistry(network, executor, timelock)


@pytest.fixture
def operation():
    """A plain operation: call TEST_TARGET with some payload."""
    return Operation(
        target=TEST_TARGET,
        value=0,
        payload="0x40c10f19",
        salt=TEST_SALT
    )

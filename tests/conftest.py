from __future__ import annotations

import pytest
from loguru import logger

from gke_sandbox.config import SandboxConfig
from tests.fakes import FakeCloudClient, FakeTerminal


@pytest.fixture
def client() -> FakeCloudClient:
    c = FakeCloudClient()
    c.add_cluster()
    return c


@pytest.fixture
def terminal() -> FakeTerminal:
    return FakeTerminal()


@pytest.fixture
def config() -> SandboxConfig:
    return SandboxConfig(
        project="proj",
        zone="us-central1-a",
        iam_settle_seconds=0.0,
        running_poll_interval=10.0,
        running_poll_timeout=180.0,
        readiness_poll_interval=15.0,
        readiness_poll_attempts=12,
    )


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def sleep(sleeps: list[float]):
    return sleeps.append


@pytest.fixture
def log_messages():
    """Capture loguru output as ``"LEVEL message"`` strings."""
    messages: list[str] = []
    hid = logger.add(lambda m: messages.append(f"{m.record['level'].name} {m.record['message']}"))
    yield messages
    logger.remove(hid)

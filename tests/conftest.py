import pytest

from gmudgate.config import GateSettings
from gmudgate.observability.internal_metrics import reset as reset_metrics
from tests.clickup_fakes import FakeClickUp, FakeClock, RecordingNotifier


@pytest.fixture(autouse=True)
def _clean_metrics():
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def settings():
    return GateSettings(
        token="pk_test_token",
        list_id="901321558663",
        poll_interval_seconds=30,
        timeout_minutes=60,
    )


@pytest.fixture
def fake_clickup():
    return FakeClickUp(statuses=["EM ANÁLISE"])


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()

import pytest

from gmudgate.errors import ApprovalRejectedError, ApprovalTimeoutError
from gmudgate.gmud.types import ApprovalRequest, DecisionType
from gmudgate.gmud.wait import classify_status, wait_for_decision
from gmudgate.integrations.clickup.client import ClickUpClientError, ClickUpDependencyTimeout
from gmudgate.observability.internal_metrics import snapshot
from tests.clickup_fakes import FakeClickUp


def _request(clock, timeout_minutes=60, interval=30, approved="APROVADAS", rejected="NEGADAS"):
    return ApprovalRequest.start(
        "999",
        timeout_minutes=timeout_minutes,
        poll_interval_seconds=interval,
        approved_label=approved,
        rejected_label=rejected,
        clock=clock,
    )


def test_classify_status_is_case_insensitive():
    assert classify_status("aprovadas", "APROVADAS", "NEGADAS") == DecisionType.APPROVED
    assert classify_status(" Negadas ", "APROVADAS", "NEGADAS") == DecisionType.REJECTED
    assert classify_status("EM ANÁLISE", "APROVADAS", "NEGADAS") is None
    assert classify_status("", "APROVADAS", "NEGADAS") is None


def test_approved_on_third_poll_sleeps_twice(fake_clock):
    client = FakeClickUp(statuses=["EM ANÁLISE", "EM ANÁLISE", "APROVADAS"])

    decision = wait_for_decision(client, _request(fake_clock), clock=fake_clock, sleep=fake_clock.sleep)

    assert decision.outcome == DecisionType.APPROVED
    assert decision.status == "APROVADAS"
    assert decision.approved is True
    assert client.status_reads == 3
    assert decision.polls == 3
    assert fake_clock.sleeps == [30.0, 30.0]


def test_rejected_returns_immediately(fake_clock):
    client = FakeClickUp(statuses=["negadas"])

    decision = wait_for_decision(client, _request(fake_clock), clock=fake_clock, sleep=fake_clock.sleep)

    assert decision.outcome == DecisionType.REJECTED
    assert decision.status == "negadas"
    assert client.status_reads == 1
    assert fake_clock.sleeps == []
    assert snapshot()["gmud_decision_rejected"] == 1


def test_custom_labels_are_matched_case_insensitively(fake_clock):
    client = FakeClickUp(statuses=["open", "Ship It"])
    request = _request(fake_clock, approved="ship it", rejected="do not ship")

    decision = wait_for_decision(client, request, clock=fake_clock, sleep=fake_clock.sleep)

    assert decision.outcome == DecisionType.APPROVED
    assert decision.status == "Ship It"


def test_times_out_when_status_never_matches(fake_clock):
    client = FakeClickUp(statuses=["EM ANÁLISE"])
    request = _request(fake_clock, timeout_minutes=2, interval=30)

    decision = wait_for_decision(client, request, clock=fake_clock, sleep=fake_clock.sleep)

    assert decision.outcome == DecisionType.TIMED_OUT
    assert decision.status == "EM ANÁLISE"
    assert client.status_reads == 4
    assert fake_clock.now <= request.deadline + request.poll_interval_seconds
    assert snapshot()["gmud_decision_timed_out"] == 1


def test_last_sleep_is_capped_at_the_deadline(fake_clock):
    client = FakeClickUp(statuses=["EM ANÁLISE"])
    request = _request(fake_clock, timeout_minutes=1, interval=45)

    decision = wait_for_decision(client, request, clock=fake_clock, sleep=fake_clock.sleep)

    assert decision.outcome == DecisionType.TIMED_OUT
    assert fake_clock.sleeps == [45.0, 15.0]
    assert fake_clock.now == request.deadline


def test_zero_timeout_never_polls(fake_clock):
    client = FakeClickUp(statuses=["APROVADAS"])

    decision = wait_for_decision(
        client, _request(fake_clock, timeout_minutes=0), clock=fake_clock, sleep=fake_clock.sleep
    )

    assert decision.outcome == DecisionType.TIMED_OUT
    assert decision.polls == 0
    assert client.status_reads == 0


def test_transient_read_errors_keep_polling(fake_clock):
    client = FakeClickUp(
        statuses=[
            ClickUpDependencyTimeout("ClickUp GET /task/999 timed out after 10s"),
            ClickUpClientError("Fetch GMUD failed: HTTP 502", status_code=502),
            "APROVADAS",
        ]
    )

    decision = wait_for_decision(client, _request(fake_clock), clock=fake_clock, sleep=fake_clock.sleep)

    assert decision.outcome == DecisionType.APPROVED
    assert client.status_reads == 3
    assert fake_clock.sleeps == [30.0, 30.0]
    assert snapshot()["gmud_status_poll_errors"] == 2


def test_read_errors_until_deadline_time_out(fake_clock):
    client = FakeClickUp(statuses=[ClickUpClientError("boom", status_code=500)])

    decision = wait_for_decision(
        client, _request(fake_clock, timeout_minutes=1), clock=fake_clock, sleep=fake_clock.sleep
    )

    assert decision.outcome == DecisionType.TIMED_OUT
    assert decision.status == ""
    assert client.status_reads == 2


def test_unexpected_errors_propagate(fake_clock):
    client = FakeClickUp(statuses=[KeyError("bug")])

    with pytest.raises(KeyError):
        wait_for_decision(client, _request(fake_clock), clock=fake_clock, sleep=fake_clock.sleep)


def test_request_rejects_identical_labels(fake_clock):
    with pytest.raises(ValueError):
        _request(fake_clock, approved="Done", rejected="done")


def test_raise_for_outcome(fake_clock):
    rejected = wait_for_decision(
        FakeClickUp(statuses=["NEGADAS"]), _request(fake_clock), clock=fake_clock, sleep=fake_clock.sleep
    )
    with pytest.raises(ApprovalRejectedError):
        rejected.raise_for_outcome()

    timed_out = wait_for_decision(
        FakeClickUp(statuses=["EM ANÁLISE"]),
        _request(fake_clock, timeout_minutes=1),
        clock=fake_clock,
        sleep=fake_clock.sleep,
    )
    with pytest.raises(ApprovalTimeoutError) as excinfo:
        timed_out.raise_for_outcome()
    assert "1 minutes" in str(excinfo.value)

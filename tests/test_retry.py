import pytest

from gke_sandbox.retry import PollSuccess, PollTimedOut, attempts_for, poll

pytestmark = [pytest.mark.unit]


class Sequence:
    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.values.pop(0) if len(self.values) > 1 else self.values[0]


class TestAttemptsFor:
    def test_running_window_probes_at_both_ends(self):
        # t=0, 10, ..., 180
        assert attempts_for(180, 10) == 19

    def test_rounds_down(self):
        assert attempts_for(25, 10) == 3

    def test_shorter_than_interval_probes_once(self):
        assert attempts_for(1, 10) == 1

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError, match="interval"):
            attempts_for(10, 0)


class TestPoll:
    def test_immediate_success_does_not_sleep(self):
        sleeps: list[float] = []
        result = poll(lambda: "ok", interval=5, max_attempts=3, sleep=sleeps.append)
        assert result == PollSuccess(value="ok", attempts=1)
        assert sleeps == []

    def test_success_after_misses(self):
        sleeps: list[float] = []
        probe = Sequence(False, False, True)
        result = poll(probe, interval=15, max_attempts=12, sleep=sleeps.append)
        assert isinstance(result, PollSuccess)
        assert result.attempts == 3
        assert sleeps == [15, 15]

    def test_times_out_after_exact_attempts(self):
        sleeps: list[float] = []
        probe = Sequence(None)
        result = poll(probe, interval=10, max_attempts=4, sleep=sleeps.append)
        assert isinstance(result, PollTimedOut)
        assert result.attempts == 4
        assert probe.calls == 4
        assert len(sleeps) == 3

    def test_timeout_keeps_last_value(self):
        probe = Sequence("PROVISIONING", "STAGING")
        result = poll(
            probe,
            interval=1,
            max_attempts=2,
            until=lambda s: s == "RUNNING",
            sleep=lambda _: None,
        )
        assert result == PollTimedOut(attempts=2, last="STAGING")

    def test_custom_predicate(self):
        probe = Sequence(1, 2, 3)
        result = poll(probe, interval=1, max_attempts=5, until=lambda n: n >= 3, sleep=lambda _: None)
        assert result == PollSuccess(value=3, attempts=3)

    def test_on_attempt_reports_each_miss(self):
        seen: list[tuple[int, int]] = []
        poll(
            Sequence(False),
            interval=1,
            max_attempts=3,
            on_attempt=lambda n, total: seen.append((n, total)),
            sleep=lambda _: None,
        )
        assert seen == [(1, 3), (2, 3), (3, 3)]

    def test_probe_exceptions_propagate(self):
        def boom():
            raise RuntimeError("api down")

        with pytest.raises(RuntimeError, match="api down"):
            poll(boom, interval=1, max_attempts=3, sleep=lambda _: None)

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError, match="max_attempts"):
            poll(lambda: True, interval=1, max_attempts=0)

import pytest

from geminipocket.errors import PollTimeout, TransportError
from geminipocket.operation import InvalidTransition, Operation, OperationState, PollStatus
from geminipocket.poller import OperationFailed, OperationPoller, poll_until_done


class ScriptedCheck:
    """Returns the scripted statuses in order; exceptions are raised."""

    def __init__(self, *steps):
        self.steps = list(steps)
        self.calls = []

    def __call__(self, operation_id):
        self.calls.append(operation_id)
        step = self.steps.pop(0)
        if isinstance(step, Exception):
            raise step
        return step


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

    def __call__(self):
        return self.now


def make_poller(check, **kwargs):
    clock = FakeClock()
    return OperationPoller(check, sleep=clock.sleep, clock=clock, **kwargs), clock


def test_waits_before_first_poll_and_completes():
    check = ScriptedCheck(PollStatus.pending(), PollStatus.succeeded("https://provider/video/abc.mp4"))
    poller, clock = make_poller(check)

    op = poller.run(Operation("op_123"))

    assert op.state is OperationState.DONE_SUCCESS
    assert op.result_locator == "https://provider/video/abc.mp4"
    assert op.polls == 2
    assert clock.sleeps == [10, 10]
    assert check.calls == ["op_123", "op_123"]


def test_network_failure_stops_immediately():
    check = ScriptedCheck(PollStatus.pending(), TransportError("Status check failed: connection reset"),
                          PollStatus.succeeded("never-reached"))
    poller, _ = make_poller(check)

    with pytest.raises(OperationFailed) as info:
        poller.run(Operation("op_123"))

    assert len(check.calls) == 2
    assert info.value.operation.state is OperationState.DONE_FAILURE
    assert "connection reset" in info.value.message
    assert isinstance(info.value.cause, TransportError)


def test_finished_with_error_fails():
    check = ScriptedCheck(PollStatus.failed("no result in completed operation"))
    poller, _ = make_poller(check)
    with pytest.raises(OperationFailed, match="no result in completed operation"):
        poller.run(Operation("op_123"))


def test_progress_called_for_pending_polls():
    seen = []
    check = ScriptedCheck(PollStatus.pending(), PollStatus.pending(), PollStatus.succeeded("uri"))
    poller, _ = make_poller(check, on_progress=lambda op: seen.append(op.polls))
    poller.run(Operation("op_123"))
    assert seen == [1, 2]


def test_max_polls_limit():
    check = ScriptedCheck(*[PollStatus.pending()] * 5)
    poller, _ = make_poller(check, max_polls=3)
    with pytest.raises(OperationFailed) as info:
        poller.run(Operation("op_123"))
    assert len(check.calls) == 3
    assert isinstance(info.value.cause, PollTimeout)


def test_wall_clock_timeout():
    check = ScriptedCheck(*[PollStatus.pending()] * 10)
    poller, clock = make_poller(check, interval=15, timeout=40)
    with pytest.raises(OperationFailed) as info:
        poller.run(Operation("op_123"))
    # polls at 15 and 30; a third sleep would end at 45, past the timeout
    assert len(check.calls) == 2
    assert clock.now == 30
    assert info.value.message == "Gave up after 30 seconds (40 second timeout)"
    assert isinstance(info.value.cause, PollTimeout)


def test_interval_cannot_be_tighter_than_ten_seconds():
    with pytest.raises(ValueError):
        OperationPoller(lambda name: PollStatus.pending(), interval=1)


def test_poll_until_done_helper():
    clock = FakeClock()
    op = poll_until_done(ScriptedCheck(PollStatus.succeeded("uri")), "op_9", sleep=clock.sleep, clock=clock)
    assert op.result_locator == "uri"


def test_terminal_state_is_sticky():
    op = Operation("op_123").apply(PollStatus.succeeded("uri"))
    with pytest.raises(InvalidTransition):
        op.apply(PollStatus.pending())
    with pytest.raises(InvalidTransition):
        op.fail("late failure")
    assert op.state is OperationState.DONE_SUCCESS


def test_poll_status_shapes_are_exclusive():
    with pytest.raises(ValueError):
        PollStatus(done=True)
    with pytest.raises(ValueError):
        PollStatus(done=True, result="uri", error="boom")
    with pytest.raises(ValueError):
        PollStatus(done=False, result="uri")
    assert PollStatus.pending().to_dict() == {"done": False}
    assert PollStatus.failed("boom").to_dict() == {"done": True, "error": "boom"}

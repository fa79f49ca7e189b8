"""In-memory record of one outstanding video generation job."""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class OperationState(str, Enum):
    PENDING = "PENDING"
    DONE_SUCCESS = "DONE_SUCCESS"
    DONE_FAILURE = "DONE_FAILURE"


class InvalidTransition(Exception):
    pass


@dataclass(frozen=True)
class PollStatus:
    """Normalized answer to a single status check.

    Exactly one of three shapes: not done; done with ``result``; done with
    ``error``. ``video`` optionally carries the finished artifact base64
    encoded when the relay was asked to inline it.
    """

    done: bool
    result: Optional[str] = None
    error: Optional[str] = None
    video: Optional[str] = None

    def __post_init__(self):
        if not self.done and (self.result or self.error):
            raise ValueError("a pending status carries neither result nor error")
        if self.done and bool(self.result) == bool(self.error):
            raise ValueError("a finished status carries exactly one of result or error")

    @classmethod
    def pending(cls) -> "PollStatus":
        return cls(done=False)

    @classmethod
    def succeeded(cls, result: str, video: Optional[str] = None) -> "PollStatus":
        return cls(done=True, result=result, video=video)

    @classmethod
    def failed(cls, error: str) -> "PollStatus":
        return cls(done=True, error=error)

    def to_dict(self) -> dict:
        if not self.done:
            return {"done": False}
        if self.error:
            return {"done": True, "error": self.error}
        data = {"done": True, "result": self.result}
        if self.video:
            data["video"] = self.video
        return data


@dataclass
class Operation:
    operation_id: str
    state: OperationState = OperationState.PENDING
    result_locator: Optional[str] = None
    failure_reason: Optional[str] = None
    video: Optional[str] = None
    polls: int = 0

    def __post_init__(self):
        if not self.operation_id:
            raise ValueError("operation_id must be a non-empty string")

    @property
    def done(self) -> bool:
        return self.state is not OperationState.PENDING

    def apply(self, status: PollStatus) -> "Operation":
        """Advance the state from one poll response; DONE states are final."""
        if self.done:
            raise InvalidTransition(f"operation {self.operation_id} already {self.state.value}")
        self.polls += 1
        if not status.done:
            return self
        if status.error:
            self.fail(status.error)
        else:
            self.state = OperationState.DONE_SUCCESS
            self.result_locator = status.result
            self.video = status.video
        return self

    def fail(self, reason: str) -> "Operation":
        if self.done:
            raise InvalidTransition(f"operation {self.operation_id} already {self.state.value}")
        self.state = OperationState.DONE_FAILURE
        self.failure_reason = reason
        return self

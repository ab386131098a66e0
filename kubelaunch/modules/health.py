"""Bounded retry with a fixed delay, and the cluster health probes built on it."""
import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from tenacity import RetryCallState, Retrying, retry_if_result, stop_after_attempt, wait_fixed

logger = logging.getLogger("kubelaunch.health")

RUNNING = "Running"
STOPPED = "Stopped"
ERROR = "Error"

# (attempts, delay in seconds)
HOST_START_BUDGET = (5, 2.0)
KUBELET_BUDGET = (20, 3.0)
APISERVER_BUDGET = (30, 10.0)


class Status(str, enum.Enum):
    OK = "ok"
    RETRIABLE = "retriable"
    FATAL = "fatal"


@dataclass(frozen=True)
class Attempt:
    """Outcome of one attempt: a value, or an error tagged retriable or fatal."""
    status: Status
    value: Any = None
    error: Optional[BaseException] = None

    @classmethod
    def ok(cls, value: Any = None) -> "Attempt":
        return cls(Status.OK, value=value)

    @classmethod
    def retry(cls, error: BaseException) -> "Attempt":
        return cls(Status.RETRIABLE, error=error)

    @classmethod
    def fatal(cls, error: BaseException) -> "Attempt":
        return cls(Status.FATAL, error=error)

    @property
    def succeeded(self) -> bool:
        return self.status is Status.OK

    @property
    def retriable(self) -> bool:
        return self.status is Status.RETRIABLE


def _log_retry(state: RetryCallState) -> None:
    attempt = state.outcome.result()
    logger.debug(
        f"Attempt {state.attempt_number} failed: {attempt.error}. "
        f"Retrying in {state.next_action.sleep:.0f}s..."
    )


def retry_after(
    attempt: Callable[[], Attempt],
    max_attempts: int,
    delay: float,
    sleep: Callable[[float], None] = time.sleep,
) -> Attempt:
    """Call ``attempt`` until it is not retriable or the budget is spent.

    Args:
        attempt: Zero-argument callable returning an Attempt
        max_attempts: Total number of calls allowed
        delay: Seconds to wait between calls
        sleep: Sleep function (tests pass a fake)

    Returns:
        Attempt: The first OK or FATAL attempt, else the last retriable one
    """
    retrying = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(delay),
        retry=retry_if_result(lambda result: result.retriable),
        retry_error_callback=lambda state: state.outcome.result(),
        before_sleep=_log_retry,
        sleep=sleep,
    )
    return retrying(attempt)


def status_attempt(probe: Callable[[], str], component: str) -> Callable[[], Attempt]:
    """Wrap a status probe so anything but ``Running`` is retriable."""
    def check() -> Attempt:
        try:
            status = probe()
        except Exception as e:
            return Attempt.retry(RuntimeError(f"{component} unhealthy: {e}"))
        if status != RUNNING:
            return Attempt.retry(RuntimeError(f"{component} status={status}"))
        return Attempt.ok(status)
    return check


def wait_for_kubelet(bootstrapper, sleep: Callable[[float], None] = time.sleep) -> Attempt:
    attempts, delay = KUBELET_BUDGET
    return retry_after(status_attempt(bootstrapper.get_kubelet_status, "kubelet"), attempts, delay, sleep)


def wait_for_apiserver(bootstrapper, ip: str, sleep: Callable[[float], None] = time.sleep) -> Attempt:
    attempts, delay = APISERVER_BUDGET
    return retry_after(
        status_attempt(lambda: bootstrapper.get_api_server_status(ip), "apiserver"),
        attempts,
        delay,
        sleep,
    )

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol, TypeVar

from sparrow_routing.core.enums import ConnectionQuality
from sparrow_routing.core.exceptions import NoInternetError, RoutingError
from sparrow_routing.services.connectivity import ConnectivityProbe, is_online
from sparrow_routing.services.error_classifier import classify_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SleepFunc(Protocol):
    async def __call__(self, seconds: float) -> None: ...


Classifier = Callable[[BaseException, ConnectionQuality], RoutingError]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_delay_sec: float = 1.0
    max_delay_sec: float = 10.0
    backoff_multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay_sec < 0 or self.max_delay_sec < 0:
            raise ValueError("retry delays must be >= 0")
        if self.backoff_multiplier < 1.0:
            raise ValueError("backoff_multiplier must be >= 1.0")

    def next_delay(self, delay: float) -> float:
        return min(delay * self.backoff_multiplier, self.max_delay_sec)

    @classmethod
    def for_quality(cls, quality: ConnectionQuality) -> RetryPolicy:
        """Policy tuned to the link: fewer, quicker retries on good networks."""
        if quality == ConnectionQuality.WIFI:
            return cls(max_attempts=2, initial_delay_sec=0.5)
        if quality == ConnectionQuality.CELLULAR_GOOD:
            return cls(max_attempts=3, initial_delay_sec=1.0)
        if quality in (ConnectionQuality.POOR, ConnectionQuality.CELLULAR_POOR):
            return cls(max_attempts=4, initial_delay_sec=2.0)
        return cls(max_attempts=1, initial_delay_sec=0.0)


DEFAULT_RETRY_POLICY = RetryPolicy()


class RetryExecutor:
    """Runs an async operation under a retry policy.

    Connectivity is sampled before every attempt: when the probe reports no
    network the executor raises ``NoInternetError`` without invoking the
    operation. Failures are classified into ``RoutingError`` variants; only
    retryable ones are retried, with capped exponential backoff between
    attempts. Cancellation is never intercepted, so cancelling the calling
    task aborts both the in-flight call and a pending backoff sleep.
    """

    def __init__(
        self,
        probe: ConnectivityProbe,
        *,
        classifier: Classifier = classify_error,
        sleep: SleepFunc | None = None,
    ) -> None:
        self.probe = probe
        self.classifier = classifier
        self._sleep = sleep or asyncio.sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy | None = None,
        *,
        label: str = "operation",
    ) -> T:
        policy = policy or DEFAULT_RETRY_POLICY
        delay = policy.initial_delay_sec

        for attempt in range(1, policy.max_attempts + 1):
            if not is_online(self.probe.current_quality()):
                logger.info("Skipping request while offline", extra={"label": label, "attempt": attempt})
                raise NoInternetError()

            try:
                return await operation()
            except Exception as exc:
                error = self.classifier(exc, self.probe.current_quality())
                if not error.is_retryable or attempt == policy.max_attempts:
                    logger.warning(
                        "Request failed permanently",
                        extra={
                            "label": label,
                            "attempt": attempt,
                            "max_attempts": policy.max_attempts,
                            "error_kind": error.kind.value,
                            "error": error.technical_message,
                        },
                    )
                    if error is exc:
                        raise
                    raise error from exc

                logger.info(
                    "Request failed, retrying",
                    extra={
                        "label": label,
                        "attempt": attempt,
                        "max_attempts": policy.max_attempts,
                        "delay_sec": delay,
                        "error_kind": error.kind.value,
                    },
                )

            await self._sleep(delay)
            delay = policy.next_delay(delay)

        # max_attempts >= 1 guarantees the loop returns or raises.
        raise AssertionError("unreachable")

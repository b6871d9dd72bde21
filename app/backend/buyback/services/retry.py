"""
Reusable retry policy shared by owner resolution and the slippage-escalating buy.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Tuple, Type

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.get_logger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


@dataclass
class RetryPolicy:
    """
    Bounded attempts with exponential backoff (base, 2*base, 4*base, ...).

    Only exceptions listed in `retry_on` are retried; anything else, and the
    last failure once the budget is spent, propagates to the caller.
    """

    max_attempts: int
    base_delay: float
    retry_on: Tuple[Type[BaseException], ...]
    max_delay: float = 60.0
    sleep: SleepFn = field(default=asyncio.sleep)

    def attempts(self, operation: str) -> AsyncRetrying:
        """
        Iterate attempts:

            async for attempt in policy.attempts("buy"):
                with attempt:
                    n = attempt.retry_state.attempt_number
                    ...
        """
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, exp_base=2, max=self.max_delay),
            retry=retry_if_exception_type(self.retry_on),
            reraise=True,
            sleep=self.sleep,
            before_sleep=self._log_retry(operation),
        )

    async def call(self, operation: str, fn: Callable[..., Awaitable], *args, **kwargs):
        async for attempt in self.attempts(operation):
            with attempt:
                return await fn(*args, **kwargs)

    def _log_retry(self, operation: str) -> Callable[[RetryCallState], None]:
        def before_sleep(state: RetryCallState) -> None:
            error = state.outcome.exception() if state.outcome else None
            logger.warning(
                "Retrying after recoverable failure",
                operation=operation,
                attempt=state.attempt_number,
                max_attempts=self.max_attempts,
                delay=state.next_action.sleep if state.next_action else None,
                error=str(error) if error else None,
            )
        return before_sleep

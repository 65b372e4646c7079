"""Classify step failures and retry the transient ones."""

from __future__ import annotations

import asyncio
import logging
import re
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, ConfigDict

from ..contracts import WorkflowInstance, WorkflowStatus
from ..exceptions import (
    DefinitionError,
    RecoveryExhausted,
    StepExecutionError,
    ValidationError,
)
from ..utils.retry import RetryPolicy
from .lifecycle import LifecycleManager

# Checked in order; the first match wins.
ERROR_PATTERNS = [
    ("initialization", re.compile(r"not initialized|api key|configure.*key|initialization failed", re.I), False),
    ("authentication", re.compile(r"unauthori[sz]ed|forbidden|credential", re.I), False),
    ("network", re.compile(r"network|connection|timed? ?out|ENOTFOUND|ECONNREFUSED", re.I), True),
    ("ai_service", re.compile(r"rate limit|quota|overloaded|service unavailable", re.I), True),
]


class ErrorClass(str, Enum):
    TRANSIENT = "transient"
    FATAL = "fatal"


class Classification(BaseModel):
    error_class: ErrorClass
    category: str

    @property
    def transient(self) -> bool:
        return self.error_class is ErrorClass.TRANSIENT


class RecoveryResult(BaseModel):
    """What happened to a failed step after recovery ran."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    recovered: bool
    value: Any = None
    attempts: int = 0
    category: str = "unknown"
    error: Optional[BaseException] = None
    interrupted: bool = False


def classify(error: BaseException) -> Classification:
    """Decide whether retrying ``error`` could help."""
    if isinstance(error, DefinitionError):
        return Classification(error_class=ErrorClass.FATAL, category="definition")
    if isinstance(error, ValidationError):
        return Classification(error_class=ErrorClass.FATAL, category="validation")
    if isinstance(error, StepExecutionError) and error.transient is not None:
        return Classification(
            error_class=ErrorClass.TRANSIENT if error.transient else ErrorClass.FATAL,
            category=type(error).__name__,
        )
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return Classification(error_class=ErrorClass.TRANSIENT, category="timeout")
    if isinstance(error, ConnectionError):
        return Classification(error_class=ErrorClass.TRANSIENT, category="network")

    message = str(error)
    for category, pattern, transient in ERROR_PATTERNS:
        if pattern.search(message):
            error_class = ErrorClass.TRANSIENT if transient else ErrorClass.FATAL
            return Classification(error_class=error_class, category=category)
    return Classification(error_class=ErrorClass.TRANSIENT, category="unknown")


class ErrorRecoveryManager:
    """Retry transient step failures with backoff, fail the workflow otherwise."""

    def __init__(
        self,
        lifecycle: LifecycleManager,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.lifecycle = lifecycle
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._log = logger or logging.getLogger(__name__)

    async def handle(
        self,
        instance: WorkflowInstance,
        error: BaseException,
        retry: Optional[Callable[[], Awaitable[Any]]] = None,
        fail_workflow: bool = True,
    ) -> RecoveryResult:
        """Recover from ``error`` raised by the current step of ``instance``.

        Never raises for step errors. When retries are exhausted or the error
        is fatal an error record is kept and, unless ``fail_workflow`` is
        false, the instance is moved to ``error``.
        """
        info = classify(error)
        self._log.warning(
            f"Step {instance.current_step_index} of workflow {instance.id} failed "
            f"({info.error_class.value}/{info.category}): {error}"
        )

        attempts = 0
        last_error: BaseException = error
        if info.transient and retry is not None:
            epoch = instance.epoch
            while attempts < self.policy.max_attempts:
                attempts += 1
                await self._sleep(self.policy.delay_for(attempts))
                if instance.epoch != epoch or instance.status is not WorkflowStatus.RUNNING:
                    self._log.info(
                        f"Workflow {instance.id} left running during recovery; "
                        f"abandoning retries"
                    )
                    return RecoveryResult(
                        recovered=False,
                        attempts=attempts - 1,
                        category=info.category,
                        error=last_error,
                        interrupted=True,
                    )
                try:
                    value = await retry()
                except Exception as e:
                    last_error = e
                    self._log.warning(
                        f"Retry {attempts}/{self.policy.max_attempts} for workflow "
                        f"{instance.id} failed: {e}"
                    )
                    if not classify(e).transient:
                        break
                    continue
                self._log.info(
                    f"Workflow {instance.id} recovered after {attempts} attempt(s)"
                )
                return RecoveryResult(
                    recovered=True, value=value, attempts=attempts, category=info.category
                )
            final: BaseException = (
                RecoveryExhausted(attempts, last_error)
                if classify(last_error).transient
                else last_error
            )
        else:
            final = error

        if fail_workflow:
            self._log.error(f"Workflow {instance.id} failed: {final}")
            await self.lifecycle.fail(
                instance,
                str(final),
                error_type=info.category,
                recovery_attempted=attempts > 0,
                attempts=attempts,
            )
        else:
            self._log.warning(
                f"Step {instance.current_step_index} of workflow {instance.id} gave up: {final}"
            )
            await self.lifecycle.record_error(
                instance,
                str(final),
                error_type=info.category,
                recovery_attempted=attempts > 0,
                attempts=attempts,
            )
        return RecoveryResult(
            recovered=False, attempts=attempts, category=info.category, error=final
        )

"""
Invocation Loop

fetch -> decode -> resolve -> execute -> report, forever.

Every failure is local to the invocation that caused it: transport problems
back off and re-fetch, bad payloads and handler failures are reported as
invocation errors, and undeliverable reports are logged and dropped.
"""

import json
import logging
import os
import time
from typing import Callable, Optional

from services.common.core.request_context import invocation_context

from .client import ControlPlaneClient
from .config import RuntimeConfig
from .errors import DecodeError, ProtocolViolation, ReportingError, TransportError, format_error
from .handler import HandlerExecutor, HandlerRef, HandlerResolver
from .models import ErrorRecord, Failure, Invocation, Outcome, Success

logger = logging.getLogger("runtime.loop")

TRACE_ENV_VAR = "_X_AMZN_TRACE_ID"


class InvocationLoop:
    def __init__(
        self,
        client: ControlPlaneClient,
        config: RuntimeConfig,
        resolver: Optional[HandlerResolver] = None,
        executor: Optional[HandlerExecutor] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            client: ControlPlaneClient instance
            config: RuntimeConfig instance
            resolver: HandlerResolver (defaults to the process-wide registry)
            executor: HandlerExecutor instance
            sleep: Delay function used between failed fetches
        """
        self.client = client
        self.config = config
        self.resolver = resolver or HandlerResolver()
        self.executor = executor or HandlerExecutor()
        self.sleep = sleep

        self._handler_ref: Optional[HandlerRef] = None
        self._retry_delay = config.FETCH_RETRY_DELAY
        self._running = False

    # ===========================================
    # Handler memoization
    # ===========================================

    @property
    def handler_ref(self) -> HandlerRef:
        if self._handler_ref is None:
            self._handler_ref = self.resolver.resolve(self.config.HANDLER)
            logger.info(f"Using handler {self._handler_ref.identifier}")
        return self._handler_ref

    # ===========================================
    # Control
    # ===========================================

    def run(self, max_iterations: Optional[int] = None) -> int:
        """
        Poll until stop() is called or max_iterations iterations have run.

        Returns:
            Number of iterations executed (failed fetches included)
        """
        self._running = True
        iterations = 0
        logger.info(f"Invocation loop started against {self.config.runtime_base_url}")

        while self._running and (max_iterations is None or iterations < max_iterations):
            self.run_once()
            iterations += 1

        logger.info(f"Invocation loop stopped after {iterations} iterations")
        return iterations

    def stop(self) -> None:
        """Finish the current iteration, then leave run()."""
        self._running = False

    def run_once(self) -> Optional[Invocation]:
        """
        One fetch/execute/report cycle.

        Returns:
            The processed invocation, or None when the fetch failed
        """
        try:
            invocation = self.client.fetch_next()
        except (TransportError, ProtocolViolation) as e:
            self._backoff(e)
            return None

        self._retry_delay = self.config.FETCH_RETRY_DELAY

        with invocation_context(invocation.request_id, invocation.trace_id):
            self._set_trace_env(invocation.trace_id)
            try:
                self._process(invocation)
            except Exception as e:
                # Nothing raised while handling one invocation may end the loop.
                logger.error(
                    f"Unexpected failure while processing {invocation.request_id}", exc_info=True
                )
                self._report_unexpected(invocation.request_id, e)
        return invocation

    def _backoff(self, cause: Exception) -> None:
        delay = self._retry_delay
        logger.warning(
            f"Fetching next invocation failed; retrying in {delay:.2f}s",
            extra={"error_type": type(cause).__name__, "error_detail": str(cause)},
        )
        self.sleep(delay)
        self._retry_delay = min(delay * 2, self.config.FETCH_RETRY_MAX_DELAY)

    @staticmethod
    def _set_trace_env(trace_id: Optional[str]) -> None:
        if trace_id:
            os.environ[TRACE_ENV_VAR] = trace_id
        else:
            os.environ.pop(TRACE_ENV_VAR, None)

    # ===========================================
    # Per-invocation pipeline
    # ===========================================

    def _process(self, invocation: Invocation) -> None:
        request_id = invocation.request_id
        remaining = invocation.remaining_time_ms(int(time.time() * 1000))
        logger.info(
            f"Received invocation {request_id}",
            extra={"remaining_time_ms": remaining, "function_arn": invocation.function_arn},
        )

        try:
            invocation.decoded_payload = self.decode(invocation)
        except DecodeError as e:
            logger.error(str(e))
            self._report_error(request_id, format_error(e))
            return

        outcome = self.executor.execute(invocation.decoded_payload, self.handler_ref)
        self._report(request_id, outcome)

    @staticmethod
    def decode(invocation: Invocation):
        """
        Raises:
            DecodeError: body is not valid JSON
        """
        try:
            return json.loads(invocation.raw_body)
        except (ValueError, TypeError, RecursionError) as e:
            raise DecodeError(invocation.request_id, e) from e

    def _report(self, request_id: str, outcome: Outcome) -> None:
        if isinstance(outcome, Success):
            self._report_success(request_id, outcome.value)
        elif isinstance(outcome, Failure):
            self._report_error(request_id, outcome.record)

    def _report_success(self, request_id: str, value) -> None:
        try:
            self._with_retries(lambda: self.client.report_success(request_id, value))
        except (TypeError, ValueError, RecursionError) as e:
            logger.error(f"Handler result for {request_id} is not JSON serializable: {e}")
            self._report_error(request_id, format_error(e))

    def _report_error(self, request_id: str, record: ErrorRecord) -> None:
        self._with_retries(lambda: self.client.report_invocation_error(request_id, record))

    def _report_unexpected(self, request_id: str, cause: Exception) -> None:
        try:
            self._report_error(request_id, format_error(cause, cause.__traceback__))
        except Exception:
            logger.error(f"Could not report failure for {request_id}; dropping", exc_info=True)

    def _with_retries(self, send: Callable[[], None]) -> None:
        attempts = self.config.REPORT_RETRIES + 1
        for attempt in range(1, attempts + 1):
            try:
                send()
                return
            except ReportingError as e:
                if attempt < attempts:
                    logger.warning(f"{e}; retrying ({attempt}/{attempts - 1})")
                    continue
                logger.error(f"{e}; dropping report after {attempts} attempts")

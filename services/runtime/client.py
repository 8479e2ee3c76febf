"""
Control plane client.

Speaks the runtime API long-poll contract:

    GET  {base}/invocation/next
    POST {base}/invocation/{request_id}/response
    POST {base}/invocation/{request_id}/error
    POST {base}/init/error
"""

import json
import logging
from typing import Any, Dict, Optional

import httpx

from services.common.core.http_client import HttpClientFactory

from .config import RuntimeConfig
from .errors import ProtocolViolation, ReportingError, TransportError
from .models import ErrorRecord, Invocation

logger = logging.getLogger("runtime.client")

HEADER_REQUEST_ID = "Lambda-Runtime-Aws-Request-Id"
HEADER_DEADLINE_MS = "Lambda-Runtime-Deadline-Ms"
HEADER_TRACE_ID = "Lambda-Runtime-Trace-Id"
HEADER_FUNCTION_ARN = "Lambda-Runtime-Invoked-Function-Arn"
HEADER_ERROR_TYPE = "Lambda-Runtime-Function-Error-Type"

JSON_CONTENT_TYPE = "application/json"


def encode_body(value: Any) -> bytes:
    """
    JSON-encode a report body.

    Raises:
        TypeError / ValueError / RecursionError: value is not JSON serializable
    """
    return json.dumps(value, ensure_ascii=False, allow_nan=False).encode("utf-8")


class ControlPlaneClient:
    def __init__(self, client: httpx.Client, config: RuntimeConfig):
        """
        Args:
            client: Shared httpx.Client
            config: RuntimeConfig instance
        """
        self.client = client
        self.config = config
        self.base_url = config.runtime_base_url
        # Long-poll: no read/write/pool timeout, bounded connect.
        self.fetch_timeout = httpx.Timeout(None, connect=config.CONNECT_TIMEOUT)
        self.report_timeout = httpx.Timeout(config.REPORT_TIMEOUT, connect=config.CONNECT_TIMEOUT)

    @classmethod
    def from_config(cls, config: RuntimeConfig) -> "ControlPlaneClient":
        factory = HttpClientFactory(config)
        factory.configure_global_settings()
        return cls(factory.create_sync_client(), config)

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "ControlPlaneClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ===========================================
    # Invocation fetch
    # ===========================================

    def fetch_next(self) -> Invocation:
        """
        Block until the control plane hands out the next invocation.

        Raises:
            TransportError: connection failure, timeout, or non-2xx status
            ProtocolViolation: response lacks the request id header
        """
        url = f"{self.base_url}/invocation/next"
        try:
            response = self.client.get(url, timeout=self.fetch_timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError("fetch", e) from e

        request_id = response.headers.get(HEADER_REQUEST_ID)
        if not request_id:
            raise ProtocolViolation(
                f"{HEADER_REQUEST_ID} header missing from {url} (status {response.status_code})"
            )

        return Invocation(
            request_id=request_id,
            raw_body=response.content,
            trace_id=response.headers.get(HEADER_TRACE_ID),
            deadline_ms=self._parse_deadline(response.headers.get(HEADER_DEADLINE_MS)),
            function_arn=response.headers.get(HEADER_FUNCTION_ARN),
        )

    @staticmethod
    def _parse_deadline(raw: Optional[str]) -> Optional[int]:
        if not raw:
            return None
        try:
            return int(raw)
        except ValueError:
            logger.warning(f"Ignoring malformed {HEADER_DEADLINE_MS} header: {raw!r}")
            return None

    # ===========================================
    # Reports
    # ===========================================

    def report_success(self, request_id: str, value: Any) -> None:
        """
        Raises:
            TypeError / ValueError / RecursionError: value is not JSON serializable (nothing was sent)
            ReportingError: delivery failed
        """
        body = encode_body(value)
        self._post("response", f"/invocation/{request_id}/response", body, request_id)

    def report_invocation_error(self, request_id: str, record: ErrorRecord) -> None:
        """
        Raises:
            ReportingError: delivery failed
        """
        self._post(
            "invocation error",
            f"/invocation/{request_id}/error",
            encode_body(record.model_dump()),
            request_id,
            headers={HEADER_ERROR_TYPE: record.errorType},
        )

    def report_init_error(self, record: ErrorRecord) -> None:
        """
        Raises:
            ReportingError: delivery failed
        """
        self._post(
            "init error",
            "/init/error",
            encode_body(record.model_dump()),
            None,
            headers={HEADER_ERROR_TYPE: record.errorType},
        )

    def _post(
        self,
        operation: str,
        path: str,
        body: bytes,
        request_id: Optional[str],
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        url = f"{self.base_url}{path}"
        send_headers = {"Content-Type": JSON_CONTENT_TYPE}
        if headers:
            send_headers.update(headers)

        try:
            response = self.client.post(
                url, content=body, headers=send_headers, timeout=self.report_timeout
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(
                f"Control plane rejected {operation}",
                extra={
                    "target_url": url,
                    "error_type": type(e).__name__,
                    "error_detail": str(e),
                },
            )
            raise ReportingError(operation, request_id, e) from e

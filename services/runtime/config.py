"""
Runtime configuration definition.

Loads configuration from environment variables and provides a Pydantic model.
Constructed once at process start and passed explicitly to the client,
resolver and loop; nothing re-reads the environment mid-loop.
"""

from pathlib import Path
from typing import List, Optional

from pydantic import AliasChoices, Field
from services.common.core.config import BaseAppConfig

DEFAULT_RUNTIME_API_VERSION = "2018-06-01"
DEFAULT_LOG_CONFIG_PATH = str(Path(__file__).with_name("runtime_log.yaml"))


class RuntimeConfig(BaseAppConfig):
    """
    Configuration management for the invocation loop.
    """

    LOG_CONFIG_PATH: str = Field(
        default=DEFAULT_LOG_CONFIG_PATH, description="Logging YAML config path"
    )

    # Control plane
    AWS_LAMBDA_RUNTIME_API: str = Field(
        ..., min_length=1, description="host:port of the runtime control plane"
    )
    RUNTIME_API_VERSION: str = Field(
        default=DEFAULT_RUNTIME_API_VERSION, description="Version path segment of the API"
    )

    # Handler selection
    HANDLER: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("_HANDLER", "HANDLER"),
        description="Handler identifier (<namespace>.<entry_point>)",
    )
    HANDLER_MODULES: str = Field(
        default="",
        description="Modules imported at startup to register handlers (comma-separated)",
    )

    # Timeouts (seconds)
    CONNECT_TIMEOUT: float = Field(default=2.0, gt=0, description="TCP connect timeout")
    REPORT_TIMEOUT: float = Field(
        default=3.0, gt=0, description="Timeout for response/error/init reports"
    )

    # Retry policy
    FETCH_RETRY_DELAY: float = Field(
        default=0.5, gt=0, description="Initial delay after a failed fetch (seconds)"
    )
    FETCH_RETRY_MAX_DELAY: float = Field(
        default=5.0, gt=0, description="Upper bound for the fetch backoff (seconds)"
    )
    REPORT_RETRIES: int = Field(
        default=1, ge=0, description="Extra attempts for a failed report before dropping it"
    )

    @property
    def handler_modules(self) -> List[str]:
        return [item.strip() for item in self.HANDLER_MODULES.split(",") if item.strip()]

    @property
    def runtime_base_url(self) -> str:
        api = self.AWS_LAMBDA_RUNTIME_API.rstrip("/")
        if not api.startswith(("http://", "https://")):
            api = f"http://{api}"
        return f"{api}/{self.RUNTIME_API_VERSION.strip('/')}/runtime"

"""
Runtime entry point.

Loads configuration, wires the control plane client, registers handlers and
runs the invocation loop until the process receives SIGTERM/SIGINT.
"""

import logging
import signal
import sys
from typing import Optional

from pydantic import ValidationError

from services.common.core.logging_config import setup_logging

from .client import ControlPlaneClient
from .config import RuntimeConfig
from .errors import InitError, ReportingError, format_error
from .handler import HandlerResolver, load_handler_modules
from .loop import InvocationLoop

logger = logging.getLogger("runtime.main")


def bootstrap(config: RuntimeConfig, client: ControlPlaneClient) -> InvocationLoop:
    """
    Register handlers and build the loop.

    An InitError is reported to the control plane's init/error route before
    being re-raised.
    """
    try:
        load_handler_modules(config.handler_modules)
    except InitError as e:
        logger.error(str(e), exc_info=True)
        cause = e.cause or e
        try:
            client.report_init_error(format_error(cause, cause.__traceback__))
        except ReportingError as report_error:
            logger.error(str(report_error))
        raise

    loop = InvocationLoop(client, config, resolver=HandlerResolver())
    # Resolve eagerly so configuration problems show up in the first log lines.
    _ = loop.handler_ref
    return loop


def _install_signal_handlers(loop: InvocationLoop) -> None:
    def _stop(signum, frame):
        logger.info(f"Received signal {signum}; stopping after current invocation")
        loop.stop()
        # A pending long-poll only returns when work arrives; leave on a second signal.
        signal.signal(signum, signal.SIG_DFL)

    signal.signal(signal.SIGTERM, _stop)
    signal.signal(signal.SIGINT, _stop)


def main(config: Optional[RuntimeConfig] = None) -> int:
    if config is None:
        try:
            config = RuntimeConfig()
        except ValidationError as e:
            # No endpoint to report to yet.
            logging.basicConfig(level=logging.INFO)
            logger.error(f"Failed to load configuration: {e}")
            return 1

    setup_logging(config.LOG_CONFIG_PATH, level=config.LOG_LEVEL)

    with ControlPlaneClient.from_config(config) as client:
        try:
            loop = bootstrap(config, client)
        except InitError:
            return 1

        _install_signal_handlers(loop)
        loop.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())

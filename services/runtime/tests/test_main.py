import json
import signal
from unittest.mock import MagicMock, patch

import httpx
import pytest
import respx

from services.runtime import main as runtime_main
from services.runtime.client import ControlPlaneClient
from services.runtime.errors import InitError, ReportingError
from services.runtime.handler import DEFAULT_HANDLER_REF
from services.runtime.loop import InvocationLoop
from services.runtime.tests.support import INIT_ERROR_URL


@pytest.fixture(autouse=True)
def _no_logging_setup():
    # dictConfig would replace pytest's capture handlers for the rest of the session.
    with patch.object(runtime_main, "setup_logging") as mocked:
        yield mocked


@respx.mock
def test_bootstrap_reports_init_error_for_missing_module(make_config):
    route = respx.post(INIT_ERROR_URL).mock(return_value=httpx.Response(202))
    config = make_config(HANDLER_MODULES="services.runtime.no_such_module")

    with ControlPlaneClient(httpx.Client(), config) as client:
        with pytest.raises(InitError):
            runtime_main.bootstrap(config, client)

    body = json.loads(route.calls.last.request.content)
    assert body["errorType"] == "ModuleNotFoundError"
    assert "no_such_module" in body["errorMessage"]
    assert body["stackTrace"] != ""


def test_bootstrap_survives_unreachable_init_route(make_config):
    config = make_config(HANDLER_MODULES="services.runtime.no_such_module")
    client = MagicMock(spec=ControlPlaneClient)
    client.report_init_error.side_effect = ReportingError("init error", None, OSError("down"))

    with pytest.raises(InitError):
        runtime_main.bootstrap(config, client)

    client.report_init_error.assert_called_once()


def test_bootstrap_resolves_handler_eagerly(make_config):
    config = make_config(
        HANDLER_MODULES="services.runtime.examples.greeter", HANDLER="greeter.hello"
    )
    client = MagicMock(spec=ControlPlaneClient)

    loop = runtime_main.bootstrap(config, client)

    assert isinstance(loop, InvocationLoop)
    assert loop._handler_ref is not None
    assert loop.handler_ref.identifier == "greeter.hello"
    client.report_init_error.assert_not_called()


def test_bootstrap_without_handler_uses_default(make_config):
    loop = runtime_main.bootstrap(make_config(), MagicMock(spec=ControlPlaneClient))
    assert loop.handler_ref == DEFAULT_HANDLER_REF


def test_main_fails_fast_on_invalid_config():
    assert runtime_main.main() == 1


def test_main_returns_one_on_init_error(make_config, _no_logging_setup):
    config = make_config(HANDLER_MODULES="services.runtime.no_such_module")

    with respx.mock:
        respx.post(INIT_ERROR_URL).mock(return_value=httpx.Response(202))
        assert runtime_main.main(config) == 1

    _no_logging_setup.assert_called_once_with(config.LOG_CONFIG_PATH, level=config.LOG_LEVEL)


def test_main_runs_loop_until_stopped(make_config):
    config = make_config()

    with patch.object(runtime_main, "_install_signal_handlers"), patch.object(
        InvocationLoop, "run", return_value=0
    ) as run:
        assert runtime_main.main(config) == 0

    run.assert_called_once_with()


def test_signal_handler_stops_loop():
    loop = MagicMock(spec=InvocationLoop)
    installed = {}

    with patch.object(runtime_main.signal, "signal", side_effect=installed.__setitem__):
        runtime_main._install_signal_handlers(loop)
        installed[signal.SIGTERM](signal.SIGTERM, None)

    loop.stop.assert_called_once()
    assert installed[signal.SIGTERM] == signal.SIG_DFL

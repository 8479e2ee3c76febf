import pytest

from services.runtime.config import RuntimeConfig
from services.runtime.handler import HandlerRegistry, error, ok
from services.runtime.tests.support import RUNTIME_API


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    # Settings are read from the process environment; keep the host's values out.
    for name in ("_HANDLER", "HANDLER", "HANDLER_MODULES", "AWS_LAMBDA_RUNTIME_API", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    # The loop exports the trace header per invocation; restore it afterwards.
    monkeypatch.setenv("_X_AMZN_TRACE_ID", "")
    monkeypatch.delenv("_X_AMZN_TRACE_ID")


@pytest.fixture
def make_config():
    def _make(**overrides) -> RuntimeConfig:
        values = {"AWS_LAMBDA_RUNTIME_API": RUNTIME_API}
        values.update(overrides)
        return RuntimeConfig(**values)

    return _make


@pytest.fixture
def runtime_config(make_config):
    return make_config()


@pytest.fixture
def greeter_registry():
    registry = HandlerRegistry()

    @registry.register("greeter.hello")
    def hello(payload):
        if payload.get("should_fail"):
            return error("Requested failure")
        return ok({"message": f"Hello, {payload['name']}!"})

    @registry.register("greeter.echo")
    def echo(payload):
        return payload

    @registry.register("greeter.explode")
    def explode(payload):
        raise ValueError("kaboom")

    return registry

"""
Example handlers.

Run with:
    HANDLER_MODULES=services.runtime.examples.greeter _HANDLER=greeter.hello mayfly-runtime
"""

import logging

from services.runtime.errors import HandlerFailure
from services.runtime.handler import error, ok, register

logger = logging.getLogger("runtime.examples.greeter")


@register("greeter.hello")
def hello(payload):
    if payload.get("should_fail"):
        return error("Requested failure")

    name = payload.get("name")
    if not name:
        raise HandlerFailure("ValidationError", "name is required")

    logger.info(f"Greeting {name}")
    return ok({"message": f"Hello, {name}!"})


@register("greeter.echo")
def echo(payload):
    # Bare return value: treated as success.
    return payload

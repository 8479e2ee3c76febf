"""Shared constants for runtime tests."""

RUNTIME_API = "127.0.0.1:9001"
BASE_URL = f"http://{RUNTIME_API}/2018-06-01/runtime"
NEXT_URL = f"{BASE_URL}/invocation/next"
INIT_ERROR_URL = f"{BASE_URL}/init/error"
REQUEST_ID = "8476a536-e9f4-11e8-9739-2dfe598c3fcd"
TRACE_HEADER = "Root=1-5759e988-bd862e3fe1be46a994272793;Parent=53995c3f42cd8ad8;Sampled=1"


def response_url(request_id: str = REQUEST_ID) -> str:
    return f"{BASE_URL}/invocation/{request_id}/response"


def error_url(request_id: str = REQUEST_ID) -> str:
    return f"{BASE_URL}/invocation/{request_id}/error"

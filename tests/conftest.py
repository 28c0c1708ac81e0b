import pytest
from sse_starlette.sse import AppStatus


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """Reset sse-starlette's process-wide shutdown flag around each test.

    A test that simulates server shutdown would otherwise end every SSE
    response opened by the tests that run after it.
    """
    AppStatus.should_exit = False
    yield
    AppStatus.should_exit = False

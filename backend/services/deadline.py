import asyncio
import logging
from typing import Awaitable, TypeVar

from services.errors import ProviderTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _drain(task: asyncio.Task):
    # Retrieve the late outcome of an abandoned call.
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("[Deadline] abandoned call finished with %s: %s", type(exc).__name__, exc)


async def run_with_deadline(call: Awaitable[T], timeout_ms: int, provider: str) -> T:
    """
    Await `call` for at most `timeout_ms`.

    On expiry this raises ProviderTimeoutError right away and asks the underlying
    task to cancel. Whether the network request actually stops is up to the
    transport; the task is not awaited again, only drained when it settles.
    """
    task = asyncio.ensure_future(call)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
    except asyncio.CancelledError:
        task.cancel()
        raise

    if task in done:
        return task.result()

    task.cancel()
    task.add_done_callback(_drain)
    raise ProviderTimeoutError(provider, timeout_ms)

"""
Server-side function invocation for the in-memory remote data service.

Functions are registered by name and invoked with a JSON-like body. A
function may be sync or async; it returns the response body. Any exception
it raises reaches the caller as a RemoteError, the way a non-2xx function
response would.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable

from backend.errors import RemoteError

logger = logging.getLogger("remote_functions")

FunctionHandler = Callable[[dict[str, Any]], Any]


class FunctionsClient:

    def __init__(self):
        self._functions: dict[str, FunctionHandler] = {}

    def register(self, name: str, handler: FunctionHandler) -> None:
        self._functions[name] = handler
        logger.debug(f"Registered function '{name}'")

    def is_registered(self, name: str) -> bool:
        return name in self._functions

    async def invoke(self, name: str, body: dict[str, Any]) -> Any:
        """
        Invoke a function by name.

        Raises:
            RemoteError: If the function is unknown or fails
        """
        await asyncio.sleep(0)
        handler = self._functions.get(name)
        if handler is None:
            raise RemoteError(f"Function not found: {name}", code="404")
        try:
            result = handler(body)
            if inspect.isawaitable(result):
                result = await result
        except RemoteError:
            raise
        except Exception as e:
            logger.error(f"Function '{name}' failed: {e}")
            raise RemoteError(str(e)) from e
        return result

"""Outbound channel contract shared by the dispatcher and the broadcast loop."""

from typing import Any, Callable, Protocol

from herald.exceptions import DeliveryError
from herald.utils.asyncio_helpers import maybe_await


class NotificationChannel(Protocol):
    """Single external send primitive.

    Implementations raise ``DeliveryError`` when the destination rejects the
    message or the transport fails. They must tolerate concurrent calls.
    """

    async def send(self, destination: str, text: str) -> None:
        ...


class CallbackChannel:
    """Channel that hands every message to a plain callable.

    Used for terminal display and tests. The callable receives
    ``(destination, text)`` and may be sync or async; anything it raises is
    reported as a ``DeliveryError``.
    """

    def __init__(self, callback: Callable[[str, str], Any]):
        self._callback = callback

    async def send(self, destination: str, text: str) -> None:
        try:
            await maybe_await(self._callback(destination, text))
        except DeliveryError:
            raise
        except Exception as e:
            raise DeliveryError(f"Callback channel failed: {e}", destination=destination) from e

"""Built-in tools."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog

from ..errors import ToolExecutionError
from .base import BaseTool

logger = structlog.get_logger(__name__)

COINCAP_URL = "https://api.coincap.io/v2/assets/{asset}"

# Ticker aliases and the price precision used for each asset
_ASSET_ALIASES: dict[str, tuple[str, int]] = {
    "btc": ("bitcoin", 0),
    "eth": ("ethereum", 0),
    "ltc": ("litecoin", 0),
    "xrp": ("ripple", 3),
    "xlm": ("stellar", 3),
    "ada": ("cardano", 3),
}


class CryptoRateTool(BaseTool):
    """Current USD rate of a crypto currency from the CoinCap REST API."""

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 10.0):
        """Initialize the tool.

        Args:
            client: Optional shared HTTP client (a private one is used otherwise)
            timeout: HTTP timeout in seconds
        """
        self._client = client
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "get_crypto_rate"

    @property
    def description(self) -> str:
        return "Useful for getting the current rate of various crypto currencies."

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "asset": {
                    "type": "string",
                    "description": "Asset of the crypto currency, e.g. 'BTC' or 'bitcoin'"
                }
            },
            "required": ["asset"]
        }

    async def execute(self, params: dict[str, Any]) -> str:
        asset = str(params.get("asset", "")).strip().lower()
        if not asset:
            raise ToolExecutionError("Parameter 'asset' is required")
        asset, precision = _ASSET_ALIASES.get(asset, (asset, 0))

        url = COINCAP_URL.format(asset=asset)
        if self._client is not None:
            response = await self._client.get(url, timeout=self._timeout)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(url)
        response.raise_for_status()

        price = response.json().get("data", {}).get("priceUsd")
        if price is None:
            raise ToolExecutionError(f"No rate available for '{asset}'")
        return f"${float(price):.{precision}f}"


class ReminderTool(BaseTool):
    """Schedules a delayed message through an injected sender.

    Hidden design decisions:
    - Reminders live as asyncio tasks in this process only
    - Delivery failures are logged, never raised into a turn
    """

    def __init__(
        self,
        send: Callable[[str], Awaitable[None]],
        seconds_per_minute: float = 60.0
    ):
        """Initialize the tool.

        Args:
            send: Coroutine function delivering the reminder text
            seconds_per_minute: Scale of the delay unit
        """
        self._send = send
        self._seconds_per_minute = seconds_per_minute
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def name(self) -> str:
        return "set_reminder"

    @property
    def description(self) -> str:
        return "Set a reminder to do something at a specific time."

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "reminder": {
                    "type": "string",
                    "description": "A reminder of what to do, e.g. 'buy groceries'"
                },
                "time": {
                    "type": "number",
                    "description": "A time at which to be reminded in minutes from now, e.g. 1440"
                }
            },
            "required": ["reminder", "time"]
        }

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def execute(self, params: dict[str, Any]) -> str:
        reminder = str(params.get("reminder", "")).strip()
        if not reminder:
            raise ToolExecutionError("Parameter 'reminder' is required")
        try:
            minutes = int(params.get("time", 0))
        except (TypeError, ValueError) as e:
            raise ToolExecutionError("Parameter 'time' must be a number of minutes") from e
        if minutes < 0:
            raise ToolExecutionError("Parameter 'time' must not be negative")

        task = asyncio.create_task(self._deliver(reminder, minutes * self._seconds_per_minute))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        logger.info("reminder_scheduled", minutes=minutes)
        return f"Reminder set for {minutes} minutes from now"

    async def _deliver(self, reminder: str, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            await self._send(reminder)
        except Exception as e:
            logger.warning("reminder_delivery_failed", error=str(e))

    def cancel_all(self) -> None:
        for task in list(self._pending):
            task.cancel()

"""Unit tests for the tools module."""
import asyncio

import httpx
import pytest
from conftest import ExplodingTool, LookupTool, SlowTool

from parley.errors import MalformedToolCallError, ToolExecutionError, ToolNotFoundError
from parley.memory import ToolCallRequest
from parley.tools import BaseTool, CryptoRateTool, ReminderTool, ToolRegistry


class TestBaseTool:
    """Tests for the tool contract."""

    def test_tool_is_abstract(self):
        with pytest.raises(TypeError):
            BaseTool()  # type: ignore

    @pytest.mark.asyncio
    async def test_call_parses_arguments(self):
        tool = LookupTool()

        assert await tool.call('{"query": "answer"}') == "42"
        assert tool.received == [{"query": "answer"}]

    @pytest.mark.asyncio
    async def test_call_rejects_invalid_json(self):
        with pytest.raises(MalformedToolCallError, match="lookup"):
            await LookupTool().call('{"query": ')

    @pytest.mark.asyncio
    async def test_call_rejects_non_object(self):
        with pytest.raises(MalformedToolCallError, match="JSON object"):
            await LookupTool().call("[1, 2]")

    def test_to_schema(self):
        schema = LookupTool().to_schema()

        assert schema.name == "lookup"
        assert schema.parameters["required"] == ["query"]

    def test_summarize_arguments_uses_first_string(self):
        tool = LookupTool()

        assert tool.summarize_arguments('{"limit": 3, "query": "bitcoin price"}') == "bitcoin price"
        assert tool.summarize_arguments('{"limit": 3}') == '{"limit": 3}'
        assert tool.summarize_arguments("not json") == "not json"


class TestToolRegistry:
    """Tests for ToolRegistry."""

    def test_register_duplicate_raises(self):
        registry = ToolRegistry([LookupTool()])

        with pytest.raises(ValueError, match="already registered"):
            registry.register(LookupTool())

    def test_resolve(self):
        tool = LookupTool()
        registry = ToolRegistry([tool])

        assert registry.resolve("lookup") is tool
        assert "lookup" in registry
        assert len(registry) == 1

    def test_resolve_unknown_raises(self):
        with pytest.raises(ToolNotFoundError, match="nope"):
            ToolRegistry().resolve("nope")

    def test_schemas_filter_enabled_tools(self):
        registry = ToolRegistry([LookupTool(), ExplodingTool()])

        assert [s.name for s in registry.schemas()] == ["lookup", "explode"]
        assert [s.name for s in registry.schemas(["explode"])] == ["explode"]
        assert registry.schemas([]) == []

    @pytest.mark.asyncio
    async def test_invoke_success(self):
        registry = ToolRegistry([LookupTool()])

        result = await registry.invoke(registry.resolve("lookup"), '{"query": "x"}', tool_call_id="1")

        assert result.tool_call_id == "1"
        assert result.content == "42"
        assert not result.error

    @pytest.mark.asyncio
    async def test_invoke_failure_becomes_error_result(self):
        """Test that an exception inside a tool never escapes the registry."""
        registry = ToolRegistry([ExplodingTool()])

        result = await registry.invoke(registry.resolve("explode"), "{}", tool_call_id="1")

        assert result.error
        assert result.content.startswith("Error:")
        assert "boom" in result.content

    @pytest.mark.asyncio
    async def test_invoke_timeout_becomes_error_result(self):
        registry = ToolRegistry([SlowTool()], timeout=0.05)

        result = await registry.invoke(registry.resolve("slow"), "{}")

        assert result.error
        assert "timed out" in result.content

    @pytest.mark.asyncio
    async def test_invoke_malformed_arguments(self):
        registry = ToolRegistry([LookupTool()])

        result = await registry.invoke(registry.resolve("lookup"), "{oops")

        assert result.error
        assert "Invalid arguments" in result.content

    @pytest.mark.asyncio
    async def test_dispatch_unknown_tool(self):
        registry = ToolRegistry([LookupTool()])

        result = await registry.dispatch(ToolCallRequest(id="7", name="nope", arguments="{}"))

        assert result.tool_call_id == "7"
        assert result.error
        assert result.content == "Error: Tool 'nope' not found"


class CoinCapStub:
    """Serves a fixed CoinCap asset response through httpx.MockTransport."""

    def __init__(self, price: str | None, status_code: int = 200):
        self.price = price
        self.status_code = status_code
        self.requested: list[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requested.append(request.url.path)
        data = {} if self.price is None else {"priceUsd": self.price}
        return httpx.Response(self.status_code, json={"data": data})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


class TestCryptoRateTool:
    """Tests for CryptoRateTool."""

    @pytest.mark.asyncio
    async def test_ticker_alias_and_precision(self):
        stub = CoinCapStub("64123.789")
        async with stub.client() as client:
            tool = CryptoRateTool(client=client)
            rate = await tool.execute({"asset": "BTC"})

        assert rate == "$64124"
        assert stub.requested == ["/v2/assets/bitcoin"]

    @pytest.mark.asyncio
    async def test_small_assets_keep_decimals(self):
        async with CoinCapStub("0.52349").client() as client:
            rate = await CryptoRateTool(client=client).execute({"asset": "xrp"})

        assert rate == "$0.523"

    @pytest.mark.asyncio
    async def test_full_name_passes_through(self):
        stub = CoinCapStub("1.5")
        async with stub.client() as client:
            await CryptoRateTool(client=client).execute({"asset": "Dogecoin"})

        assert stub.requested == ["/v2/assets/dogecoin"]

    @pytest.mark.asyncio
    async def test_missing_asset_raises(self):
        with pytest.raises(ToolExecutionError):
            await CryptoRateTool().execute({})

    @pytest.mark.asyncio
    async def test_unknown_asset_raises(self):
        async with CoinCapStub(None).client() as client:
            with pytest.raises(ToolExecutionError, match="No rate"):
                await CryptoRateTool(client=client).execute({"asset": "nothing"})

    @pytest.mark.asyncio
    async def test_http_error_reported_through_registry(self):
        async with CoinCapStub("1", status_code=503).client() as client:
            registry = ToolRegistry([CryptoRateTool(client=client)])
            result = await registry.dispatch(
                ToolCallRequest(id="1", name="get_crypto_rate", arguments='{"asset": "eth"}')
            )

        assert result.error
        assert "503" in result.content


class TestReminderTool:
    """Tests for ReminderTool."""

    @pytest.mark.asyncio
    async def test_reminder_is_delivered(self):
        delivered: list[str] = []

        async def send(text: str) -> None:
            delivered.append(text)

        tool = ReminderTool(send, seconds_per_minute=0.001)
        message = await tool.call('{"reminder": "buy groceries", "time": 2}')

        assert message == "Reminder set for 2 minutes from now"
        for _ in range(100):
            if delivered and not tool.pending:
                break
            await asyncio.sleep(0.01)
        assert delivered == ["buy groceries"]
        assert tool.pending == 0

    @pytest.mark.asyncio
    async def test_cancel_all(self):
        async def send(text: str) -> None:
            raise AssertionError("should not be delivered")

        tool = ReminderTool(send)
        await tool.execute({"reminder": "call mom", "time": 60})
        assert tool.pending == 1

        tool.cancel_all()
        for _ in range(10):
            if not tool.pending:
                break
            await asyncio.sleep(0)

        assert tool.pending == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "params",
        [{"time": 5}, {"reminder": "x", "time": "soon"}, {"reminder": "x", "time": -1}]
    )
    async def test_invalid_parameters(self, params):
        tool = ReminderTool(lambda text: asyncio.sleep(0))

        with pytest.raises(ToolExecutionError):
            await tool.execute(params)

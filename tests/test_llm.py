"""Unit tests for the llm module."""
import json

import pytest
from conftest import HANG, ScriptedAdapter
from hypothesis import given
from hypothesis import strategies as st

from parley.config import Settings
from parley.errors import (
    MalformedToolCallError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)
from parley.llm import (
    BedrockAdapter,
    Done,
    Failed,
    LocalAdapter,
    ModelCatalog,
    OpenAIChatAdapter,
    OpenAIResponsesAdapter,
    ProviderAdapter,
    ProviderModel,
    SendOptions,
    TextDelta,
    ToolCallBuffer,
    ToolCallRequested,
    UsageReported,
    create_provider_adapter,
)
from parley.llm.providers.anthropic import _history_to_anthropic_messages
from parley.llm.providers.compatible import bedrock_endpoint
from parley.llm.providers.openai import _history_to_chat_messages, _history_to_responses_input
from parley.memory import EntryType, HistoryEntry, Role, ToolCallRequest, Usage

OPTIONS = SendOptions(model="gpt-4o-mini")


async def collect(adapter: ProviderAdapter) -> list:
    return [event async for event in adapter.send([], OPTIONS)]


class TestToolCallBuffer:
    """Tests for reassembly of streamed tool-call arguments."""

    def test_fragments_are_joined(self):
        buffer = ToolCallBuffer()
        buffer.update(0, call_id="call_1", name="lookup")
        buffer.update(0, fragment='{"que')
        buffer.update(0, fragment='ry": "x"}')

        call = buffer.complete(0)

        assert call == ToolCallRequested(id="call_1", name="lookup", arguments='{"query": "x"}')
        assert len(buffer) == 0

    def test_incomplete_arguments_raise(self):
        """Test that a call is never released with half a JSON document."""
        buffer = ToolCallBuffer()
        buffer.update(0, call_id="call_1", name="lookup", fragment='{"query": "x"')

        with pytest.raises(MalformedToolCallError, match="lookup"):
            buffer.complete(0)

    def test_missing_name_raises(self):
        buffer = ToolCallBuffer()
        buffer.update(0, call_id="call_1", fragment="{}")

        with pytest.raises(MalformedToolCallError):
            buffer.complete(0)

    def test_empty_arguments_become_empty_object(self):
        buffer = ToolCallBuffer()
        buffer.update("item", call_id="call_1", name="lookup")

        assert buffer.complete("item").arguments == "{}"

    def test_missing_id_is_synthesized(self):
        buffer = ToolCallBuffer()
        buffer.update(0, name="lookup", arguments="{}")

        assert buffer.complete(0).id.startswith("call_")

    def test_final_arguments_replace_fragments(self):
        buffer = ToolCallBuffer()
        buffer.update(0, call_id="call_1", name="lookup", fragment='{"qu')
        buffer.update(0, arguments='{"query": "x"}')

        assert buffer.complete(0).arguments == '{"query": "x"}'

    def test_drain_keeps_registration_order(self):
        buffer = ToolCallBuffer()
        buffer.update(1, call_id="b", name="second", arguments="{}")
        buffer.update(0, call_id="a", name="first", arguments="{}")

        assert [call.id for call in buffer.drain()] == ["b", "a"]

    @given(
        st.dictionaries(st.text(max_size=8), st.integers() | st.text(max_size=8), max_size=5),
        st.lists(st.integers(min_value=0, max_value=200), max_size=6),
    )
    def test_any_split_reassembles(self, payload: dict, cuts: list[int]):
        """Property test: splitting arguments anywhere reassembles the same object."""
        arguments = json.dumps(payload)
        points = sorted({min(c, len(arguments)) for c in cuts} | {0, len(arguments)})
        buffer = ToolCallBuffer()
        buffer.update(0, call_id="call_1", name="lookup")
        for start, end in zip(points, points[1:], strict=False):
            buffer.update(0, fragment=arguments[start:end])

        assert json.loads(buffer.complete(0).arguments) == payload


class TestProviderAdapterSend:
    """Tests for the normalized event stream."""

    def test_adapter_is_abstract(self):
        with pytest.raises(TypeError):
            ProviderAdapter()  # type: ignore

    @pytest.mark.asyncio
    async def test_events_pass_through_in_order(self):
        adapter = ScriptedAdapter([[
            TextDelta(text="Hel"),
            TextDelta(text="lo"),
            UsageReported(usage=Usage(input_tokens=3, output_tokens=2)),
            Done(finish_reason="stop"),
        ]])

        events = await collect(adapter)

        assert [type(e) for e in events] == [TextDelta, TextDelta, UsageReported, Done]
        assert events[-1].finish_reason == "stop"

    @pytest.mark.asyncio
    async def test_missing_done_is_added(self):
        adapter = ScriptedAdapter([[TextDelta(text="hi")]])

        events = await collect(adapter)

        assert isinstance(events[-1], Done)

    @pytest.mark.asyncio
    async def test_nothing_follows_done(self):
        adapter = ScriptedAdapter([[Done(), TextDelta(text="late")]])

        assert await collect(adapter) == [Done()]

    @pytest.mark.asyncio
    async def test_exception_becomes_single_failed_event(self):
        adapter = ScriptedAdapter([[TextDelta(text="par"), ConnectionError("reset by peer")]])

        events = await collect(adapter)

        assert isinstance(events[0], TextDelta)
        assert len(events) == 2
        assert isinstance(events[1], Failed)
        assert isinstance(events[1].error, ProviderUnavailableError)

    @pytest.mark.asyncio
    async def test_malformed_tool_call_is_reported(self):
        adapter = ScriptedAdapter([[MalformedToolCallError("Incomplete arguments")]])

        events = await collect(adapter)

        assert len(events) == 1
        assert events[0].error.code == "malformed_tool_call"

    @pytest.mark.asyncio
    async def test_deadline_becomes_timeout_failure(self):
        """Test that a stalled stream ends with a provider timeout."""
        adapter = ScriptedAdapter([[TextDelta(text="a"), HANG]], timeout=0.05)

        events = await collect(adapter)

        assert isinstance(events[-1], Failed)
        assert isinstance(events[-1].error, ProviderTimeoutError)
        assert events[-1].error.timeout == 0.05

    @pytest.mark.asyncio
    async def test_complete_joins_text(self):
        adapter = ScriptedAdapter([[
            TextDelta(text="sum"),
            TextDelta(text="mary"),
            UsageReported(usage=Usage(input_tokens=5, output_tokens=1)),
        ]])

        text, usage = await adapter.complete([], OPTIONS)

        assert text == "summary"
        assert usage.usage.total_tokens == 6

    @pytest.mark.asyncio
    async def test_complete_raises_carried_error(self):
        adapter = ScriptedAdapter([[ConnectionError("down")]])

        with pytest.raises(ProviderUnavailableError):
            await adapter.complete([], OPTIONS)

    @pytest.mark.asyncio
    async def test_context_manager_closes(self):
        adapter = ScriptedAdapter()
        async with adapter:
            pass
        assert adapter.closed


class TestFactory:
    """Tests for create_provider_adapter."""

    def test_unknown_provider_raises_error(self):
        with pytest.raises(ValueError, match="Unsupported provider"):
            create_provider_adapter("cohere", api_key="x")

    @pytest.mark.parametrize("provider", ["openai", "openai_responses", "anthropic", "gemini", "aws"])
    def test_missing_api_key_raises_error(self, provider):
        with pytest.raises(TypeError, match="api_key"):
            create_provider_adapter(provider)

    @pytest.mark.asyncio
    async def test_create_openai_adapters(self):
        chat = create_provider_adapter("openai", api_key="fake-key", timeout=12)
        responses = create_provider_adapter("openai_responses", api_key="fake-key")
        try:
            assert isinstance(chat, OpenAIChatAdapter)
            assert isinstance(responses, OpenAIResponsesAdapter)
            assert chat.timeout == 12
        finally:
            await chat.close()
            await responses.close()

    @pytest.mark.asyncio
    async def test_local_needs_no_key(self):
        adapter = create_provider_adapter("local")
        try:
            assert isinstance(adapter, LocalAdapter)
        finally:
            await adapter.close()

    @pytest.mark.asyncio
    async def test_bedrock_alias_and_region(self):
        adapter = create_provider_adapter("bedrock", api_key="fake-key", region="eu-west-1")
        try:
            assert isinstance(adapter, BedrockAdapter)
            assert adapter.region == "eu-west-1"
        finally:
            await adapter.close()

    def test_bedrock_endpoint(self):
        assert bedrock_endpoint("us-east-1") == "https://bedrock-runtime.us-east-1.amazonaws.com/openai/v1"


class TestModelCatalog:
    """Tests for model lookup and adapter caching."""

    @pytest.fixture
    def models(self):
        return [
            ProviderModel(model_id="gpt-4o-mini", name="mini", provider="openai"),
            ProviderModel(model_id="gpt-4.1", name="big", provider="openai", responses_api=True),
            ProviderModel(model_id="claude-sonnet-4-20250514", name="claude", provider="anthropic"),
        ]

    def test_lookup_by_name_and_model_id(self, models):
        catalog = ModelCatalog(Settings(default_model="mini"), models)

        assert catalog.get("big").model_id == "gpt-4.1"
        assert catalog.get("claude-sonnet-4-20250514").name == "claude"

    def test_unknown_model_falls_back_to_default(self, models):
        catalog = ModelCatalog(Settings(default_model="claude"), models)

        assert catalog.get("gpt-7").name == "claude"

    def test_missing_default_uses_first_model(self, models):
        catalog = ModelCatalog(Settings(default_model="gone"), models)

        assert catalog.default_model.name == "mini"

    def test_empty_catalog_rejected(self):
        with pytest.raises(ValueError):
            ModelCatalog(Settings(models=[]))

    def test_adapter_key_by_protocol(self, models):
        assert ModelCatalog.adapter_key(models[0]) == "openai"
        assert ModelCatalog.adapter_key(models[1]) == "openai_responses"
        assert ModelCatalog.adapter_key(models[2]) == "anthropic"

    def test_registered_adapter_is_reused(self, models):
        catalog = ModelCatalog(Settings(default_model="mini"), models)
        adapter = ScriptedAdapter()
        catalog.register_adapter("openai", adapter)

        assert catalog.adapter_for(catalog.get("mini")) is adapter
        assert catalog.adapter_for(catalog.get("mini")) is adapter

    def test_unconfigured_provider_raises(self, models):
        catalog = ModelCatalog(Settings(anthropic_api_key=None), models)

        with pytest.raises(TypeError):
            catalog.adapter_for(catalog.get("claude"))

    @pytest.mark.asyncio
    async def test_close_closes_adapters(self, models):
        catalog = ModelCatalog(Settings(), models)
        adapter = ScriptedAdapter()
        catalog.register_adapter("openai", adapter)

        await catalog.close()

        assert adapter.closed


def _tool_exchange() -> list[HistoryEntry]:
    return [
        HistoryEntry(conversation_id="c", role=Role.USER, content="What is the answer?"),
        HistoryEntry(
            conversation_id="c",
            role=Role.ASSISTANT,
            tool_calls=[ToolCallRequest(id="1", name="lookup", arguments='{"query": "answer"}')],
        ),
        HistoryEntry(conversation_id="c", role=Role.TOOL, tool_call_id="1", content="42"),
        HistoryEntry(conversation_id="c", role=Role.ASSISTANT, content="It is 42."),
    ]


class TestHistoryConversion:
    """Tests for provider message formats."""

    def test_chat_messages_link_tool_results(self):
        messages = _history_to_chat_messages(_tool_exchange(), "Be brief.")

        assert messages[0] == {"role": "system", "content": "Be brief."}
        assert messages[2]["tool_calls"][0]["id"] == "1"
        assert messages[2]["tool_calls"][0]["function"]["name"] == "lookup"
        assert messages[3] == {"role": "tool", "tool_call_id": "1", "content": "42"}
        assert messages[4] == {"role": "assistant", "content": "It is 42."}

    @pytest.mark.asyncio
    async def test_chat_token_limit_for_reasoning_models(self):
        async with OpenAIChatAdapter(api_key="fake-key") as adapter:
            reasoning = adapter._request_params(
                _tool_exchange(), SendOptions(model="o4-mini", reasoning=True, max_output_tokens=900)
            )
            regular = adapter._request_params(
                _tool_exchange(), SendOptions(model="gpt-4o-mini", max_output_tokens=900)
            )

        assert reasoning["max_completion_tokens"] == 900
        assert "max_tokens" not in reasoning
        assert "temperature" not in reasoning
        assert regular["max_tokens"] == 900
        assert regular["temperature"] == 0.8

    def test_responses_input_uses_function_items(self):
        items = _history_to_responses_input(_tool_exchange())

        assert items[1] == {
            "type": "function_call",
            "call_id": "1",
            "name": "lookup",
            "arguments": '{"query": "answer"}',
        }
        assert items[2] == {"type": "function_call_output", "call_id": "1", "output": "42"}

    def test_anthropic_tool_result_in_user_message(self):
        messages = _history_to_anthropic_messages(_tool_exchange())

        assert [m["role"] for m in messages] == ["user", "assistant", "user", "assistant"]
        assert messages[1]["content"][0] == {
            "type": "tool_use",
            "id": "1",
            "name": "lookup",
            "input": {"query": "answer"},
        }
        assert messages[2]["content"][0]["tool_use_id"] == "1"

    def test_anthropic_summary_merges_into_first_user_turn(self):
        """Test that a leading summary keeps the thread opening with a user turn."""
        history = [
            HistoryEntry(
                conversation_id="c",
                role=Role.ASSISTANT,
                content="They talked about the weather.",
                entry_type=EntryType.SUMMARY,
            ),
            HistoryEntry(conversation_id="c", role=Role.USER, content="And tomorrow?"),
        ]

        messages = _history_to_anthropic_messages(history)

        assert len(messages) == 1
        assert messages[0]["role"] == "user"
        assert messages[0]["content"][0]["text"].startswith("[Conversation summary]")
        assert messages[0]["content"][1]["text"] == "And tomorrow?"


class TestRealProviders:
    """Integration tests against real provider APIs."""

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_openai_chat_real_api(self, api_keys):
        """Integration test: Stream a short answer from OpenAI."""
        if not api_keys["openai"]:
            pytest.skip("OPENAI_API_KEY not set")

        async with OpenAIChatAdapter(api_key=api_keys["openai"], timeout=60) as adapter:
            history = [HistoryEntry(conversation_id="c", role=Role.USER, content="Reply with the word pong.")]
            text, usage = await adapter.complete(history, SendOptions(model="gpt-4o-mini", temperature=0))

        assert "pong" in text.lower()
        assert usage is not None

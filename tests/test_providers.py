"""Provider normalization and factory tests."""

from types import SimpleNamespace

import pytest

from reelsmith.providers import create_provider
from reelsmith.providers.openai_compat import OpenAICompatibleProvider
from reelsmith.providers.scripted import ScriptedProvider
from reelsmith.providers.types import FunctionCall, FunctionResponse, GenerationConfig, LLMResponse, Message
from reelsmith.retry import TransientError


def _provider() -> OpenAICompatibleProvider:
    return OpenAICompatibleProvider(api_key="test-key", model="gpt-4o-mini")


def test_openai_completion_parses_tool_calls():
    completion = SimpleNamespace(
        choices=[
            SimpleNamespace(
                message=SimpleNamespace(
                    content=None,
                    tool_calls=[
                        SimpleNamespace(
                            id="call_1",
                            function=SimpleNamespace(
                                name="generate_image_with_approval",
                                arguments='{"model":"imagen","segments":[]}',
                            ),
                        ),
                        SimpleNamespace(
                            id="call_2",
                            function=SimpleNamespace(name="get_web_info", arguments="not json"),
                        ),
                    ],
                )
            )
        ],
    )

    response = _provider()._from_openai_completion(completion)

    assert response.text == ""
    assert [c.name for c in response.function_calls] == ["generate_image_with_approval", "get_web_info"]
    assert response.function_calls[0].arguments == {"model": "imagen", "segments": []}
    assert response.function_calls[1].arguments == {}


def test_openai_completion_without_choices_is_transient():
    with pytest.raises(TransientError):
        _provider()._from_openai_completion(SimpleNamespace(choices=[]))


def test_openai_messages_pair_tool_calls_and_responses():
    messages = [
        Message.user("Create a face wash ad"),
        Message.assistant("", [FunctionCall(name="get_web_info", arguments={"prompt": "x"}, id="c1")]),
        Message.tool_response([FunctionResponse(name="get_web_info", response={"result": "ok"}, call_id="c1")]),
    ]

    converted = _provider()._to_openai_messages(messages, "system here")

    assert [m["role"] for m in converted] == ["system", "user", "assistant", "tool"]
    assert converted[2]["tool_calls"][0]["id"] == "c1"
    assert converted[3] == {"role": "tool", "tool_call_id": "c1", "content": '{"result": "ok"}'}


@pytest.mark.asyncio
async def test_scripted_provider_replays_then_summarizes():
    provider = ScriptedProvider([LLMResponse(text="first")])
    messages = [Message.user("Create a face wash ad\n\nUser ID: u1")]

    first = await provider.generate(messages, None, GenerationConfig())
    second = await provider.generate(messages, None, GenerationConfig())

    assert first.text == "first"
    assert second.text == "Completed request: Create a face wash ad"
    assert len(provider.calls) == 2


def test_factory_returns_scripted_for_stub():
    assert isinstance(create_provider("stub", api_key="", model="m"), ScriptedProvider)


def test_factory_requires_api_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(ValueError):
        create_provider("openai", api_key="", model="gpt-4o-mini")


def test_factory_builds_openai_compatible(monkeypatch):
    monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-test")

    provider = create_provider("deepseek", api_key="", model="deepseek-chat")

    assert isinstance(provider, OpenAICompatibleProvider)
    assert provider.api_base == "https://api.deepseek.com"

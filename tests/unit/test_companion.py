# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from adapters.llm.streaming import OpenAIChatProvider
from adapters.retrieval.base import Topic
from companion import GROQ_BASE_URL, build_companion, build_provider
from config import AppConfig
from context.conversation import InMemoryKeyValueStore
from errors import ProviderConfigurationError
from invariants import HISTORY_STORAGE_KEY

from fakes import FakeStore, ScriptedProvider, reply


ENV = {
    "PERSONA_PROMPT": "You are Airi.",
    "IDLE_TALK_ENABLED": "true",
    "KNOWLEDGE_DB_ENABLED": "true",
    "LLM_MODEL": "m",
}


@pytest.mark.asyncio
async def test_user_turn_flows_through_knowledge_history_and_speech() -> None:
    spoken: list[str] = []

    async def speak(text: str) -> None:
        spoken.append(text)

    kv = InMemoryKeyValueStore()
    store = FakeStore([Topic(content="cats")], related=[Topic(content="likes tea", similarity=0.9)])
    provider = ScriptedProvider(reply("I drink green tea. Every morning!"))
    companion = build_companion(
        AppConfig.load_from_env(ENV),
        provider=provider,
        store=store,
        kv_store=kv,
        speech_sink=speak,
    )
    companion.start()

    await companion.say("what do you drink?")

    system = provider.calls[0]["messages"][0]["content"]
    assert "You are Airi." in system
    assert "1. [90.0% relevant] likes tea" in system
    assert spoken == ["I drink green tea.", "Every morning!"]
    assert [m["role"] for m in kv.get(HISTORY_STORAGE_KEY)] == ["system", "user", "assistant"]
    assert companion.idle_talk.idle.last_response == "I drink green tea. Every morning!"
    assert companion.idle_talk.timer_armed

    await companion.aclose()
    assert not companion.idle_talk.timer_armed


@pytest.mark.asyncio
async def test_say_without_provider_raises() -> None:
    companion = build_companion(AppConfig.load_from_env({"LLM_MODEL": "m"}))

    assert companion.provider is None
    with pytest.raises(ProviderConfigurationError):
        await companion.say("hello")


@pytest.mark.asyncio
async def test_external_messages_and_session_reset() -> None:
    companion = build_companion(AppConfig.load_from_env(ENV), provider=ScriptedProvider(), store=FakeStore())
    companion.start()
    companion.idle_talk.idle.last_response = "earlier"

    companion.receive_external("hello!", author="alice", source="discord")
    assert companion.history[-1].content == "alice: hello!"
    assert companion.idle_talk.idle.last_response == "earlier"

    companion.reset_session()
    assert len(companion.history) == 1
    assert companion.idle_talk.idle.last_response is None

    await companion.aclose()


def test_build_provider_selects_base_url() -> None:
    config = AppConfig.load_from_env({"LLM_PROVIDER": "groq", "OPENAI_API_KEY": "sk-test"})

    provider = build_provider(config.llm)

    assert isinstance(provider, OpenAIChatProvider)
    assert str(provider._client.base_url).startswith(GROQ_BASE_URL)  # pylint: disable=protected-access
    assert build_provider(AppConfig.load_from_env({}).llm) is None

# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import random
from typing import Any

import pytest

from adapters.retrieval.base import Topic
from config import IdleTalkConfig
from context.conversation import ConversationHistory
from orchestrator.enums.hook_channel import HookChannel
from orchestrator.enums.idle_state import IdleTalkState
from orchestrator.events import Finish
from orchestrator.hooks import HookRegistry
from orchestrator.idle_talk import IdleTalkEngine, ProviderSelection
from orchestrator.pipeline import SendOptions, StreamingSendPipeline
from orchestrator.talking import TalkingSignal

from fakes import FakeStore, ScriptedProvider, reply


def _engine(
    *,
    store: FakeStore | None = None,
    provider: ScriptedProvider | None = None,
    no_provider: bool = False,
    **config: Any,
) -> tuple[IdleTalkEngine, StreamingSendPipeline, ScriptedProvider]:
    talking = TalkingSignal()
    pipeline = StreamingSendPipeline(history=ConversationHistory(), hooks=HookRegistry(), talking=talking)
    provider = provider or ScriptedProvider()
    config.setdefault("enabled", True)
    config.setdefault("timeout_ms", 60_000)

    engine = IdleTalkEngine(
        config=IdleTalkConfig(**config),
        pipeline=pipeline,
        store=store if store is not None else FakeStore([Topic(content="cats", author="me")]),
        resolve_provider=lambda: None if no_provider else ProviderSelection(model="m", provider=provider),
        talking=talking,
        rng=random.Random(0),
        poll_interval_ms=5,
        response_wait_ms=50,
    )
    return engine, pipeline, provider


def _last_prompt(provider: ScriptedProvider, call: int = -1) -> str:
    return provider.calls[call]["messages"][-1]["content"]


# ---------------------------------------------------------------------
# Topic strategy
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_continuation_cycle_resets_after_max_depth() -> None:
    provider = ScriptedProvider(reply("reply 1"), reply("reply 2"), reply("reply 3"), reply("reply 4"))
    engine, _, _ = _engine(provider=provider, max_context_continuation=2)
    engine.initialize()

    await engine.handle_idle_timeout()
    assert "Topic: cats" in _last_prompt(provider)
    assert engine.idle.continuation_count == 0
    assert engine.idle.initial_topic == "cats"
    assert engine.idle.last_response == "reply 1"

    await engine.handle_idle_timeout()
    assert '"reply 1"' in _last_prompt(provider)
    assert engine.idle.continuation_count == 1

    await engine.handle_idle_timeout()
    assert '"reply 2"' in _last_prompt(provider)
    assert engine.idle.continuation_count == 2

    await engine.handle_idle_timeout()
    assert "Topic: cats" in _last_prompt(provider)
    assert engine.idle.continuation_count == 0
    assert engine.idle.last_response == "reply 4"

    engine.dispose()


@pytest.mark.asyncio
async def test_continuation_counter_stays_within_bounds() -> None:
    engine, _, _ = _engine(max_context_continuation=3)
    engine.initialize()

    for _ in range(12):
        await engine.handle_idle_timeout()
        assert 0 <= engine.idle.continuation_count <= 3

    engine.dispose()


@pytest.mark.asyncio
async def test_continuation_queries_related_items_and_truncates_previews() -> None:
    long_item = Topic(content="x" * 150, similarity=0.9)
    store = FakeStore([Topic(content="cats")], related=[long_item])
    provider = ScriptedProvider(reply("reply 1"), reply("reply 2"))
    engine, _, _ = _engine(store=store, provider=provider)
    engine.initialize()

    await engine.handle_idle_timeout()
    await engine.handle_idle_timeout()

    assert store.similar_calls == [("reply 1", 3, 0.6)]
    prompt = _last_prompt(provider)
    assert "[Related things you said before]" in prompt
    assert f"- {'x' * 100}..." in prompt

    engine.dispose()


@pytest.mark.asyncio
async def test_continue_context_disabled_always_picks_new_topic() -> None:
    provider = ScriptedProvider(reply("reply 1"), reply("reply 2"))
    engine, _, _ = _engine(provider=provider, continue_context=False)
    engine.initialize()

    await engine.handle_idle_timeout()
    await engine.handle_idle_timeout()

    assert "Topic: cats" in _last_prompt(provider, 0)
    assert "Topic: cats" in _last_prompt(provider, 1)
    engine.dispose()


@pytest.mark.asyncio
async def test_sequential_mode_takes_first_topic() -> None:
    store = FakeStore([Topic(content="alpha"), Topic(content="beta"), Topic(content="gamma")])
    engine, _, _ = _engine(store=store, mode="sequential")

    prompt = await engine.build_idle_talk_prompt()

    assert prompt is not None
    assert "Topic: alpha" in prompt
    assert store.random_calls == [5]


@pytest.mark.asyncio
async def test_random_mode_picks_one_of_the_returned_topics() -> None:
    topics = [Topic(content=name) for name in ("alpha", "beta", "gamma")]
    engine, _, _ = _engine(store=FakeStore(topics))

    await engine.build_idle_talk_prompt()

    assert engine.idle.initial_topic in {"alpha", "beta", "gamma"}


# ---------------------------------------------------------------------
# Synthetic prompt visibility
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_synthetic_prompt_never_appears_in_history() -> None:
    engine, pipeline, provider = _engine()

    await engine.handle_idle_timeout()

    assert [m.role for m in pipeline.history] == ["system", "assistant"]
    assert provider.calls[0]["messages"][-1]["role"] == "user"
    engine.dispose()


@pytest.mark.asyncio
async def test_state_is_talking_only_during_the_turn() -> None:
    engine, pipeline, _ = _engine()
    seen: list[IdleTalkState] = []
    pipeline.hooks.on_before_send(lambda _t: seen.append(engine.state))

    assert engine.state is IdleTalkState.IDLE
    await engine.handle_idle_timeout()

    assert seen == [IdleTalkState.TALKING]
    assert engine.state is IdleTalkState.IDLE
    engine.dispose()


# ---------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_no_topic_aborts_turn_and_rearms(log_lines) -> None:
    engine, _, provider = _engine(store=FakeStore([]))

    prompt = await engine.build_idle_talk_prompt()
    assert prompt is None

    await engine.handle_idle_timeout()

    assert provider.calls == []
    assert engine.idle.last_response is None
    assert engine.state is IdleTalkState.IDLE
    assert engine.timer_armed
    assert any(e["event_type"] == "idle_talk_no_prompt" for e in log_lines)
    engine.dispose()


@pytest.mark.asyncio
async def test_retrieval_error_is_treated_as_no_topic(log_lines) -> None:
    engine, _, provider = _engine(store=FakeStore(fail=True))

    await engine.handle_idle_timeout()

    assert provider.calls == []
    assert engine.state is IdleTalkState.IDLE
    assert any(e["event_type"] == "idle_talk_topic_fetch_failed" for e in log_lines)
    engine.dispose()


@pytest.mark.asyncio
async def test_related_query_failure_still_builds_continuation() -> None:
    store = FakeStore([Topic(content="cats")])
    engine, _, _ = _engine(store=store)
    engine.idle.last_response = "earlier reply"
    store.fail = True

    prompt = await engine.build_idle_talk_prompt()

    assert prompt is not None
    assert '"earlier reply"' in prompt
    assert "[Related things you said before]" not in prompt
    assert engine.idle.continuation_count == 1


@pytest.mark.asyncio
async def test_missing_provider_is_logged_and_turn_aborted(log_lines) -> None:
    engine, pipeline, _ = _engine(no_provider=True)

    await engine.handle_idle_timeout()

    assert len(pipeline.history) == 1
    assert engine.state is IdleTalkState.IDLE
    assert engine.timer_armed
    assert any(e["event_type"] == "idle_talk_no_provider" for e in log_lines)
    engine.dispose()


@pytest.mark.asyncio
async def test_provider_error_does_not_crash_the_engine(log_lines) -> None:
    engine, _, _ = _engine(provider=ScriptedProvider(error=ConnectionError("down")))

    await engine.handle_idle_timeout()

    assert engine.state is IdleTalkState.IDLE
    assert engine.timer_armed
    failures = [e for e in log_lines if e["event_type"] == "idle_talk_failed"]
    assert failures and "down" in failures[0]["error"]
    engine.dispose()


@pytest.mark.asyncio
async def test_missing_assistant_message_times_out_with_warning(log_lines) -> None:
    engine, _, _ = _engine(provider=ScriptedProvider([Finish("stop")]))

    await engine.handle_idle_timeout()

    warnings = [e for e in log_lines if e["event_type"] == "idle_talk_response_timeout"]
    assert len(warnings) == 1
    assert warnings[0]["level"] == "WARNING"
    engine.dispose()


@pytest.mark.asyncio
async def test_timeout_is_skipped_while_a_user_turn_is_sending() -> None:
    engine, pipeline, provider = _engine()
    pipeline.sending = True

    await engine.handle_idle_timeout()

    assert provider.calls == []
    assert engine.state is IdleTalkState.IDLE
    assert engine.timer_armed
    engine.dispose()


@pytest.mark.asyncio
async def test_timer_survives_a_user_turn_that_fails_mid_stream() -> None:
    engine, pipeline, idle_provider = _engine(timeout_ms=30)
    engine.initialize()

    failing = ScriptedProvider(error=ConnectionError("down"), delay_s=0.1)
    with pytest.raises(ConnectionError):
        await pipeline.send("hi", SendOptions(model="m", provider=failing))

    assert engine.state is IdleTalkState.IDLE
    assert engine.timer_armed

    for _ in range(200):
        if idle_provider.calls and engine.state is not IdleTalkState.TALKING:
            break
        await asyncio.sleep(0.005)
    engine.dispose()

    assert len(idle_provider.calls) >= 1


# ---------------------------------------------------------------------
# Timer and hooks
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_reset_idle_timer_is_idempotent() -> None:
    engine, _, _ = _engine()
    engine.idle.last_response = "r"
    engine.idle.initial_topic = "t"
    engine.idle.continuation_count = 2

    engine.reset_idle_timer(True)
    once = (engine.idle.last_response, engine.idle.initial_topic, engine.idle.continuation_count)
    engine.reset_idle_timer(True)
    twice = (engine.idle.last_response, engine.idle.initial_topic, engine.idle.continuation_count)

    assert once == twice == (None, None, 0)
    assert engine.timer_armed
    engine.dispose()


@pytest.mark.asyncio
async def test_reset_without_clearing_keeps_context() -> None:
    engine, _, _ = _engine()
    engine.idle.last_response = "r"
    engine.idle.continuation_count = 1

    engine.reset_idle_timer(clear_context=False)

    assert engine.idle.last_response == "r"
    assert engine.idle.continuation_count == 1
    engine.dispose()


@pytest.mark.asyncio
async def test_dispose_cancels_timer_but_keeps_context() -> None:
    engine, _, _ = _engine()
    engine.initialize()
    engine.idle.last_response = "r"

    engine.dispose()

    assert not engine.timer_armed
    assert engine.idle.last_response == "r"


@pytest.mark.asyncio
async def test_dispose_during_an_autonomous_turn_stops_the_engine() -> None:
    engine, _, provider = _engine(timeout_ms=10, provider=ScriptedProvider(delay_s=0.05))
    engine.initialize()

    for _ in range(200):
        if engine.state is IdleTalkState.TALKING:
            break
        await asyncio.sleep(0.005)
    assert engine.state is IdleTalkState.TALKING

    engine.dispose()
    for _ in range(200):
        if engine.state is not IdleTalkState.TALKING:
            break
        await asyncio.sleep(0.005)
    await asyncio.sleep(0.2)

    assert len(provider.calls) == 1
    assert not engine.timer_armed

    await engine.handle_idle_timeout()
    assert len(provider.calls) == 1

    engine.initialize()
    assert engine.timer_armed
    engine.dispose()


@pytest.mark.asyncio
async def test_disabled_engine_never_arms() -> None:
    engine, pipeline, provider = _engine(enabled=False)

    engine.initialize()
    engine.reset_idle_timer()
    await engine.handle_idle_timeout()

    assert engine.state is IdleTalkState.DISABLED
    assert not engine.timer_armed
    assert provider.calls == []
    assert pipeline.hooks.count(HookChannel.BEFORE_COMPOSE) == 0
    assert pipeline.hooks.count(HookChannel.ASSISTANT_RESPONSE_END) == 0


@pytest.mark.asyncio
async def test_user_input_clears_context_and_response_end_stores_reply() -> None:
    engine, pipeline, _ = _engine()
    engine.initialize()
    engine.idle.last_response = "old"
    engine.idle.initial_topic = "old topic"
    engine.idle.continuation_count = 2

    await pipeline.send("hello", SendOptions(model="m", provider=ScriptedProvider(reply("new answer"))))

    assert engine.idle.last_response == "new answer"
    assert engine.idle.initial_topic is None
    assert engine.idle.continuation_count == 0
    assert engine.timer_armed
    engine.dispose()


@pytest.mark.asyncio
async def test_timer_fires_an_autonomous_turn() -> None:
    engine, pipeline, provider = _engine(timeout_ms=50)
    engine.initialize()
    assert engine.timer_armed

    for _ in range(200):
        if provider.calls and engine.state is not IdleTalkState.TALKING:
            break
        await asyncio.sleep(0.005)
    engine.dispose()

    assert len(provider.calls) == 1
    assert pipeline.history[-1].role == "assistant"
    assert engine.idle.last_response == "ok"

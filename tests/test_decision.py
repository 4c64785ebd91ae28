from unittest.mock import AsyncMock, MagicMock

import pytest
from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import AIMessage, HumanMessage

from chronicle.domain.errors import RetryExhausted, TransientNetworkError
from chronicle.domain.orchestration.decision import ChatModelDecision

pytestmark = pytest.mark.anyio


async def test_plain_model_is_invoked(retry):
    model = GenericFakeChatModel(messages=iter([AIMessage(content="hello there")]))
    decision = ChatModelDecision(model, retry=retry)

    result = await decision.invoke([HumanMessage(content="hi")])

    assert result.content == "hello there"


async def test_tools_are_bound_only_for_decision_steps(retry):
    model = MagicMock()
    bound = MagicMock()
    model.bind_tools.return_value = bound
    model.ainvoke = AsyncMock(return_value=AIMessage(content="plain"))
    bound.ainvoke = AsyncMock(return_value=AIMessage(content="with tools"))
    specs = [{"type": "function", "function": {"name": "noop", "parameters": {}}}]

    decision = ChatModelDecision(model, specs, retry)

    assert (await decision.invoke([HumanMessage(content="x")])).content == "with tools"
    assert (await decision.invoke([HumanMessage(content="x")], use_tools=False)).content == "plain"
    model.bind_tools.assert_called_once_with(specs)


async def test_transient_model_errors_are_retried(retry):
    model = MagicMock()
    model.ainvoke = AsyncMock(side_effect=[TransientNetworkError("503"), AIMessage(content="ok")])

    result = await ChatModelDecision(model, retry=retry).invoke([HumanMessage(content="x")])

    assert result.content == "ok"
    assert model.ainvoke.await_count == 2


async def test_persistent_model_errors_surface(retry):
    model = MagicMock()
    model.ainvoke = AsyncMock(side_effect=TimeoutError("slow"))

    with pytest.raises(RetryExhausted):
        await ChatModelDecision(model, retry=retry).invoke([HumanMessage(content="x")])

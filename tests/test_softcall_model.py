"""Tests for YAMLSoftCallModel, the tool-call emulator."""

import asyncio

from coord.errors import RateLimitError, StreamCancelledError
from coord.llm.base import Model
from coord.llm.stream import StreamWriter, start_stream
from coord.softcall import SoftCallConfig, YAMLSoftCallModel
from coord.softcall.prompt import SYSTEM_PROMPT, render_tool_declarations
from coord.types import (
    ChatContext,
    Content,
    FinishReason,
    FunctionCall,
    FunctionDeclaration,
    FunctionResponse,
    Role,
    Text,
    ThinkingBlock,
    UsageData,
    text_content,
)

_CALL = "<tool_call>\nname: get_weather\nparameters:\n  location: Seoul\n</tool_call>"


class FakeUpstream:
    """Text-only model that streams canned chunks and records requests."""

    def __init__(self, chunks=(), error=None, delay=0.0, finish=FinishReason.STOP):
        self.chunks = list(chunks)
        self.error = error
        self.delay = delay
        self.finish = finish
        self.calls: list[tuple[ChatContext, Content]] = []
        self.closed = False

    def name(self) -> str:
        return "fake-model"

    async def close(self) -> None:
        self.closed = True

    def generate_stream(self, chat, input, *, cancel=None):
        self.calls.append((chat, input))

        async def _worker(out: StreamWriter) -> None:
            for chunk in self.chunks:
                if self.delay:
                    await asyncio.sleep(self.delay)
                out.content.parts.append(Text(chunk))
                await out.send(Text(chunk))
            if self.error is not None:
                raise self.error
            out.usage = UsageData(input_tokens=10, output_tokens=5, total_tokens=15)
            out.finish_reason = self.finish

        return start_stream(_worker, cancel)


def _chat(**kwargs) -> ChatContext:
    return ChatContext(tools=[FunctionDeclaration(name="get_weather")], **kwargs)


def _model(upstream, **kwargs) -> YAMLSoftCallModel:
    return YAMLSoftCallModel(upstream, new_call_id=lambda: "call_test", **kwargs)


class TestPassThrough:
    async def test_no_tools_goes_to_upstream(self):
        upstream = FakeUpstream(["<tool_call>not parsed</tool_call>"])
        chat = ChatContext(contents=[text_content(Role.USER, "earlier")])
        stream = _model(upstream).generate_stream(chat, text_content(Role.USER, "hi"))
        content = await stream.collect()
        assert upstream.calls[0][0] is chat
        assert content.parts == [Text("<tool_call>not parsed</tool_call>")]

    async def test_no_context(self):
        upstream = FakeUpstream(["hello"])
        stream = _model(upstream).generate_stream(None, text_content(Role.USER, "hi"))
        assert (await stream.collect()).parts == [Text("hello")]
        assert upstream.calls[0][0] is None

    def test_satisfies_model_protocol(self):
        assert isinstance(_model(FakeUpstream()), Model)

    async def test_name_and_close_delegate(self):
        upstream = FakeUpstream()
        model = _model(upstream)
        assert model.name() == "fake-model"
        await model.close()
        assert upstream.closed


class TestRequestRewrite:
    async def test_few_shot_prefix_and_no_tools(self):
        upstream = FakeUpstream(["ok"])
        chat = _chat(
            contents=[text_content(Role.USER, "earlier")],
            system_instruction="Be brief.",
        )
        await _model(upstream).generate_stream(chat, text_content(Role.USER, "hi")).collect()

        sent_chat, sent_input = upstream.calls[0]
        assert sent_chat.tools == []
        assert sent_chat.system_instruction == "Be brief."
        assert len(sent_chat.contents) == 7
        first = sent_chat.contents[0].parts[0].text
        assert first == SYSTEM_PROMPT % render_tool_declarations(chat.tools)
        assert sent_chat.contents[6] == text_content(Role.USER, "earlier")
        assert sent_input == text_content(Role.USER, "hi")

    async def test_history_calls_and_results_rendered(self):
        upstream = FakeUpstream(["done"])
        call = FunctionCall(name="get_weather", id="call_1", args={"location": "Seoul"})
        chat = _chat(contents=[
            text_content(Role.USER, "weather?"),
            Content(role=Role.MODEL, parts=[Text("  "), call]),
        ])
        result = Content(
            role=Role.FUNCTION,
            parts=[FunctionResponse(name="get_weather", id="call_1", content={"temp": 21})],
        )
        await _model(upstream).generate_stream(chat, result).collect()

        sent_chat, sent_input = upstream.calls[0]
        model_turn = sent_chat.contents[-1]
        assert model_turn.role is Role.MODEL
        assert len(model_turn.parts) == 1
        assert model_turn.parts[0].text.startswith("  \n\n<tool_call>\nname: get_weather")
        assert sent_input.role is Role.FUNCTION
        assert sent_input.parts == [
            Text('\n\n<tool_response>\n{"temp": 21}\n</tool_response>'),
        ]

    async def test_caller_context_untouched(self):
        upstream = FakeUpstream(["ok"])
        call = FunctionCall(name="get_weather", id="call_1")
        chat = _chat(contents=[Content(role=Role.MODEL, parts=[call])])
        await _model(upstream).generate_stream(chat, text_content(Role.USER, "hi")).collect()
        assert chat.contents[0].parts == [call]
        assert len(chat.tools) == 1


class TestResponseParsing:
    async def test_tool_call_extracted(self):
        upstream = FakeUpstream(["I'll check.", "\n\n", _CALL])
        stream = _model(upstream).generate_stream(_chat(), text_content(Role.USER, "weather?"))
        live = [seg async for seg in stream]

        expected_call = FunctionCall(name="get_weather", id="call_test", args={"location": "Seoul"})
        assert live[-1] == expected_call
        assert stream.error is None
        assert stream.content.role is Role.MODEL
        assert stream.content.parts == [Text("I'll check.\n\n"), expected_call]
        assert stream.finish_reason is FinishReason.TOOL_USE
        assert stream.usage.total_tokens == 15

    async def test_plain_answer_keeps_stop(self):
        upstream = FakeUpstream(["<reasoning>easy</reasoning>", "It is sunny."])
        stream = _model(upstream).generate_stream(_chat(), text_content(Role.USER, "weather?"))
        content = await stream.collect()
        assert content.parts == [Text("It is sunny.")]
        assert stream.finish_reason is FinishReason.STOP

    async def test_blank_text_between_blocks_dropped(self):
        upstream = FakeUpstream(["<reasoning>x</reasoning>\n\n", _CALL])
        content = await _model(upstream).generate_stream(
            _chat(), text_content(Role.USER, "weather?"),
        ).collect()
        assert content.parts == [
            FunctionCall(name="get_weather", id="call_test", args={"location": "Seoul"}),
        ]

    async def test_max_tokens_not_upgraded(self):
        upstream = FakeUpstream([_CALL], finish=FinishReason.MAX_TOKENS)
        stream = _model(upstream).generate_stream(_chat(), text_content(Role.USER, "go"))
        await stream.collect()
        assert stream.finish_reason is FinishReason.MAX_TOKENS

    async def test_preserve_reasoning(self):
        upstream = FakeUpstream(["<reasoning>plan</reasoning>answer"])
        model = _model(upstream, config=SoftCallConfig(preserve_reasoning=True))
        content = await model.generate_stream(_chat(), text_content(Role.USER, "q")).collect()
        assert content.parts == [ThinkingBlock(data="plan"), Text("answer")]

    async def test_malformed_call_is_text(self):
        upstream = FakeUpstream(["<tool_call>\nname: [oops\n</tool_call>"])
        stream = _model(upstream).generate_stream(_chat(), text_content(Role.USER, "q"))
        content = await stream.collect()
        assert content.parts == [Text("<tool_call>\nname: [oops\n</tool_call>")]
        assert stream.finish_reason is FinishReason.STOP


class TestFailures:
    async def test_upstream_error_propagates(self):
        err = RateLimitError("slow down")
        upstream = FakeUpstream(["partial "], error=err)
        stream = _model(upstream).generate_stream(_chat(), text_content(Role.USER, "q"))
        live = [seg async for seg in stream]
        assert live == [Text("partial ")]
        assert stream.error is err
        assert stream.finish_reason is FinishReason.ERROR
        assert stream.content.parts == [Text("partial ")]

    async def test_cancellation(self):
        upstream = FakeUpstream(["a"] * 100, delay=0.01)
        cancel = asyncio.Event()
        stream = _model(upstream).generate_stream(
            _chat(), text_content(Role.USER, "q"), cancel=cancel,
        )
        assert await stream.__anext__() == Text("a")
        cancel.set()
        rest = [seg async for seg in stream]
        assert len(rest) < 99
        assert isinstance(stream.error, StreamCancelledError)

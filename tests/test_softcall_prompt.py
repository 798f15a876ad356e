"""Tests for the text tool-calling protocol: prompts, rendering, parsing."""

import yaml

from coord.softcall.prompt import (
    EXAMPLE_TOOL_CALL,
    SYSTEM_PROMPT,
    TOOL_RESPONSE_FAILED,
    convert_to_yaml_content,
    dump_yaml,
    few_shot_dialogue,
    parse_tool_call,
    render_function_call,
    render_function_response,
    render_tool_declarations,
)
from coord.types import (
    Content,
    FunctionCall,
    FunctionDeclaration,
    FunctionResponse,
    Role,
    Schema,
    SchemaType,
    Text,
)


def _weather_tool() -> FunctionDeclaration:
    return FunctionDeclaration(
        name="get_weather",
        description="Current weather for a city",
        schema=Schema(
            type=SchemaType.OBJECT,
            properties={"location": Schema(type=SchemaType.STRING)},
            required=["location"],
        ),
    )


class TestFewShotDialogue:
    def test_six_alternating_turns(self):
        turns = few_shot_dialogue("<tools>\n</tools>\n")
        assert len(turns) == 6
        assert [t.role for t in turns] == [Role.USER, Role.MODEL] * 3

    def test_tools_block_inserted(self):
        block = render_tool_declarations([_weather_tool()])
        first = few_shot_dialogue(block)[0].parts[0].text
        assert first == SYSTEM_PROMPT % block
        assert "name: get_weather" in first

    def test_example_uses_tab_indented_yaml(self):
        assert "name: |-\n\ttest_function0\n" in EXAMPLE_TOOL_CALL
        assert "\tapple: |-\n\t\t1\n" in EXAMPLE_TOOL_CALL


class TestToolDeclarations:
    def test_empty(self):
        assert render_tool_declarations([]) == ""

    def test_block_structure(self):
        out = render_tool_declarations([_weather_tool(), FunctionDeclaration(name="ping")])
        assert out.startswith("<tools>\n<tool>\n")
        assert out.endswith("</tool>\n</tools>\n")
        assert out.count("<tool>\n") == 2

        body = out.split("<tool>\n")[1].split("</tool>")[0]
        assert yaml.safe_load(body) == {
            "name": "get_weather",
            "description": "Current weather for a city",
            "schema": {
                "type": "object",
                "properties": {"location": {"type": "string"}},
                "required": ["location"],
            },
        }

    def test_declaration_order_kept(self):
        out = render_tool_declarations([FunctionDeclaration(name="b"), FunctionDeclaration(name="a")])
        assert out.index("name: b") < out.index("name: a")


class TestYamlDump:
    def test_multiline_uses_literal_style(self):
        assert dump_yaml({"code": "line1\nline2\n"}) == "code: |\n  line1\n  line2\n"

    def test_key_order_preserved(self):
        assert dump_yaml({"z": 1, "a": 2}) == "z: 1\na: 2\n"


class TestRenderCall:
    def test_function_call(self):
        call = FunctionCall(name="get_weather", id="call_1", args={"location": "Seoul"})
        assert render_function_call(call) == (
            "\n\n<tool_call>\nname: get_weather\nparameters:\n  location: Seoul\n\n</tool_call>"
        )

    def test_function_response(self):
        resp = FunctionResponse(name="get_weather", id="call_1", content={"temp": 21, "sky": "맑음"})
        assert render_function_response(resp) == (
            '\n\n<tool_response>\n{"temp": 21, "sky": "맑음"}\n</tool_response>'
        )

    def test_unserializable_response(self):
        resp = FunctionResponse(name="f", id="1", content={"obj": object()})
        assert TOOL_RESPONSE_FAILED in render_function_response(resp)


class TestConvertContent:
    def test_plain_content_unchanged(self):
        content = Content(role=Role.USER, parts=[Text("hello")])
        assert convert_to_yaml_content(content) is content

    def test_calls_become_text(self):
        call = FunctionCall(name="ping", id="call_1", args={})
        content = Content(role=Role.MODEL, parts=[Text("Checking."), call])
        converted = convert_to_yaml_content(content)
        assert converted is not content
        assert content.parts[1] is call
        assert converted.role is Role.MODEL
        assert converted.parts[0] == Text("Checking.")
        assert isinstance(converted.parts[1], Text)
        assert "<tool_call>" in converted.parts[1].text

    def test_responses_become_text(self):
        content = Content(
            role=Role.FUNCTION,
            parts=[FunctionResponse(name="ping", id="call_1", content="pong")],
        )
        converted = convert_to_yaml_content(content)
        assert converted.role is Role.FUNCTION
        assert converted.parts == [Text('\n\n<tool_response>\n"pong"\n</tool_response>')]


class TestParseToolCall:
    def test_well_formed(self):
        assert parse_tool_call("\nname: get_weather\nparameters:\n  location: Seoul\n") == (
            "get_weather", {"location": "Seoul"},
        )

    def test_literal_name_stripped(self):
        assert parse_tool_call("name: |-\n  ping\nparameters: {}\n") == ("ping", {})

    def test_missing_parameters(self):
        assert parse_tool_call("name: ping\n") == ("ping", {})

    def test_invalid_yaml(self):
        assert parse_tool_call("name: [unclosed\n") is None

    def test_not_a_mapping(self):
        assert parse_tool_call("- a\n- b\n") is None

    def test_missing_name(self):
        assert parse_tool_call("parameters:\n  a: 1\n") is None

    def test_parameters_not_mapping(self):
        assert parse_tool_call("name: f\nparameters: [1, 2]\n") is None

    def test_tab_indented_example_call(self):
        body = EXAMPLE_TOOL_CALL.split("<tool_call>")[1].split("</tool_call>")[0]
        assert "\t" in body
        assert parse_tool_call(body) == ("test_function0", {"apple": "1"})

    def test_system_prompt_example_call(self):
        body = SYSTEM_PROMPT.split("<tool_call>\n")[1].split("</tool_call>")[0]
        assert parse_tool_call(body) == (
            "function_name", {"arg0": 42, "arg1": 'print("Hello, World!")\n'},
        )

    def test_tabs_do_not_rescue_invalid_yaml(self):
        assert parse_tool_call("name: f\nparameters:\n\ta: [unclosed\n") is None

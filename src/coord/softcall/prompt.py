"""Plain-text tool-calling protocol for models without native tool support.

The model is taught, through a fixed few-shot dialogue, to wrap tool
calls in ``<tool_call>`` blocks holding a small YAML document, to think
inside ``<reasoning>`` blocks, and to expect results inside
``<tool_response>`` blocks.  The dialogue text is kept byte-for-byte
stable so recorded fixtures stay valid.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

import yaml

from coord.types import (
    Content,
    FunctionCall,
    FunctionDeclaration,
    FunctionResponse,
    Role,
    Segment,
    Text,
)

_logger = logging.getLogger(__name__)

REASONING_OPEN = "<reasoning>"
REASONING_CLOSE = "</reasoning>"
TOOL_CALL_OPEN = "<tool_call>"
TOOL_CALL_CLOSE = "</tool_call>"
TOOL_RESPONSE_OPEN = "<tool_response>"
TOOL_RESPONSE_CLOSE = "</tool_response>"

TOOL_CALL_FAILED = "name: tool_call_failed\n"
TOOL_RESPONSE_FAILED = "error: |-\n  RPCError: Failed to marshal the args (HTTP 500)"


# ---------------------------------------------------------------------------
# Few-shot dialogue
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = (
    "Here are the tools available for you to use in answering the question:\n"
    "\n"
    "%s\n"
    "To call a tool, use a <tool_call> block like this:\n"
    "\n"
    "<tool_call>\n"
    "name: |-\n"
    "\tfunction_name\n"
    "parameters:\n"
    "  arg0: 42\n"
    "  arg1: |\n"
    "    print(\"Hello, World!\")\n"
    "</tool_call>\n"
    "\n"
    "You can use one or more <tool_call> blocks to call tools as needed before "
    "providing your final answer. Make sure to only call one tool per "
    "<tool_call> block.\n"
    "\n"
    "First, perform any necessary reasoning in a <reasoning> block. If at any "
    "point during your reasoning you need to use a tool, call it with a "
    "<tool_call> block, carefully following the JSON schema provided for that "
    "tool in the <tools> section above.\n"
    "\n"
    "You must wait for the user to provide <tool_response> before providing a "
    "final response.\n"
    "\n"
    "After you have finished all reasoning and tool usage, provide your final "
    "answer to the question for the user. There is no need to use any special "
    "formatting for your final answer.\n"
    "\n"
    "Always use YAML literal style when representing strings in YAML."
)

SYSTEM_PROMPT_REPLY = (
    "<reasoning>I should follow the instructions above.</reasoning>\n"
    "\n"
    "I will follow the instructions."
)

EXAMPLE_REQUEST = 'Call test_function0 with apple = "1" arg.'

EXAMPLE_TOOL_CALL = (
    "<reasoning>I should call the test_function0 that the user requested."
    "</reasoning>\n"
    "\n"
    "<tool_call>\n"
    "name: |-\n"
    "\ttest_function0\n"
    "parameters:\n"
    "\tapple: |-\n"
    "\t\t1\n"
    "</tool_call>"
)

EXAMPLE_TOOL_RESULT = (
    "<tool_response>\n"
    "exit_code: 0\n"
    "</tool_response>"
)

EXAMPLE_ANSWER = (
    "<reasoning>I should return the exit code of 0.</reasoning>\n"
    "\n"
    "The test_function0 exited with exit code 0."
)


def few_shot_dialogue(tools_block: str) -> list[Content]:
    """The six fixed turns that precede the real conversation."""
    return [
        Content(role=Role.USER, parts=[Text(SYSTEM_PROMPT % tools_block)]),
        Content(role=Role.MODEL, parts=[Text(SYSTEM_PROMPT_REPLY)]),
        Content(role=Role.USER, parts=[Text(EXAMPLE_REQUEST)]),
        Content(role=Role.MODEL, parts=[Text(EXAMPLE_TOOL_CALL)]),
        Content(role=Role.USER, parts=[Text(EXAMPLE_TOOL_RESULT)]),
        Content(role=Role.MODEL, parts=[Text(EXAMPLE_ANSWER)]),
    ]


# ---------------------------------------------------------------------------
# YAML codec
# ---------------------------------------------------------------------------

class _LiteralDumper(yaml.SafeDumper):
    """Safe dumper that writes multi-line strings in literal block style."""

    def ignore_aliases(self, data: Any) -> bool:
        return True


def _represent_str(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_str(data)


_LiteralDumper.add_representer(str, _represent_str)


def dump_yaml(data: Any) -> str:
    """Serialize *data* deterministically: insertion order, 2-space indent."""
    return yaml.dump(
        data,
        Dumper=_LiteralDumper,
        indent=2,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )


_LEADING_WS = re.compile(r"^[ \t]+", re.MULTILINE)


def _expand_leading_tabs(text: str) -> str:
    """Replace each tab in line indentation with two spaces."""
    return _LEADING_WS.sub(lambda m: m.group(0).replace("\t", "  "), text)


def parse_tool_call(body: str) -> tuple[str, dict[str, Any]] | None:
    """Parse a ``name`` + ``parameters`` document.

    Returns ``(name, parameters)`` with the name stripped, or ``None``
    when *body* is not such a document.  Tab-indented bodies, as in the
    few-shot examples, are accepted.
    """
    parsed = _load_tool_call(body)
    if parsed is None and "\t" in body:
        parsed = _load_tool_call(_expand_leading_tabs(body))
    return parsed


def _load_tool_call(body: str) -> tuple[str, dict[str, Any]] | None:
    try:
        doc = yaml.safe_load(body)
    except yaml.YAMLError as e:
        _logger.debug("Tool call body is not valid YAML: %s", e)
        return None
    if not isinstance(doc, dict):
        return None

    name = doc.get("name")
    if not isinstance(name, str) or not name.strip():
        return None

    parameters = doc.get("parameters")
    if parameters is None:
        parameters = {}
    if not isinstance(parameters, dict):
        return None
    return name.strip(), parameters


# ---------------------------------------------------------------------------
# Request rewriting
# ---------------------------------------------------------------------------

def render_tool_declarations(tools: list[FunctionDeclaration]) -> str:
    """Render *tools* as a ``<tools>`` block, in declaration order.

    Returns an empty string when there are no tools.  A declaration that
    cannot be serialized is skipped.
    """
    if not tools:
        return ""

    lines = ["<tools>\n"]
    for tool in tools:
        try:
            data = dump_yaml(tool.to_dict())
        except yaml.YAMLError as e:
            _logger.warning("Skipping tool %r: cannot render declaration: %s", tool.name, e)
            continue
        lines.append("<tool>\n")
        lines.append(data)
        lines.append("</tool>\n")
    lines.append("</tools>\n")
    return "".join(lines)


def render_function_call(call: FunctionCall) -> str:
    try:
        data = dump_yaml({"name": call.name, "parameters": call.args})
    except yaml.YAMLError as e:
        _logger.warning("Cannot render call to %r as YAML: %s", call.name, e)
        data = TOOL_CALL_FAILED
    return f"\n\n{TOOL_CALL_OPEN}\n{data}\n{TOOL_CALL_CLOSE}"


def render_function_response(response: FunctionResponse) -> str:
    try:
        data = json.dumps(response.content, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        _logger.warning("Cannot serialize result of %r: %s", response.name, e)
        data = TOOL_RESPONSE_FAILED
    return f"\n\n{TOOL_RESPONSE_OPEN}\n{data}\n{TOOL_RESPONSE_CLOSE}"


def convert_to_yaml_content(content: Content) -> Content:
    """Rewrite tool calls and tool results in *content* as literal text.

    Contents without either are returned unchanged; otherwise a new
    ``Content`` is returned and *content* is left untouched.
    """
    if not any(isinstance(p, (FunctionCall, FunctionResponse)) for p in content.parts):
        return content

    parts: list[Segment] = []
    for part in content.parts:
        if isinstance(part, FunctionCall):
            parts.append(Text(render_function_call(part)))
        elif isinstance(part, FunctionResponse):
            parts.append(Text(render_function_response(part)))
        else:
            parts.append(part)
    return Content(role=content.role, parts=parts)

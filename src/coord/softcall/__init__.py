"""Tool-call emulation for text-only models."""

from coord.softcall.model import SoftCallConfig, YAMLSoftCallModel
from coord.softcall.prompt import (
    convert_to_yaml_content,
    few_shot_dialogue,
    parse_tool_call,
    render_tool_declarations,
)
from coord.softcall.scanner import ScanState, SoftCallScanner

__all__ = [
    "ScanState",
    "SoftCallConfig",
    "SoftCallScanner",
    "YAMLSoftCallModel",
    "convert_to_yaml_content",
    "few_shot_dialogue",
    "parse_tool_call",
    "render_tool_declarations",
]

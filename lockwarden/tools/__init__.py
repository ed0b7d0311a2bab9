"""External tool invocation (cargo-audit, cargo-vet and similar)."""

from lockwarden.tools.runner import ToolResult, run_tool, run_tool_async

__all__ = ["ToolResult", "run_tool", "run_tool_async"]

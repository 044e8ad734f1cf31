"""MCP tool registration for the Dart Query server."""

from .batch_tools import register_batch_tools
from .config_tools import register_config_tools
from .task_tools import register_task_tools

__all__ = [
    "register_batch_tools",
    "register_config_tools",
    "register_task_tools",
]

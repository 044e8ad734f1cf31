"""Dart Query: MCP tools for Dart task management with batch operations."""

__version__ = "1.0.0"

"""Shared utilities for mcp-conductor."""

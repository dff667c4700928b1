"""Utility functions and helpers."""

from upstream_tunnel_proxy.core.utils.prompt import PromptHandler, create_proxy_ui
from upstream_tunnel_proxy.core.utils.utils import format_bytes, format_duration

__all__ = ["create_proxy_ui", "format_bytes", "format_duration", "PromptHandler"]

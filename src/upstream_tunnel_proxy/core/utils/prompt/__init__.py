"""Prompt and UI utilities."""

from upstream_tunnel_proxy.core.utils.prompt.prompt import PromptHandler, console
from upstream_tunnel_proxy.core.utils.prompt.proxy_ui import ProxyUI, create_proxy_ui

__all__ = ["console", "create_proxy_ui", "PromptHandler", "ProxyUI"]

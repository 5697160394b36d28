"""Core functionality for clothing edits.

This module provides the gateway-facing components of Restyle Studio:

- **prompt_safety**: Unsafe-term removal and the safety qualifier
- **instructions**: Fixed instruction templates sent to the gateway
- **gateway**: Async chat-completions client (httpx)
- **responses**: Gateway response interpretation and image extraction
- **editor**: ClothingEditor, the orchestrator for every gateway feature
- **outcomes**: EditOutcome variants and GatewayError
- **config**: RestyleConfig, loaded from RESTYLE_* environment variables

Usage Example
-------------
    from restyle.core import ClothingEditor, GatewayClient, config

    editor = ClothingEditor(GatewayClient(config), config)
    outcome = await editor.request_edit(image_uri, "a blue denim jacket")
"""

from restyle.core.config import RestyleConfig, config
from restyle.core.editor import ClothingEditor
from restyle.core.gateway import GatewayClient
from restyle.core.outcomes import EditOutcome, EditSuccess, GatewayError

__all__ = [
    "ClothingEditor",
    "EditOutcome",
    "EditSuccess",
    "GatewayClient",
    "GatewayError",
    "RestyleConfig",
    "config",
]

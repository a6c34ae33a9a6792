"""
=============================================================================
HANDLERS MODULE
=============================================================================

Built-in request handlers. A handler is any callable taking an
HTTPRequest and returning an HTTPResponse:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │    Request                 Handler                 Response          │
    │   ┌─────────┐           ┌─────────┐           ┌─────────┐            │
    │   │ GET     │           │         │           │ 204     │            │
    │   │ /health │ ────────▶ │ Logic   │ ────────▶ │ or 503  │            │
    │   └─────────┘           └─────────┘           └─────────┘            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    HealthHandler       /health, backed by the LivenessFlag
    index, hello,       the demo pages registered by create_app()
    json_as_text

=============================================================================
"""

from .health import HealthHandler
from .pages import index, hello, json_as_text

__all__ = [
    "HealthHandler",
    "index",
    "hello",
    "json_as_text",
]

"""
Dial-by-Name Directory - Call-Control Providers

Provider-specific rendering of call-control documents.

Supported Providers:
- netsapiens: Web responder XML
"""

from .base import (
    CallControlRenderer,
    ControlDocument,
    ForwardDocument,
    GatherDocument,
    HangupDocument,
    RedirectDocument,
    VoiceSettings,
)
from .webresponder import WebResponderRenderer

__all__ = [
    "CallControlRenderer",
    "ControlDocument",
    "ForwardDocument",
    "GatherDocument",
    "HangupDocument",
    "RedirectDocument",
    "VoiceSettings",
    "WebResponderRenderer",
]

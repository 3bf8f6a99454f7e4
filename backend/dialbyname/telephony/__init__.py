"""
Dial-by-Name Directory - Telephony Module

Web responder integration for the dial-by-name directory.

Components:
- router: the /directory webhook
- flow: per-call state machine
- models: inbound events, call sessions, resolved options
- session_store: call session persistence (memory, redis)
- providers: call-control documents and their XML rendering
- privacy: phone number masking

PRIVACY NOTICE:
    Caller and dialed numbers are masked in logs and never persisted.
"""

from .flow import CallFlowController
from .models import CallSession, CallState, DirectoryEvent, DirectoryOptions, ExitAction
from .privacy import mask_phone_number
from .session_store import (
    CallSessionStore,
    InMemoryCallSessionStore,
    RedisCallSessionStore,
    create_session_store,
)

__all__ = [
    "CallFlowController",
    "CallSession",
    "CallSessionStore",
    "CallState",
    "DirectoryEvent",
    "DirectoryOptions",
    "ExitAction",
    "InMemoryCallSessionStore",
    "RedisCallSessionStore",
    "create_session_store",
    "mask_phone_number",
]

"""
Dial-by-Name Directory - Exception Hierarchy

Structured exceptions for the I/O seams of the system.
All exceptions include error codes for logs and API responses.

Directory and cache failures on the call path are reported as explicit
results (see core.types); these exceptions are raised only where a
collaborator cannot express failure any other way.
"""

from typing import Optional


class DialByNameError(Exception):
    """Base exception for all dial-by-name errors."""

    code: str = "UNKNOWN_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# =============================================================================
# Cache Errors
# =============================================================================

class CacheError(DialByNameError):
    """Error reading or writing the result cache."""
    code = "CACHE_ERROR"


class CacheWriteError(CacheError):
    """Cache record could not be written."""
    code = "CACHE_WRITE_ERROR"


# =============================================================================
# Session Errors
# =============================================================================

class SessionError(DialByNameError):
    """Error related to call session management."""
    code = "SESSION_ERROR"
    status_code = 400


class SessionStoreError(SessionError):
    """Session backend failed."""
    code = "SESSION_STORE_ERROR"
    status_code = 503


# =============================================================================
# Telephony Errors
# =============================================================================

class TelephonyError(DialByNameError):
    """Error in the telephony webhook layer."""
    code = "TELEPHONY_ERROR"
    status_code = 502


class InvalidEventError(TelephonyError):
    """Inbound call event could not be parsed."""
    code = "INVALID_EVENT"
    status_code = 400


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(DialByNameError):
    """Configuration error."""
    code = "CONFIGURATION_ERROR"
    status_code = 500

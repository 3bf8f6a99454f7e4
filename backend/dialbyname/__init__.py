"""
Dial-by-Name Directory - Backend Application Package

This package contains the dial-by-name webhook service:
- Directory API client and cached, searchable catalog
- Call flow state machine and session storage
- Web responder XML rendering
- Health endpoints and cache administration CLI
"""

__version__ = "0.1.0"

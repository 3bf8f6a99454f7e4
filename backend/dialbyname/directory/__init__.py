"""
Dial-by-Name Directory - User Directory Integration

Components:
- client: Paginated ns-api v2 client (user listing, auto attendant lookup)
"""

from .client import DirectoryClient

__all__ = ["DirectoryClient"]

"""
HTTP surface for the Revend marketplace.

- The send-email server-side function
- Read-only catalogue endpoints backed by a live ProductStore
"""

from api.main import app

__all__ = ["app"]

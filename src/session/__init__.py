"""
Street Legacy Client Session.

Explicit application context owning the connection manager and the
offline queue.
"""

from src.session.context import ClientSession, create_session

__all__ = ["ClientSession", "create_session"]

"""Backend for the Comunicación project and task dashboard.

Exposes :func:`get_session` for scripts that talk to the local database.
"""

from .db import get_session

__all__ = ["get_session"]

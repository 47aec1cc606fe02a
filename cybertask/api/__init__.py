"""HTTP-facing helpers (response envelope and status mapping)"""

from .responses import error_response, ok, respond, status_for

__all__ = ["error_response", "ok", "respond", "status_for"]

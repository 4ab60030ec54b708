"""
HTTP middleware for the batch invocation API.
"""

from middleware.request_id import RequestIDMiddleware, request_id_var

__all__ = [
    "RequestIDMiddleware",
    "request_id_var",
]

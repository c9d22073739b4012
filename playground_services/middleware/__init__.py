"""
HTTP middleware and exception handlers.
"""

from .errors import PROBLEM_CT, install_error_handlers
from .request_id import RequestIdConfig, RequestIdMiddleware

__all__ = ["install_error_handlers", "PROBLEM_CT", "RequestIdConfig", "RequestIdMiddleware"]

"""
Switchboard Security Module

- Secure error handling
- Audit logging
"""

from .audit_logger import audit_logger
from .error_handlers import error_handler

__all__ = [
    'audit_logger',
    'error_handler'
]

"""Utility modules for the service."""

from .security_logger import security_logger
from .client_ip import get_client_ip, TRUST_PROXY

__all__ = [
    'security_logger',
    'get_client_ip',
    'TRUST_PROXY',
]

"""API routers."""

from . import auth_events
from . import health
from . import portal
from . import webhooks

__all__ = ['auth_events', 'health', 'portal', 'webhooks']

"""Environment-driven settings.

Every collaborator reads its configuration from a single ``Settings``
instance so tests can build one explicitly with ``Settings.from_env`` or
plain keyword arguments.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Optional


def _bool_env(env: Mapping[str, str], name: str, default: bool = False, *aliases: str) -> bool:
    raw = str(env.get(name, "")).strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on") or raw in tuple(a.lower() for a in aliases)


def _str_env(env: Mapping[str, str], name: str, default: str = "") -> str:
    return str(env.get(name, default) or default).strip()


@dataclass(frozen=True)
class Settings:
    stripe_api_key: str = ""
    stripe_webhook_secret: str = ""
    invoices_webhook_secret: str = ""
    stripe_api_version: str = "2022-11-15"
    products_collection: str = "products"
    customers_collection: str = "customers"
    stripe_config_collection: str = "configuration"
    invoices_collection: str = "invoices"
    sync_users_on_create: bool = True
    auto_delete_users: bool = False
    days_until_due: int = 7
    event_channel_topic: Optional[str] = None
    gcp_project: Optional[str] = None
    auth_events_secret: str = ""
    debug: bool = False
    service_account_path: Optional[str] = None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from ``os.environ`` (or the given mapping)."""
        env = os.environ if env is None else env
        topic = _str_env(env, "EVENTARC_CHANNEL") or _str_env(env, "PUBSUB_TOPIC")
        return cls(
            stripe_api_key=_str_env(env, "STRIPE_API_KEY"),
            stripe_webhook_secret=_str_env(env, "STRIPE_WEBHOOK_SECRET"),
            invoices_webhook_secret=_str_env(env, "INVOICES_WEBHOOK_SECRET"),
            stripe_api_version=_str_env(env, "STRIPE_API_VERSION", cls.stripe_api_version),
            products_collection=_str_env(env, "PRODUCTS_COLLECTION", cls.products_collection),
            customers_collection=_str_env(env, "CUSTOMERS_COLLECTION", cls.customers_collection),
            stripe_config_collection=_str_env(
                env, "STRIPE_CONFIG_COLLECTION", cls.stripe_config_collection
            ),
            invoices_collection=_str_env(env, "INVOICES_COLLECTION", cls.invoices_collection),
            # Legacy extension values were "Sync" and "Auto delete"
            sync_users_on_create=_bool_env(env, "SYNC_USERS_ON_CREATE", True, "sync"),
            auto_delete_users=_bool_env(env, "DELETE_STRIPE_CUSTOMERS", False, "auto delete"),
            days_until_due=int(_str_env(env, "DAYS_UNTIL_DUE", "7")),
            event_channel_topic=topic or None,
            gcp_project=_str_env(env, "GOOGLE_CLOUD_PROJECT") or None,
            auth_events_secret=_str_env(env, "AUTH_EVENTS_SECRET"),
            debug=_bool_env(env, "DEBUG", False),
            service_account_path=_str_env(env, "GOOGLE_APPLICATION_CREDENTIALS") or None,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings (cached)."""
    return Settings.from_env()

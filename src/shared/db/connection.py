"""Supabase connection helpers shared by pipeline modules."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from supabase import Client, create_client

logger = logging.getLogger(__name__)


@dataclass
class SupabaseConfig:
    """Configuration for a Supabase connection.

    Attributes:
        url: Supabase project URL
        key: Supabase API key (service role preferred for scheduled runs)
        schema: Database schema to use (default: public)
    """

    url: str
    key: str
    schema: str = "public"

    @classmethod
    def from_env(
        cls,
        url_var: str = "SUPABASE_URL",
        key_vars: tuple[str, ...] = ("SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_KEY"),
        schema_var: str = "SUPABASE_SCHEMA",
    ) -> SupabaseConfig:
        """Create configuration from environment variables.

        The first non-empty variable in ``key_vars`` wins.

        Raises:
            ValueError: If the URL or every key variable is unset
        """
        url = os.getenv(url_var)
        key = next((os.getenv(name) for name in key_vars if os.getenv(name)), None)
        schema = os.getenv(schema_var, "public")

        if not url or not key:
            raise ValueError(
                f"Missing required environment variables: {url_var} and/or one of "
                f"{', '.join(key_vars)}. Please set them in your .env file or environment."
            )

        return cls(url=url, key=key, schema=schema)


def get_supabase_client(config: Optional[SupabaseConfig] = None) -> Client:
    """Create a Supabase client.

    Args:
        config: Optional SupabaseConfig. If None, loads from environment.

    Returns:
        Supabase client instance

    Example:
        >>> client = get_supabase_client()
        >>> client.table("contacts").select("id").limit(1).execute()
    """
    if config is None:
        config = SupabaseConfig.from_env()

    logger.debug("Creating Supabase client for %s", config.url)
    client = create_client(config.url, config.key)

    if config.schema and config.schema != "public":
        postgrest = getattr(client, "postgrest", None)
        schema_fn = getattr(postgrest, "schema", None)
        if callable(schema_fn):
            schema_fn(config.schema)
            logger.debug("Using schema: %s", config.schema)
        else:
            logger.warning(
                "Supabase client does not support schema override; continuing with default schema"
            )

    return client

"""
Supabase client initialization.

This module contains *only* the database connection setup. The client is
created on first use, so the services can run against the in-memory
repositories without any credentials configured.

Environment variables required (for the Supabase repositories only):
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from supabase import Client, create_client  # type: ignore[import-not-found]

# Look for .env in the unit-sales-platform directory
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

_client: Optional[Client] = None
_client_lock = threading.Lock()


def get_supabase() -> Client:
    """Return the shared Supabase client, creating it on first call."""

    global _client
    with _client_lock:
        if _client is not None:
            return _client

        url: str | None = os.getenv("SUPABASE_URL")
        key: str | None = os.getenv("SUPABASE_KEY")
        if not url:
            raise RuntimeError(
                "Missing environment variable: SUPABASE_URL. "
                "Set SUPABASE_URL to your Supabase project URL."
            )
        if not key:
            raise RuntimeError(
                "Missing environment variable: SUPABASE_KEY. "
                "Set SUPABASE_KEY to your Supabase API key."
            )
        _client = create_client(url, key)
        return _client


def check_response(response: Any, action: str) -> list:
    """Raise on a Supabase error response and return its rows."""

    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")
    return getattr(response, "data", None) or []


__all__ = ["get_supabase", "check_response"]

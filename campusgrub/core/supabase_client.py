# campusgrub/core/supabase_client.py
from supabase import AsyncClient, acreate_client

from campusgrub.core.config import get_settings

settings = get_settings()


async def supabase_realtime() -> AsyncClient:
    """
    Create an async Supabase client for realtime `postgres_changes`.

    Uses the service role key when available so the bridge sees every
    order row regardless of RLS; falls back to the anon key, which only
    sees rows the anon role is allowed to select.

    WARNING:
      - Never expose service role key to frontend.
      - Only backend should call this.

    Raises:
        RuntimeError: if no Supabase key is configured.
    """
    key = settings.SUPABASE_SERVICE_ROLE_KEY or settings.SUPABASE_KEY
    if not key:
        raise RuntimeError("Missing SUPABASE_SERVICE_ROLE_KEY / SUPABASE_KEY in .env")
    return await acreate_client(settings.SUPABASE_URL, key)

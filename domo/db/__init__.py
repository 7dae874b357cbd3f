"""Database and storage clients for Domo."""

from domo.db.storage import VideoStorage
from domo.db.supabase import SupabaseClient, get_supabase_client
from domo.db.webhook_store import WebhookStore

__all__ = ["SupabaseClient", "VideoStorage", "WebhookStore", "get_supabase_client"]

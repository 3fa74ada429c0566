"""Supabase-backed persistence for the resolution cache."""

from dataclasses import dataclass
from datetime import datetime

from supabase import Client

from scan_resolver.services.cache import CacheStore


@dataclass
class SupabaseCacheStore(CacheStore):
    """Stores cache payloads in a ``product_cache`` table."""

    client: Client
    table: str = "product_cache"

    def get(self, key: str) -> dict[str, object] | None:
        """Return the payload and its write time for a key."""
        response = (
            self.client.table(self.table)
            .select("payload, stored_at")
            .eq("key", key)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        payload = row.get("payload") or {}
        return {**payload, "stored_at": row.get("stored_at")}

    def put(self, key: str, value: dict[str, object], stored_at: datetime) -> None:
        """Upsert a payload; the latest writer wins."""
        self.client.table(self.table).upsert(
            {"key": key, "payload": value, "stored_at": stored_at.isoformat()}
        ).execute()

    def delete(self, key: str) -> None:
        """Delete a cache row."""
        self.client.table(self.table).delete().eq("key", key).execute()

    def evict_before(self, prefix: str, cutoff: datetime) -> int:
        """Delete rows under ``prefix`` written before ``cutoff``."""
        response = (
            self.client.table(self.table)
            .delete()
            .like("key", f"{prefix}%")
            .lt("stored_at", cutoff.isoformat())
            .execute()
        )
        return len(response.data or [])

"""Point lookups and single-row writes used by the Tavus webhook pipeline.

Wraps the Supabase table API. No joins: every method touches exactly one
table. Failures are raised as DatabaseError; callers decide whether a
failure is fatal (it almost never is for a webhook).
"""

import logging
from typing import Any, cast

from postgrest.exceptions import APIError

from domo.core.exceptions import DatabaseError

logger = logging.getLogger(__name__)

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"


class WebhookStore:
    """Store collaborator backed by a Supabase client."""

    def __init__(self, client: Any) -> None:
        self._db = client

    # ------------------------------------------------------------------
    # Generic helpers
    # ------------------------------------------------------------------

    def _select_one(
        self,
        table: str,
        columns: str,
        filters: dict[str, Any],
    ) -> dict[str, Any] | None:
        try:
            query = self._db.table(table).select(columns)
            for column, value in filters.items():
                query = query.eq(column, value)
            result = query.limit(1).execute()
        except Exception as e:
            logger.warning(
                "Store lookup failed",
                extra={"table": table, "filters": filters, "error": str(e)},
            )
            raise DatabaseError(f"Failed to read {table}: {e}") from e
        if not result.data:
            return None
        return cast(dict[str, Any], result.data[0])

    def _insert(self, table: str, row: dict[str, Any]) -> dict[str, Any] | None:
        try:
            result = self._db.table(table).insert(row).execute()
        except Exception as e:
            raise DatabaseError(f"Failed to insert into {table}: {e}") from e
        return cast(dict[str, Any], result.data[0]) if result.data else None

    def _update(
        self,
        table: str,
        data: dict[str, Any],
        filters: dict[str, Any],
    ) -> list[dict[str, Any]]:
        try:
            query = self._db.table(table).update(data)
            for column, value in filters.items():
                query = query.eq(column, value)
            result = query.execute()
        except Exception as e:
            raise DatabaseError(f"Failed to update {table}: {e}") from e
        return cast(list[dict[str, Any]], result.data or [])

    # ------------------------------------------------------------------
    # Demos and videos
    # ------------------------------------------------------------------

    def get_demo_by_conversation(
        self,
        conversation_id: str,
        columns: str = "id",
    ) -> dict[str, Any] | None:
        """Find the demo whose current Tavus conversation is ``conversation_id``."""
        return self._select_one(
            "demos", columns, {"tavus_conversation_id": conversation_id}
        )

    def update_demo_metadata(self, demo_id: str, metadata: dict[str, Any]) -> None:
        self._update("demos", {"metadata": metadata}, {"id": demo_id})

    def get_video(self, demo_id: str, title: str) -> dict[str, Any] | None:
        """Exact-title lookup of a demo video."""
        return self._select_one(
            "demo_videos", "title, storage_url", {"demo_id": demo_id, "title": title}
        )

    def list_video_titles(self, demo_id: str) -> list[str]:
        try:
            result = (
                self._db.table("demo_videos")
                .select("title")
                .eq("demo_id", demo_id)
                .execute()
            )
        except Exception as e:
            raise DatabaseError(f"Failed to list demo videos: {e}") from e
        return [row["title"] for row in result.data or [] if row.get("title")]

    # ------------------------------------------------------------------
    # Idempotency records
    # ------------------------------------------------------------------

    def record_processed_event(self, event_id: str) -> bool:
        """Insert an idempotency record if absent.

        Returns:
            True if the record was inserted, False if ``event_id`` was
            already present (unique-key conflict).

        Raises:
            DatabaseError: For any failure other than the conflict.
        """
        try:
            self._db.table("processed_webhook_events").insert(
                {"event_id": event_id}
            ).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                return False
            raise DatabaseError(f"Failed to record webhook event: {e.message}") from e
        except Exception as e:
            raise DatabaseError(f"Failed to record webhook event: {e}") from e
        return True

    # ------------------------------------------------------------------
    # Conversation details
    # ------------------------------------------------------------------

    def get_conversation_details(
        self,
        conversation_id: str,
        columns: str = "id",
    ) -> dict[str, Any] | None:
        return self._select_one(
            "conversation_details", columns, {"tavus_conversation_id": conversation_id}
        )

    def create_conversation_details(self, row: dict[str, Any]) -> dict[str, Any] | None:
        return self._insert("conversation_details", row)

    def update_conversation_details(
        self,
        conversation_id: str,
        data: dict[str, Any],
    ) -> int:
        """Update by Tavus conversation id; returns the number of rows touched."""
        rows = self._update(
            "conversation_details", data, {"tavus_conversation_id": conversation_id}
        )
        return len(rows)

    def compare_and_set_module_state(
        self,
        details_id: str,
        expected_updated_at: str | None,
        data: dict[str, Any],
    ) -> bool:
        """Write module progress only if the row is unchanged since it was read.

        Args:
            details_id: conversation_details primary key.
            expected_updated_at: ``updated_at`` observed when the state was read.
            data: Columns to write; must include a fresh ``updated_at``.

        Returns:
            True if the row was updated, False on a concurrent modification.
        """
        try:
            query = self._db.table("conversation_details").update(data).eq("id", details_id)
            if expected_updated_at is None:
                query = query.is_("updated_at", "null")
            else:
                query = query.eq("updated_at", expected_updated_at)
            result = query.execute()
        except Exception as e:
            raise DatabaseError(f"Failed to persist module state: {e}") from e
        return bool(result.data)

    # ------------------------------------------------------------------
    # Reporting side tables
    # ------------------------------------------------------------------

    def get_video_showcase(self, conversation_id: str) -> dict[str, Any] | None:
        return self._select_one(
            "video_showcase_data",
            "id, videos_shown, objective_name",
            {"conversation_id": conversation_id},
        )

    def insert_video_showcase(self, row: dict[str, Any]) -> None:
        self._insert("video_showcase_data", row)

    def update_video_showcase(self, showcase_id: str, data: dict[str, Any]) -> None:
        self._update("video_showcase_data", data, {"id": showcase_id})

    def get_cta_tracking(self, conversation_id: str) -> dict[str, Any] | None:
        return self._select_one(
            "cta_tracking", "id, cta_url", {"conversation_id": conversation_id}
        )

    def insert_cta_tracking(self, row: dict[str, Any]) -> None:
        self._insert("cta_tracking", row)

    def update_cta_tracking(self, tracking_id: str, data: dict[str, Any]) -> None:
        self._update("cta_tracking", data, {"id": tracking_id})

    def insert_product_interest(self, row: dict[str, Any]) -> None:
        self._insert("product_interest_data", row)

    def insert_qualification(self, row: dict[str, Any]) -> None:
        self._insert("qualification_data", row)

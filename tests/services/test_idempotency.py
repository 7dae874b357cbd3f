"""Tests for duplicate webhook delivery detection."""

import hashlib
from unittest.mock import MagicMock

from domo.core.error_tracker import TRANSIENT_COLLABORATOR_FAILURE, ErrorTracker
from domo.core.exceptions import DatabaseError
from domo.services.idempotency import check_and_mark, derive_event_id

RAW = b'{"event_type":"conversation.tool_call"}'


class TestDeriveEventId:
    def test_prefers_top_level_id(self) -> None:
        event = {"id": "evt-1", "event_id": "evt-2", "data": {"id": "evt-3"}}
        assert derive_event_id(event, RAW) == "evt-1"

    def test_falls_through_to_nested_ids(self) -> None:
        assert derive_event_id({"event_id": "e"}, RAW) == "e"
        assert derive_event_id({"data": {"id": 7}}, RAW) == "7"
        assert derive_event_id({"data": {"event_id": "n"}}, RAW) == "n"

    def test_hashes_raw_body_when_no_id(self) -> None:
        assert derive_event_id({"data": "x"}, RAW) == hashlib.sha256(RAW).hexdigest()


class TestCheckAndMark:
    def test_first_delivery_is_new(self, mock_store: MagicMock) -> None:
        result = check_and_mark({"id": "evt-1"}, RAW, mock_store)

        assert result.is_duplicate is False
        assert result.event_id == "evt-1"
        mock_store.record_processed_event.assert_called_once_with("evt-1")

    def test_conflict_means_duplicate(self, mock_store: MagicMock) -> None:
        mock_store.record_processed_event.return_value = False

        assert check_and_mark({"id": "evt-1"}, RAW, mock_store).is_duplicate is True

    def test_store_failure_processes_as_new(self, mock_store: MagicMock) -> None:
        mock_store.record_processed_event.side_effect = DatabaseError("timeout")

        result = check_and_mark({"id": "evt-1"}, RAW, mock_store)

        assert result.is_duplicate is False
        summary = ErrorTracker.get_instance().get_summary()
        assert summary["by_category"] == {TRANSIENT_COLLABORATOR_FAILURE: 1}

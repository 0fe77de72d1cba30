"""Tests for build record model and snapshot schema."""

from datetime import datetime, timedelta, timezone

import pytest

from auroraboot_client.builds.models import BuildRecord, format_relative_time
from auroraboot_client.builds.schema import BuildSnapshot, parse_timestamp
from auroraboot_client.types import BuildStatus
from tests.conftest import build_snapshot


def make_record(status: str = "queued") -> BuildRecord:
    record = BuildRecord.from_snapshot(build_snapshot(status))
    assert record is not None
    return record


class TestParseTimestamp:
    """Tests for parse_timestamp function."""

    def test_utc_suffix(self):
        """A trailing Z should be read as UTC."""
        parsed = parse_timestamp("2025-03-01T10:00:00Z")
        assert parsed == datetime(2025, 3, 1, 10, 0, tzinfo=timezone.utc)

    def test_nanoseconds_truncated(self):
        """Fractions beyond microseconds should be truncated."""
        parsed = parse_timestamp("2025-03-01T10:00:00.123456789+02:00")
        assert parsed is not None
        assert parsed.microsecond == 123456
        assert parsed.utcoffset() == timedelta(hours=2)

    @pytest.mark.parametrize(
        ("value", "microsecond"),
        [
            ("2025-03-01T10:00:00.12345Z", 123450),
            ("2025-03-01T10:00:00.5Z", 500000),
            ("2025-03-01T10:00:00.1234+00:00", 123400),
        ],
    )
    def test_short_fractions_padded(self, value, microsecond):
        """Fractions with trimmed trailing zeros should still parse."""
        parsed = parse_timestamp(value)
        assert parsed is not None
        assert parsed.microsecond == microsecond
        assert parsed.tzinfo == timezone.utc

    def test_naive_is_utc(self):
        """Timestamps without an offset should be treated as UTC."""
        parsed = parse_timestamp("2025-03-01T10:00:00")
        assert parsed is not None
        assert parsed.tzinfo == timezone.utc

    @pytest.mark.parametrize("value", ["", "yesterday", None, 12345, []])
    def test_invalid_is_none(self, value):
        """Unparseable values should become None."""
        assert parse_timestamp(value) is None


class TestBuildSnapshot:
    """Tests for BuildSnapshot model."""

    def test_uuid_alias(self):
        """The wire uuid key should populate id."""
        snapshot = BuildSnapshot.parse({"uuid": "b-1"})
        assert snapshot is not None
        assert snapshot.id == "b-1"

    def test_id_key_accepted(self):
        """An id key should be accepted as well."""
        snapshot = BuildSnapshot.parse({"id": "b-1"})
        assert snapshot is not None
        assert snapshot.id == "b-1"

    def test_lenient_values(self):
        """Malformed values should be coerced rather than rejected."""
        snapshot = BuildSnapshot.parse(
            {
                "uuid": "b-1",
                "status": "exploded",
                "created_at": "not a date",
                "version": 3,
                "config": ["not", "a", "mapping"],
                "extra_field": True,
            }
        )
        assert snapshot is not None
        assert snapshot.status == BuildStatus.QUEUED
        assert snapshot.created_at is None
        assert snapshot.version == "3"
        assert snapshot.config is None

    def test_fields_set_tracks_sent_keys(self):
        """Only keys present on the wire should be marked as set."""
        snapshot = BuildSnapshot.parse({"uuid": "b-1", "status": "running"})
        assert snapshot is not None
        assert "status" in snapshot.model_fields_set
        assert "started_at" not in snapshot.model_fields_set

    @pytest.mark.parametrize("data", [None, "b-1", ["uuid"], 42])
    def test_non_mapping_is_none(self, data):
        """Non-object payloads should not parse."""
        assert BuildSnapshot.parse(data) is None


class TestFromSnapshot:
    """Tests for BuildRecord.from_snapshot."""

    def test_full_snapshot(self):
        """All fields should be taken from the snapshot."""
        record = BuildRecord.from_snapshot(build_snapshot("failed"))

        assert record is not None
        assert record.id == "b-1"
        assert record.image == "ubuntu:24.04"
        assert record.status == BuildStatus.FAILED
        assert record.started_at is not None
        assert record.completed_at is not None
        assert record.error_message == "build step failed"

    def test_missing_status_is_queued(self):
        """A snapshot without status should default to queued."""
        record = BuildRecord.from_snapshot({"uuid": "b-1"})
        assert record is not None
        assert record.status == BuildStatus.QUEUED

    def test_missing_id_is_none(self):
        """A snapshot without an id should not produce a record."""
        assert BuildRecord.from_snapshot({"status": "running"}) is None

    def test_inconsistent_timestamps_cleared(self):
        """Timestamps that contradict the status should be dropped."""
        record = BuildRecord.from_snapshot(
            build_snapshot(
                "queued",
                started_at="2025-03-01T10:01:00Z",
                completed_at="2025-03-01T10:20:00Z",
                error_message="stale",
            )
        )
        assert record is not None
        assert record.started_at is None
        assert record.completed_at is None
        assert record.error_message is None


class TestApplySnapshot:
    """Tests for BuildRecord.apply_snapshot."""

    def test_status_transition(self):
        """A new status should be applied and reported as a change."""
        record = make_record("queued")

        changed = record.apply_snapshot(build_snapshot("running"))

        assert changed is True
        assert record.status == BuildStatus.RUNNING
        assert record.started_at == datetime(2025, 3, 1, 10, 1, tzinfo=timezone.utc)

    def test_same_status_is_not_a_change(self):
        """Re-applying the same status should report no change."""
        record = make_record("running")
        assert record.apply_snapshot(build_snapshot("running")) is False

    def test_unknown_status_becomes_queued(self):
        """Unknown statuses from the server should read as queued."""
        record = make_record("assigned")

        record.apply_snapshot({"uuid": "b-1", "status": "paused"})

        assert record.status == BuildStatus.QUEUED

    def test_missing_fields_keep_prior_values(self):
        """Fields absent from the snapshot should keep their values."""
        record = make_record("running")
        started_at = record.started_at

        record.apply_snapshot({"uuid": "b-1", "worker_id": "w-7"})

        assert record.status == BuildStatus.RUNNING
        assert record.started_at == started_at
        assert record.worker_id == "w-7"

    @pytest.mark.parametrize("terminal", ["complete", "failed"])
    def test_terminal_status_is_final(self, terminal):
        """A terminal record should never change status again."""
        record = make_record(terminal)

        changed = record.apply_snapshot(build_snapshot("running"))

        assert changed is False
        assert record.status == BuildStatus(terminal)
        assert record.completed_at is not None

    def test_error_message_only_when_failed(self):
        """error_message should be cleared for non-failed statuses."""
        record = make_record("running")

        record.apply_snapshot(build_snapshot("complete", error_message="noise"))

        assert record.error_message is None

    def test_completed_at_only_when_terminal(self):
        """completed_at should be cleared while the build is active."""
        record = make_record("running")

        record.apply_snapshot(
            build_snapshot("running", completed_at="2025-03-01T10:20:00Z")
        )

        assert record.completed_at is None

    def test_descriptive_fields_immutable(self):
        """Known descriptive fields should not be overwritten."""
        record = make_record("queued")

        record.apply_snapshot(build_snapshot("running", image="fedora:40"))

        assert record.image == "ubuntu:24.04"

    def test_descriptive_fields_filled_when_empty(self):
        """Descriptive fields should be filled once they become known."""
        record = BuildRecord(id="b-1")

        record.apply_snapshot(build_snapshot("queued"))

        assert record.variant == "core"
        assert record.model == "generic"

    def test_other_build_rejected(self):
        """Snapshots of a different build should be ignored."""
        record = make_record("queued")

        changed = record.apply_snapshot(build_snapshot("running", build_id="b-2"))

        assert changed is False
        assert record.status == BuildStatus.QUEUED

    @pytest.mark.parametrize("data", [None, "garbage", [1, 2]])
    def test_malformed_snapshot_ignored(self, data):
        """Malformed snapshots should be ignored without raising."""
        record = make_record("running")

        assert record.apply_snapshot(data) is False
        assert record.status == BuildStatus.RUNNING


class TestBuildRecordHelpers:
    """Tests for BuildRecord convenience methods."""

    @pytest.mark.parametrize(
        ("status", "active", "terminal"),
        [
            ("queued", True, False),
            ("assigned", True, False),
            ("running", True, False),
            ("complete", False, True),
            ("failed", False, True),
        ],
    )
    def test_status_predicates(self, status, active, terminal):
        """Status predicates should agree with the status."""
        record = make_record(status)
        assert record.is_active() is active
        assert record.is_terminal() is terminal
        assert record.is_success() is (status == "complete")
        assert record.is_failure() is (status == "failed")

    def test_title_and_paths(self):
        """Title and server paths should be derived from the record."""
        record = make_record("running")

        assert record.title == "core generic (amd64)"
        assert record.logs_path == "/api/v1/builds/b-1/logs"
        assert record.artifacts_path == "/api/v1/builds/b-1/artifacts"

    def test_summary(self):
        """Summary should present the build's descriptive fields."""
        record = make_record("running")
        now = datetime(2025, 3, 1, 13, 0, tzinfo=timezone.utc)

        summary = record.summary(now)

        assert summary["Base Image"] == "ubuntu:24.04"
        assert summary["Status"] == "running"
        assert summary["Created"] == "3h ago"

    def test_to_dict(self):
        """to_dict should use wire keys and drop empty values."""
        record = make_record("running")

        data = record.to_dict()

        assert data["uuid"] == "b-1"
        assert data["status"] == "running"
        assert data["created_at"] == "2025-03-01T10:00:00+00:00"
        assert "completed_at" not in data
        assert "error_message" not in data

    def test_repr(self):
        """repr should show id and status."""
        assert repr(make_record("queued")) == "<BuildRecord(id='b-1', status='queued')>"


class TestFormatRelativeTime:
    """Tests for format_relative_time function."""

    NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize(
        ("delta", "expected"),
        [
            (timedelta(seconds=30), "just now"),
            (timedelta(minutes=5), "5m ago"),
            (timedelta(hours=2, minutes=10), "2h ago"),
            (timedelta(days=3), "3d ago"),
            (timedelta(days=9), "2025-03-01"),
        ],
    )
    def test_buckets(self, delta, expected):
        """Timestamps should be bucketed relative to now."""
        assert format_relative_time(self.NOW - delta, self.NOW) == expected

    def test_none(self):
        """A missing timestamp should format as empty."""
        assert format_relative_time(None, self.NOW) == ""

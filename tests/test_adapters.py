"""Tests for platform adapters and the parallel fetcher."""

import json
import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from codefolio.adapters import (
    ExportFileAdapter,
    ExportSubmissionSource,
    PlatformSnapshot,
    fetch_snapshots,
    parse_timestamp,
    stale_platforms,
)
from codefolio.errors import UpstreamUnavailable
from codefolio.platforms import Platform

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _write_export(export_dir, platform, handle, data):
    path = export_dir / platform / f"{handle}.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class _StaticAdapter:
    def __init__(self, platform, snapshot=None, error=None, gate=None):
        self.platform = platform
        self.snapshot = snapshot
        self.error = error
        self.gate = gate

    def fetch(self, handle):
        if self.gate is not None:
            self.gate.wait(5)
        if self.error is not None:
            raise self.error
        return self.snapshot


class TestParseTimestamp:
    def test_iso_z(self):
        assert parse_timestamp("2026-03-10T12:00:00Z") == NOW

    def test_naive_is_utc(self):
        assert parse_timestamp("2026-03-10T12:00:00") == NOW

    def test_epoch(self):
        assert parse_timestamp(NOW.timestamp()) == NOW

    def test_invalid(self):
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(None) is None


class TestPlatformSnapshot:
    def test_dict_roundtrip(self):
        snap = PlatformSnapshot(
            Platform.LEETCODE, "alice", {"2026-03-01": 2}, problems_solved=10,
            rating=1650.0, contests_participated=3, contributions=0, fetched_at=NOW,
        )
        assert PlatformSnapshot.from_dict(snap.to_dict()) == snap

    def test_is_stale(self):
        snap = PlatformSnapshot(Platform.GITHUB, "a", fetched_at=NOW - timedelta(hours=30))
        assert snap.is_stale(NOW, timedelta(hours=24)) is True
        assert snap.is_stale(NOW, timedelta(hours=48)) is False

    def test_missing_timestamp_is_stale(self):
        assert PlatformSnapshot(Platform.GITHUB, "a").is_stale(NOW, timedelta(hours=24)) is True


class TestExportFileAdapter:
    def test_fetch_parses_export(self, tmp_path):
        _write_export(tmp_path, "leetcode", "alice", {
            "fetchedAt": "2026-03-10T12:00:00Z",
            "problemsSolved": 321,
            "rating": 1712.5,
            "contestsParticipated": 12,
            "calendar": [{"date": "2026-03-09", "count": 4}, {"date": "2026-03-10T00:00:00Z", "count": 1}],
        })
        snap = ExportFileAdapter(Platform.LEETCODE, tmp_path).fetch("alice")
        assert snap.platform is Platform.LEETCODE
        assert snap.problems_solved == 321
        assert snap.rating == 1712.5
        assert snap.contests_participated == 12
        assert snap.daily_counts == {"2026-03-09": 4, "2026-03-10": 1}
        assert snap.fetched_at == NOW

    def test_calendar_as_mapping(self, tmp_path):
        _write_export(tmp_path, "github", "al", {"calendar": {"2026-03-01": 3}, "contributions": 3})
        snap = ExportFileAdapter(Platform.GITHUB, tmp_path).fetch("al")
        assert snap.daily_counts == {"2026-03-01": 3}
        assert snap.fetched_at is not None

    def test_calendar_keys_normalized(self, tmp_path):
        _write_export(tmp_path, "leetcode", "alice", {"calendar": {
            "2026-3-5": 2,
            "2026-03-05": 1,
            "1772758800": 4,
            "1772758800000": 1,
        }})
        snap = ExportFileAdapter(Platform.LEETCODE, tmp_path).fetch("alice")
        assert snap.daily_counts == {"2026-03-05": 3, "2026-03-06": 5}

    def test_unreadable_calendar_key_skipped(self, tmp_path, caplog):
        _write_export(tmp_path, "github", "al", {"calendar": [
            {"date": "yesterday", "count": 9},
            {"date": "2026-03-01", "count": 3},
        ]})
        with caplog.at_level("WARNING", logger="codefolio.adapters"):
            snap = ExportFileAdapter(Platform.GITHUB, tmp_path).fetch("al")
        assert snap.daily_counts == {"2026-03-01": 3}
        assert "yesterday" in caplog.text

    def test_missing_file(self, tmp_path):
        with pytest.raises(UpstreamUnavailable) as exc_info:
            ExportFileAdapter(Platform.CODECHEF, tmp_path).fetch("nobody")
        assert exc_info.value.platform == "codechef"

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "github" / "broken.json"
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(UpstreamUnavailable):
            ExportFileAdapter(Platform.GITHUB, tmp_path).fetch("broken")


class TestExportSubmissionSource:
    def test_accepted_after_since(self, tmp_path):
        _write_export(tmp_path, "leetcode", "alice", {"submissions": [
            {"problemId": "two-sum", "status": "Accepted", "timestamp": "2026-03-10T09:00:00Z"},
        ]})
        source = ExportSubmissionSource(tmp_path)
        since = datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)
        assert source.has_accepted_submission(Platform.LEETCODE, "alice", "two-sum", since) is True

    def test_submission_before_since_ignored(self, tmp_path):
        _write_export(tmp_path, "leetcode", "alice", {"submissions": [
            {"problemId": "two-sum", "status": "Accepted", "timestamp": "2026-03-01T09:00:00Z"},
        ]})
        source = ExportSubmissionSource(tmp_path)
        assert source.has_accepted_submission(Platform.LEETCODE, "alice", "two-sum", NOW) is False

    def test_wrong_answer_ignored(self, tmp_path):
        _write_export(tmp_path, "codeforces", "bob", {"submissions": [
            {"problemId": "4A", "status": "WRONG_ANSWER", "timestamp": "2026-03-10T13:00:00Z"},
        ]})
        source = ExportSubmissionSource(tmp_path)
        assert source.has_accepted_submission(Platform.CODEFORCES, "bob", "4A", NOW) is False

    def test_solved_problems_any_time(self, tmp_path):
        _write_export(tmp_path, "codeforces", "bob", {"submissions": [
            {"problemId": "4A", "status": "OK", "timestamp": "2025-01-01T00:00:00Z"},
            {"problemId": " 71A ", "status": "accepted"},
            {"problemId": "158A", "status": "WRONG_ANSWER", "timestamp": "2026-03-10T13:00:00Z"},
            "garbage",
        ]})
        source = ExportSubmissionSource(tmp_path)
        assert source.solved_problems(Platform.CODEFORCES, "bob") == {"4a", "71a"}

    def test_solved_problems_missing_export(self, tmp_path):
        with pytest.raises(UpstreamUnavailable):
            ExportSubmissionSource(tmp_path).solved_problems(Platform.LEETCODE, "nobody")


class TestFetchSnapshots:
    def test_all_succeed(self):
        a = PlatformSnapshot(Platform.LEETCODE, "alice", {"2026-03-10": 2})
        b = PlatformSnapshot(Platform.GITHUB, "alice", {"2026-03-10": 5})
        result = fetch_snapshots(
            {Platform.LEETCODE: "alice", Platform.GITHUB: "alice"},
            {Platform.LEETCODE: _StaticAdapter(Platform.LEETCODE, a),
             Platform.GITHUB: _StaticAdapter(Platform.GITHUB, b)},
        )
        assert result.snapshots == {Platform.LEETCODE: a, Platform.GITHUB: b}
        assert result.failures == []

    def test_failure_is_isolated(self):
        a = PlatformSnapshot(Platform.LEETCODE, "alice", {"2026-03-10": 2})
        result = fetch_snapshots(
            {Platform.LEETCODE: "alice", Platform.CODEFORCES: "alice"},
            {Platform.LEETCODE: _StaticAdapter(Platform.LEETCODE, a),
             Platform.CODEFORCES: _StaticAdapter(Platform.CODEFORCES, error=RuntimeError("503"))},
        )
        assert result.snapshots == {Platform.LEETCODE: a}
        assert len(result.failures) == 1
        assert result.failures[0].platform == "codeforces"
        assert "503" in result.failures[0].reason

    def test_timeout_keeps_other_platform(self):
        gate = threading.Event()
        a = PlatformSnapshot(Platform.LEETCODE, "alice", {"2026-03-10": 3})
        try:
            result = fetch_snapshots(
                {Platform.LEETCODE: "alice", Platform.GITHUB: "alice"},
                {Platform.LEETCODE: _StaticAdapter(Platform.LEETCODE, a),
                 Platform.GITHUB: _StaticAdapter(Platform.GITHUB, a, gate=gate)},
                deadline_seconds=0.3,
            )
        finally:
            gate.set()
        assert result.snapshots[Platform.LEETCODE].daily_counts == {"2026-03-10": 3}
        assert Platform.GITHUB not in result.snapshots
        assert [f.platform for f in result.failures] == ["github"]
        assert result.failures[0].reason == "timed out"

    def test_missing_adapter(self):
        result = fetch_snapshots({Platform.HACKERRANK: "x"}, {})
        assert result.snapshots == {}
        assert result.failures[0].platform == "hackerrank"

    def test_adapter_called_with_handle(self):
        adapter = MagicMock()
        adapter.fetch.return_value = PlatformSnapshot(Platform.CODECHEF, "chef")
        fetch_snapshots({Platform.CODECHEF: "chef"}, {Platform.CODECHEF: adapter})
        adapter.fetch.assert_called_once_with("chef")


class TestStalePlatforms:
    def test_reports_old_snapshots(self):
        snapshots = {
            Platform.LEETCODE: PlatformSnapshot(Platform.LEETCODE, "a", fetched_at=NOW - timedelta(hours=1)),
            Platform.GITHUB: PlatformSnapshot(Platform.GITHUB, "a", fetched_at=NOW - timedelta(days=3)),
        }
        assert stale_platforms(snapshots, NOW, timedelta(hours=24)) == [Platform.GITHUB]

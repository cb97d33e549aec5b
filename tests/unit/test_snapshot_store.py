"""Tests for SnapshotStore: idempotent creation, lookups, late joiners, purge."""

import sqlite3
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch
from zoneinfo import ZoneInfo

import pytest

from src.core.db import find_snapshot, init_db, insert_snapshot
from src.core.errors import PersistenceError
from src.core.schemas import LeaderboardSnapshot, Period, SnapshotUserStats, UserStats
from src.pipeline.snapshot_store import SnapshotStore

LA = ZoneInfo("America/Los_Angeles")
NOW = datetime(2026, 1, 7, 12, 0, tzinfo=LA)  # 2026-W02, 2026-01, 2026


@pytest.fixture
def db(tmp_path: pytest.TempPathFactory) -> sqlite3.Connection:  # type: ignore[type-arg]
    return init_db(tmp_path / "test.db")  # type: ignore[operator]


@pytest.fixture
def store(db: sqlite3.Connection) -> SnapshotStore:
    return SnapshotStore(db, LA)


def _stats(username: str, easy: int = 0, total: int | None = None) -> UserStats:
    return UserStats(username=username, easy=easy, total=easy if total is None else total, xp=easy)


def _count(db: sqlite3.Connection) -> int:
    return db.execute("SELECT COUNT(*) FROM leaderboard_snapshots").fetchone()[0]


# ---------------------------------------------------------------------------
# ensure_current_snapshot
# ---------------------------------------------------------------------------


class TestEnsureCurrentSnapshot:
    def test_creates_from_current_stats(self, store: SnapshotStore) -> None:
        snap = store.ensure_current_snapshot(Period.WEEKLY, [_stats("alice", 5)], NOW)
        assert snap.period is Period.WEEKLY
        assert snap.period_key == "2026-W02"
        assert snap.id is not None
        assert snap.entry_for("alice").easy == 5  # type: ignore[union-attr]

    def test_idempotent(self, store: SnapshotStore, db: sqlite3.Connection) -> None:
        first = store.ensure_current_snapshot(Period.WEEKLY, [_stats("alice", 5)], NOW)
        second = store.ensure_current_snapshot(Period.WEEKLY, [_stats("alice", 9)], NOW)
        assert _count(db) == 1
        assert second.id == first.id
        # Existing baseline returned unchanged.
        assert second.entry_for("alice").easy == 5  # type: ignore[union-attr]

    def test_same_period_later_instant(self, store: SnapshotStore, db: sqlite3.Connection) -> None:
        store.ensure_current_snapshot(Period.WEEKLY, [], NOW)
        store.ensure_current_snapshot(Period.WEEKLY, [], NOW + timedelta(days=3, hours=11))
        assert _count(db) == 1

    def test_new_period_creates_new_snapshot(self, store: SnapshotStore, db: sqlite3.Connection) -> None:
        store.ensure_current_snapshot(Period.WEEKLY, [_stats("alice", 5)], NOW)
        nxt = store.ensure_current_snapshot(Period.WEEKLY, [_stats("alice", 8)], NOW + timedelta(weeks=1))
        assert nxt.period_key == "2026-W03"
        assert nxt.entry_for("alice").easy == 8  # type: ignore[union-attr]
        assert _count(db) == 2

    def test_lost_race_rereads_winner(self, store: SnapshotStore, db: sqlite3.Connection) -> None:
        """Another writer inserts between our existence check and our insert."""
        winner = LeaderboardSnapshot(
            period=Period.WEEKLY,
            period_key="2026-W02",
            users=[SnapshotUserStats(username="winner", easy=1, total=1, xp=1)],
        )
        real_find = find_snapshot
        calls = {"n": 0}

        def _find_then_race(conn, period, key):  # type: ignore[no-untyped-def]
            calls["n"] += 1
            if calls["n"] == 1:
                insert_snapshot(conn, winner)
                return None
            return real_find(conn, period, key)

        with patch("src.pipeline.snapshot_store.find_snapshot", side_effect=_find_then_race):
            snap = store.ensure_current_snapshot(Period.WEEKLY, [_stats("loser", 7)], NOW)

        assert _count(db) == 1
        assert snap.entry_for("winner") is not None
        assert snap.entry_for("loser") is None

    def test_db_error_wrapped(self) -> None:
        conn = MagicMock()
        conn.execute.side_effect = sqlite3.OperationalError("disk I/O error")
        with pytest.raises(PersistenceError, match="disk I/O error"):
            SnapshotStore(conn, LA).ensure_current_snapshot(Period.WEEKLY, [], NOW)


class TestEnsureCurrentSnapshots:
    def test_all_periods(self, store: SnapshotStore, db: sqlite3.Connection) -> None:
        result = store.ensure_current_snapshots([_stats("alice", 1)], NOW)
        assert set(result) == set(Period)
        assert result[Period.WEEKLY].period_key == "2026-W02"  # type: ignore[union-attr]
        assert result[Period.MONTHLY].period_key == "2026-01"  # type: ignore[union-attr]
        assert result[Period.YEARLY].period_key == "2026"  # type: ignore[union-attr]
        assert _count(db) == 3

    def test_failure_yields_none(self) -> None:
        conn = MagicMock()
        conn.execute.side_effect = sqlite3.OperationalError("locked")
        result = SnapshotStore(conn, LA).ensure_current_snapshots([], NOW)
        assert result == {Period.WEEKLY: None, Period.MONTHLY: None, Period.YEARLY: None}


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


class TestLoad:
    def test_load_by_key_absent(self, store: SnapshotStore) -> None:
        assert store.load_by_key(Period.MONTHLY, "2025-12") is None

    def test_load_by_key(self, store: SnapshotStore) -> None:
        store.ensure_current_snapshot(Period.MONTHLY, [_stats("alice")], NOW)
        assert store.load_by_key(Period.MONTHLY, "2026-01") is not None
        assert store.load_by_key(Period.WEEKLY, "2026-01") is None

    def test_load_current_and_previous(self, store: SnapshotStore) -> None:
        store.ensure_current_snapshot(Period.WEEKLY, [_stats("alice", 1)], NOW - timedelta(weeks=1))
        store.ensure_current_snapshot(Period.WEEKLY, [_stats("alice", 4)], NOW)
        assert store.load_current(Period.WEEKLY, NOW).period_key == "2026-W02"  # type: ignore[union-attr]
        assert store.load_previous(Period.WEEKLY, NOW).period_key == "2026-W01"  # type: ignore[union-attr]

    def test_history(self, store: SnapshotStore) -> None:
        store.ensure_current_snapshot(Period.WEEKLY, [], NOW + timedelta(weeks=1))
        store.ensure_current_snapshot(Period.WEEKLY, [], NOW)
        store.ensure_current_snapshot(Period.YEARLY, [], NOW)
        assert [s.period_key for s in store.history(Period.WEEKLY)] == ["2026-W02", "2026-W03"]
        assert len(store.history()) == 3

    def test_history_error_wrapped(self) -> None:
        conn = MagicMock()
        conn.execute.side_effect = sqlite3.OperationalError("locked")
        with pytest.raises(PersistenceError):
            SnapshotStore(conn, LA).history()

    def test_reference_zone_used_for_keys(self, db: sqlite3.Connection) -> None:
        tokyo_store = SnapshotStore(db, ZoneInfo("Asia/Tokyo"))
        # Sunday 20:00 in Los Angeles is already Monday in Tokyo.
        sunday_la = datetime(2026, 1, 11, 20, 0, tzinfo=LA)
        assert tokyo_store.current_key(Period.WEEKLY, sunday_la) == "2026-W03"
        assert SnapshotStore(db, LA).current_key(Period.WEEKLY, sunday_la) == "2026-W02"


# ---------------------------------------------------------------------------
# Late joiners and purge
# ---------------------------------------------------------------------------


class TestAddUserBaseline:
    def test_appends_new_user(self, store: SnapshotStore) -> None:
        store.ensure_current_snapshot(Period.WEEKLY, [_stats("alice", 1)], NOW)
        assert store.add_user_baseline(Period.WEEKLY, "bob", "Bob", _stats("bob", 40), NOW) is True
        snap = store.load_current(Period.WEEKLY, NOW)
        entry = snap.entry_for("bob")  # type: ignore[union-attr]
        assert entry is not None and entry.easy == 40 and entry.name == "Bob"

    def test_never_overwrites(self, store: SnapshotStore) -> None:
        store.ensure_current_snapshot(Period.WEEKLY, [_stats("alice", 1)], NOW)
        assert store.add_user_baseline(Period.WEEKLY, "alice", None, _stats("alice", 30), NOW) is False
        assert store.load_current(Period.WEEKLY, NOW).entry_for("alice").easy == 1  # type: ignore[union-attr]

    def test_no_snapshot_is_noop(self, store: SnapshotStore, db: sqlite3.Connection) -> None:
        assert store.add_user_baseline(Period.WEEKLY, "bob", None, _stats("bob", 3), NOW) is False
        assert _count(db) == 0

    def test_fan_out_to_every_period(self, store: SnapshotStore) -> None:
        store.ensure_current_snapshot(Period.WEEKLY, [], NOW)
        store.ensure_current_snapshot(Period.YEARLY, [], NOW)
        result = store.add_user_baseline_all("bob", None, _stats("bob", 2), NOW)
        assert result == {Period.WEEKLY: True, Period.MONTHLY: False, Period.YEARLY: True}
        assert store.load_current(Period.YEARLY, NOW).entry_for("bob") is not None  # type: ignore[union-attr]


class TestPurgeUser:
    def test_purge(self, store: SnapshotStore) -> None:
        store.ensure_current_snapshots([_stats("alice"), _stats("bob")], NOW)
        assert store.purge_user("bob") == 3
        for period in Period:
            snap = store.load_current(period, NOW)
            assert snap.entry_for("bob") is None  # type: ignore[union-attr]
            assert snap.entry_for("alice") is not None  # type: ignore[union-attr]

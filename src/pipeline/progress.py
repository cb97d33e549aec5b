"""Progress engine: deltas between current stats and a period baseline."""

from src.core.schemas import (
    DifficultyStats,
    LeaderboardSnapshot,
    SnapshotUserStats,
    UserStats,
)
from src.pipeline.scorer import calculate_xp, rank_users

_COUNTERS = ("jobs_applied", "easy", "medium", "hard", "total")


def _deltas(current: DifficultyStats, baseline: DifficultyStats | None) -> dict[str, int]:
    if baseline is None:
        return {field: getattr(current, field) for field in _COUNTERS}
    return {
        field: max(0, getattr(current, field) - getattr(baseline, field))
        for field in _COUNTERS
    }


def compute_progress(
    current: UserStats,
    baseline: SnapshotUserStats | None,
) -> UserStats:
    """Return a user's progress since their baseline.

    Without a baseline entry nothing has been observed yet, so every delta
    is zero. With one, each counter is clamped at zero and XP is recomputed
    from the deltas.
    """
    if baseline is None:
        deltas = dict.fromkeys(_COUNTERS, 0)
    else:
        deltas = _deltas(current, baseline)
    return UserStats(
        username=current.username,
        name=current.name,
        error=current.error,
        xp=calculate_xp(deltas["jobs_applied"], deltas["easy"], deltas["medium"], deltas["hard"]),
        **deltas,
    )


def compute_period_progress(
    current_stats: list[UserStats],
    snapshot: LeaderboardSnapshot | None,
) -> list[UserStats]:
    """Ranked progress for every current user against one period's snapshot."""
    rows = [
        compute_progress(s, snapshot.entry_for(s.username) if snapshot else None)
        for s in current_stats
    ]
    return rank_users(rows)


def compute_prev_stats(
    end_snapshot: LeaderboardSnapshot,
    start_snapshot: LeaderboardSnapshot | None,
    roster: set[str] | None = None,
) -> list[UserStats]:
    """Reconstruct a finished period's leaderboard from two baselines.

    ``end_snapshot`` is the baseline captured at the start of the following
    period; ``start_snapshot`` the baseline of the finished period. A user
    missing from the start snapshot is credited from zero.
    """
    rows: list[UserStats] = []
    for end in end_snapshot.users:
        if roster is not None and end.username not in roster:
            continue
        start = start_snapshot.entry_for(end.username) if start_snapshot else None
        deltas = _deltas(end, start)
        rows.append(
            UserStats(
                username=end.username,
                name=end.name,
                xp=calculate_xp(
                    deltas["jobs_applied"], deltas["easy"], deltas["medium"], deltas["hard"],
                ),
                **deltas,
            ),
        )
    return rank_users(rows)

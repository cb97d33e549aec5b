"""Experience points and leaderboard ranking.

XP weights: 0.5 per job application, 1 per easy, 2 per medium, 4 per hard.
The same formula scores lifetime counts and period deltas.
"""

from src.core.schemas import UserStats

JOB_WEIGHT = 0.5
EASY_WEIGHT = 1
MEDIUM_WEIGHT = 2
HARD_WEIGHT = 4


def calculate_xp(jobs_applied: int, easy: int, medium: int, hard: int) -> float:
    """Return the weighted experience score for the given counts."""
    return (
        jobs_applied * JOB_WEIGHT
        + easy * EASY_WEIGHT
        + medium * MEDIUM_WEIGHT
        + hard * HARD_WEIGHT
    )


def rank_users(stats: list[UserStats]) -> list[UserStats]:
    """Sort by XP desc, then total desc, and assign positional ranks 1..N.

    Rows with a fetch error carry no comparable numbers, so they go last.
    Full ties keep their input order.
    """
    healthy = [s for s in stats if not s.has_error]
    errored = [s for s in stats if s.has_error]
    healthy.sort(key=lambda s: (s.xp, s.total), reverse=True)
    return _assign_ranks(healthy + errored)


def rank_by_jobs(stats: list[UserStats]) -> list[UserStats]:
    """Jobs tab ordering: jobs applied desc, then XP desc."""
    ordered = sorted(stats, key=lambda s: (s.jobs_applied, s.xp), reverse=True)
    return _assign_ranks(ordered)


def _assign_ranks(ordered: list[UserStats]) -> list[UserStats]:
    return [s.model_copy(update={"rank": i}) for i, s in enumerate(ordered, start=1)]

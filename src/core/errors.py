"""Exception taxonomy for roster, job log, and snapshot operations."""


class LeaderboardError(Exception):
    """Base class for errors surfaced to the caller of a leaderboard action."""


class InputValidationError(LeaderboardError):
    """Required input is missing or invalid. Raised before any I/O."""


class UserNotFoundError(LeaderboardError):
    """The stats source reports that the username does not exist."""

    def __init__(self, username: str) -> None:
        super().__init__(f"User '{username}' not found on the stats source")
        self.username = username


class StatsUnavailableError(LeaderboardError):
    """The stats source kept failing, so the user could not be validated."""


class PersistenceError(LeaderboardError):
    """A database read or write failed."""

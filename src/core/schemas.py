"""Core data models for the leaderboard: roster, jobs, stats, and snapshots."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Period(str, Enum):
    """Tracking window for progress snapshots."""

    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class JobStatus(str, Enum):
    """Application pipeline stage. Declaration order is the advance order."""

    APPLIED = "Applied"
    ASSESSMENT = "Assessment"
    INTERVIEW = "Interview"
    OFFER = "Offer"

    def next(self) -> "JobStatus":
        """Advance one stage, wrapping Offer back to Applied."""
        members = list(JobStatus)
        return members[(members.index(self) + 1) % len(members)]


class User(BaseModel):
    """A tracked participant on the roster."""

    username: str
    name: str | None = None
    jobs_applied: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=datetime.now)

    @field_validator("username")
    @classmethod
    def username_not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "username must not be empty"
            raise ValueError(msg)
        return v.strip()

    @property
    def display_name(self) -> str:
        return self.name or self.username


class JobRecord(BaseModel):
    """One job application logged by a user."""

    id: int | None = None
    username: str
    title: str
    company: str
    url: str = ""
    status: JobStatus = JobStatus.APPLIED
    created_at: datetime = Field(default_factory=datetime.now)


class DifficultyStats(BaseModel):
    """Solved counts per difficulty plus job applications and derived XP."""

    jobs_applied: int = Field(default=0, ge=0)
    easy: int = Field(default=0, ge=0)
    medium: int = Field(default=0, ge=0)
    hard: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)
    xp: float = 0.0


class UserStats(DifficultyStats):
    """Computed row for a leaderboard tab. Never persisted."""

    username: str
    name: str | None = None
    rank: int = 0
    error: str | None = None

    @property
    def has_error(self) -> bool:
        return self.error is not None

    @property
    def display_name(self) -> str:
        return self.name or self.username


class SnapshotUserStats(DifficultyStats):
    """One user's baseline inside a snapshot."""

    username: str
    name: str | None = None


class LeaderboardSnapshot(BaseModel):
    """Baseline stats captured at the first observation of a period."""

    id: int | None = None
    period: Period
    period_key: str
    created_at: datetime = Field(default_factory=datetime.now)
    users: list[SnapshotUserStats] = Field(default_factory=list)

    def entry_for(self, username: str) -> SnapshotUserStats | None:
        """Return the baseline entry for a username, if captured."""
        for entry in self.users:
            if entry.username == username:
                return entry
        return None


# ---------------------------------------------------------------------------
# Stats fetch results
# ---------------------------------------------------------------------------


class StatsSuccess(BaseModel):
    """Stats fetched for an existing user."""

    model_config = ConfigDict(frozen=True)

    easy: int = Field(ge=0)
    medium: int = Field(ge=0)
    hard: int = Field(ge=0)
    total: int = Field(ge=0)
    jobs_applied: int = Field(default=0, ge=0)
    xp: float = 0.0


class UserNotFound(BaseModel):
    """The stats source does not know this username. Terminal."""

    model_config = ConfigDict(frozen=True)

    username: str


class TransientFailure(BaseModel):
    """The stats source could not be reached after all retries."""

    model_config = ConfigDict(frozen=True)

    message: str


StatsResult = StatsSuccess | UserNotFound | TransientFailure

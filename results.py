"""Winner resolution from regulation, extra-time and penalty scores."""

from dataclasses import dataclass
import enum

from errors import DecisiveResultRequiredError, UnresolvedTiebreakError, ValidationError

DECIDED_BY_REGULATION = 'regulation'
DECIDED_BY_EXTRA_TIME = 'extra_time'
DECIDED_BY_PENALTIES = 'penalties'


class Outcome(enum.Enum):
    DECISIVE = 'decisive'
    LEVEL = 'level'
    UNRESOLVED_TIEBREAK = 'unresolved_tiebreak'


def _score(value, field: str) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f'{field} must be an integer')
    if value < 0:
        raise ValidationError(f'{field} cannot be negative')
    return value


def _flag(value, field: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f'{field} must be true or false')
    return value


@dataclass(frozen=True)
class ScoreInput:
    """Submitted score sheet for one match."""

    home_score: int
    away_score: int
    has_extra_time: bool = False
    home_extra_time_score: int = 0
    away_extra_time_score: int = 0
    has_penalties: bool = False
    home_penalty_score: int = 0
    away_penalty_score: int = 0

    def __post_init__(self):
        for field in (
            'home_score',
            'away_score',
            'home_extra_time_score',
            'away_extra_time_score',
            'home_penalty_score',
            'away_penalty_score',
        ):
            _score(getattr(self, field), field)
        _flag(self.has_extra_time, 'has_extra_time')
        _flag(self.has_penalties, 'has_penalties')

        # values behind a disabled flag are ignored
        if not self.has_extra_time:
            object.__setattr__(self, 'home_extra_time_score', 0)
            object.__setattr__(self, 'away_extra_time_score', 0)
        if not self.has_penalties:
            object.__setattr__(self, 'home_penalty_score', 0)
            object.__setattr__(self, 'away_penalty_score', 0)

    @classmethod
    def from_payload(cls, payload) -> 'ScoreInput':
        if not isinstance(payload, dict):
            raise ValidationError('Score payload must be an object')
        missing = [key for key in ('home_score', 'away_score') if key not in payload]
        if missing:
            raise ValidationError(f"Missing score fields: {', '.join(missing)}")
        return cls(
            home_score=payload['home_score'],
            away_score=payload['away_score'],
            has_extra_time=payload.get('has_extra_time', False),
            home_extra_time_score=payload.get('home_extra_time_score', 0),
            away_extra_time_score=payload.get('away_extra_time_score', 0),
            has_penalties=payload.get('has_penalties', False),
            home_penalty_score=payload.get('home_penalty_score', 0),
            away_penalty_score=payload.get('away_penalty_score', 0),
        )

    @property
    def home_goals(self) -> int:
        return self.home_score + self.home_extra_time_score

    @property
    def away_goals(self) -> int:
        return self.away_score + self.away_extra_time_score


@dataclass(frozen=True)
class Resolution:
    outcome: Outcome
    winning_side: str | None
    winner_id: str | None
    decided_by: str | None
    home_goals: int
    away_goals: int

    @property
    def is_decisive(self) -> bool:
        return self.outcome is Outcome.DECISIVE

    def result_for(self, side: str) -> str:
        """Table result for one side, counted on goals only.

        A shoot-out picks a winner to advance but never turns a level
        scoreline into a win.
        """
        goals_for, goals_against = self.home_goals, self.away_goals
        if side == 'away':
            goals_for, goals_against = goals_against, goals_for
        if goals_for > goals_against:
            return 'win'
        if goals_for == goals_against:
            return 'draw'
        return 'loss'

    def require_winner(self) -> str:
        """Winner of a match that must not end level."""
        if self.outcome is Outcome.LEVEL:
            raise DecisiveResultRequiredError(
                'Decisive result required: match finished level with no tie-break applied',
                outcome=self.outcome,
            )
        if self.outcome is Outcome.UNRESOLVED_TIEBREAK:
            raise UnresolvedTiebreakError(
                'Unresolved penalty tie: shoot-out scores must differ',
                outcome=self.outcome,
            )
        return self.winner_id


def resolve_result(match, scores: ScoreInput) -> Resolution:
    """Classify a score sheet and name the winner when there is one."""
    home_goals, away_goals = scores.home_goals, scores.away_goals
    decided_by = DECIDED_BY_EXTRA_TIME if scores.has_extra_time else DECIDED_BY_REGULATION

    if home_goals != away_goals:
        side = 'home' if home_goals > away_goals else 'away'
    elif scores.has_penalties:
        if scores.home_penalty_score == scores.away_penalty_score:
            return Resolution(Outcome.UNRESOLVED_TIEBREAK, None, None, None, home_goals, away_goals)
        side = 'home' if scores.home_penalty_score > scores.away_penalty_score else 'away'
        decided_by = DECIDED_BY_PENALTIES
    else:
        return Resolution(Outcome.LEVEL, None, None, None, home_goals, away_goals)

    winner_id = match.home_team_id if side == 'home' else match.away_team_id
    return Resolution(Outcome.DECISIVE, side, winner_id, decided_by, home_goals, away_goals)

from datetime import datetime
import uuid

import pytz
from flask import current_app, has_app_context
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import validates

from errors import ValidationError

db = SQLAlchemy()

DEFAULT_TIMEZONE = 'UTC'

FORMAT_LEAGUE = 'league'
FORMAT_KNOCKOUT = 'knockout'
TOURNAMENT_FORMATS = (FORMAT_LEAGUE, FORMAT_KNOCKOUT)

TIE_BREAK_PENALTIES = 'penalties'
TIE_BREAK_EXTRA_TIME = 'extra_time'
TIE_BREAK_POLICIES = (TIE_BREAK_PENALTIES, TIE_BREAK_EXTRA_TIME)

SEEDING_FIXED = 'fixed'
SEEDING_RANDOM_DRAW = 'random_draw'
SEEDING_POLICIES = (SEEDING_FIXED, SEEDING_RANDOM_DRAW)

MATCH_SCHEDULED = 'scheduled'
MATCH_IN_PROGRESS = 'in_progress'
MATCH_FINISHED = 'finished'
MATCH_STATUSES = (MATCH_SCHEDULED, MATCH_IN_PROGRESS, MATCH_FINISHED)

DECIDED_BY_WALKOVER = 'walkover'


def current_time():
    zone = DEFAULT_TIMEZONE
    if has_app_context():
        zone = current_app.config.get('TOURNAMENT_TIMEZONE', DEFAULT_TIMEZONE)
    return datetime.now(pytz.timezone(zone))


def new_match_id() -> str:
    return str(uuid.uuid4())


class Team(db.Model):
    """Registered competitor. The engine only ever looks at ``team_id``."""

    __tablename__ = 'team'

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(db.String(20), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    created_at = db.Column(db.DateTime, default=current_time)

    tournament_teams = db.relationship('TournamentTeam', back_populates='team', lazy=True)

    def __repr__(self):  # pragma: no cover - debug helper
        return f"<Team {self.team_id} {self.name}>"

    @validates('name')
    def validate_name(self, key, value):
        if not value or len(value.strip()) < 2:
            raise ValidationError('Team name must be at least 2 characters')
        return value.strip()

    def to_dict(self) -> dict:
        return {'team_id': self.team_id, 'name': self.name}


class Tournament(db.Model):
    """Tournament descriptor: format, tie-break policy and seeding policy."""

    __tablename__ = 'tournament'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    format = db.Column(db.String(20), nullable=False, default=FORMAT_LEAGUE)
    tie_break = db.Column(db.String(20), nullable=False, default=TIE_BREAK_PENALTIES)
    seeding = db.Column(db.String(20), nullable=False, default=SEEDING_FIXED)
    draw_seed = db.Column(db.Integer)
    points_win = db.Column(db.Integer, default=3)
    points_draw = db.Column(db.Integer, default=1)
    points_loss = db.Column(db.Integer, default=0)
    status = db.Column(db.String(20), default='upcoming')  # upcoming, active, completed
    total_rounds = db.Column(db.Integer)
    champion_id = db.Column(db.String(20), db.ForeignKey('team.team_id'))
    created_at = db.Column(db.DateTime, default=current_time)
    updated_at = db.Column(db.DateTime, default=current_time, onupdate=current_time)

    tournament_teams = db.relationship(
        'TournamentTeam', backref='tournament', lazy=True, cascade='all, delete-orphan'
    )
    champion = db.relationship('Team', foreign_keys=[champion_id])

    def __repr__(self):  # pragma: no cover - debug helper
        return f"<Tournament {self.id} {self.name} format={self.format}>"

    @validates('name')
    def validate_name(self, key, value):
        if not value or len(value.strip()) < 2:
            raise ValidationError('Tournament name must be at least 2 characters')
        return value.strip()

    @validates('format')
    def validate_format(self, key, value):
        if value not in TOURNAMENT_FORMATS:
            raise ValidationError(f'Unknown tournament format: {value}')
        return value

    @validates('tie_break')
    def validate_tie_break(self, key, value):
        if value not in TIE_BREAK_POLICIES:
            raise ValidationError(f'Unknown tie-break policy: {value}')
        return value

    @validates('seeding')
    def validate_seeding(self, key, value):
        if value not in SEEDING_POLICIES:
            raise ValidationError(f'Unknown seeding policy: {value}')
        return value

    @property
    def is_league(self) -> bool:
        return self.format == FORMAT_LEAGUE

    @property
    def is_knockout(self) -> bool:
        return self.format == FORMAT_KNOCKOUT

    def points_for(self, result: str) -> int:
        if result == 'win':
            return self.points_win if self.points_win is not None else 3
        if result == 'draw':
            return self.points_draw if self.points_draw is not None else 1
        return self.points_loss or 0

    def mark_decided(self, champion_id: str | None) -> None:
        self.status = 'completed'
        self.champion_id = champion_id

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'format': self.format,
            'tie_break': self.tie_break,
            'seeding': self.seeding,
            'status': self.status,
            'total_rounds': self.total_rounds,
            'champion_id': self.champion_id,
            'participants': [
                assoc.team_id
                for assoc in sorted(self.tournament_teams, key=lambda assoc: assoc.seed or 0)
            ],
        }


class TournamentTeam(db.Model):
    """Roster entry: draw position and elimination status of a participant."""

    __tablename__ = 'tournament_team'

    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournament.id'), nullable=False)
    team_id = db.Column(db.String(20), db.ForeignKey('team.team_id'), nullable=False)
    seed = db.Column(db.Integer)
    status = db.Column(db.String(20), default='active')  # active, eliminated, champion
    status_updated_at = db.Column(db.DateTime, default=current_time)

    __table_args__ = (db.UniqueConstraint('tournament_id', 'team_id', name='unique_tournament_team'),)

    team = db.relationship('Team', back_populates='tournament_teams')

    def set_status(self, new_status: str):
        self.status = new_status
        self.status_updated_at = current_time()


class Match(db.Model):
    """A node of the match graph.

    Parent and child links are plain id references into the same table so a
    bracket is an arena keyed by id rather than a graph of live objects.
    """

    __tablename__ = 'match'

    id = db.Column(db.String(36), primary_key=True, default=new_match_id)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournament.id'), nullable=False)
    home_team_id = db.Column(db.String(20), db.ForeignKey('team.team_id'))
    away_team_id = db.Column(db.String(20), db.ForeignKey('team.team_id'))
    home_is_bye = db.Column(db.Boolean, nullable=False, default=False)
    away_is_bye = db.Column(db.Boolean, nullable=False, default=False)
    round_number = db.Column(db.Integer, nullable=False, default=1)
    round_position = db.Column(db.Integer, nullable=False, default=0)
    bracket_slot = db.Column(db.String(40))
    stage = db.Column(db.String(50))
    status = db.Column(db.String(20), nullable=False, default=MATCH_SCHEDULED)

    home_score = db.Column(db.Integer, nullable=False, default=0)
    away_score = db.Column(db.Integer, nullable=False, default=0)
    has_extra_time = db.Column(db.Boolean, nullable=False, default=False)
    home_extra_time_score = db.Column(db.Integer)
    away_extra_time_score = db.Column(db.Integer)
    has_penalties = db.Column(db.Boolean, nullable=False, default=False)
    home_penalty_score = db.Column(db.Integer)
    away_penalty_score = db.Column(db.Integer)
    winner_id = db.Column(db.String(20), db.ForeignKey('team.team_id'))
    decided_by = db.Column(db.String(20))

    parent_match_id = db.Column(
        db.String(36), db.ForeignKey('match.id', deferrable=True, initially='DEFERRED')
    )
    left_child_id = db.Column(
        db.String(36), db.ForeignKey('match.id', deferrable=True, initially='DEFERRED')
    )
    right_child_id = db.Column(
        db.String(36), db.ForeignKey('match.id', deferrable=True, initially='DEFERRED')
    )

    created_at = db.Column(db.DateTime, default=current_time)
    updated_at = db.Column(db.DateTime, default=current_time, onupdate=current_time)
    version_id = db.Column(db.Integer, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('tournament_id', 'bracket_slot', name='unique_bracket_slot'),
    )
    __mapper_args__ = {'version_id_col': version_id}

    def __repr__(self):  # pragma: no cover - debug helper
        return f"<Match {self.bracket_slot or self.id} {self.versus_display} status={self.status}>"

    @validates('status')
    def validate_status(self, key, value):
        if value not in MATCH_STATUSES:
            raise ValidationError(f'Unknown match status: {value}')
        return value

    @property
    def is_finished(self) -> bool:
        return self.status == MATCH_FINISHED

    @property
    def is_walkover(self) -> bool:
        return self.home_is_bye or self.away_is_bye

    @property
    def is_ready(self) -> bool:
        """Both slots hold a participant."""
        return bool(self.home_team_id and self.away_team_id)

    @property
    def versus_display(self):
        return f"{self._display_name('home')} vs {self._display_name('away')}"

    @property
    def loser_id(self) -> str | None:
        if not self.winner_id or self.is_walkover:
            return None
        return self.opponent_of(self.winner_id)

    def opponent_of(self, team_id):
        if not team_id:
            return None
        if self.home_team_id == team_id:
            return self.away_team_id
        if self.away_team_id == team_id:
            return self.home_team_id
        return None

    def slot_of_child(self, child_id: str) -> str | None:
        """Which of this match's slots the given child match feeds."""
        if child_id and self.left_child_id == child_id:
            return 'home'
        if child_id and self.right_child_id == child_id:
            return 'away'
        return None

    def record_result(self, scores, resolution) -> None:
        self.home_score = scores.home_score
        self.away_score = scores.away_score
        self.has_extra_time = scores.has_extra_time
        self.home_extra_time_score = scores.home_extra_time_score if scores.has_extra_time else None
        self.away_extra_time_score = scores.away_extra_time_score if scores.has_extra_time else None
        self.has_penalties = scores.has_penalties
        self.home_penalty_score = scores.home_penalty_score if scores.has_penalties else None
        self.away_penalty_score = scores.away_penalty_score if scores.has_penalties else None
        self.winner_id = resolution.winner_id
        self.decided_by = resolution.decided_by
        self.status = MATCH_FINISHED

    def record_walkover(self) -> None:
        self.winner_id = self.away_team_id if self.home_is_bye else self.home_team_id
        self.decided_by = DECIDED_BY_WALKOVER
        self.status = MATCH_FINISHED

    def has_same_result(self, scores) -> bool:
        return (
            self.home_score == scores.home_score
            and self.away_score == scores.away_score
            and bool(self.has_extra_time) == scores.has_extra_time
            and (self.home_extra_time_score or 0) == scores.home_extra_time_score
            and (self.away_extra_time_score or 0) == scores.away_extra_time_score
            and bool(self.has_penalties) == scores.has_penalties
            and (self.home_penalty_score or 0) == scores.home_penalty_score
            and (self.away_penalty_score or 0) == scores.away_penalty_score
        )

    def _display_name(self, side: str) -> str:
        team_id = self.home_team_id if side == 'home' else self.away_team_id
        is_bye = self.home_is_bye if side == 'home' else self.away_is_bye
        if team_id:
            return team_id
        if is_bye:
            return 'BYE'
        return 'TBD'

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'tournament_id': self.tournament_id,
            'round_number': self.round_number,
            'round_position': self.round_position,
            'bracket_slot': self.bracket_slot,
            'stage': self.stage,
            'status': self.status,
            'home_team_id': self.home_team_id,
            'away_team_id': self.away_team_id,
            'home_is_bye': self.home_is_bye,
            'away_is_bye': self.away_is_bye,
            'home_score': self.home_score,
            'away_score': self.away_score,
            'has_extra_time': self.has_extra_time,
            'home_extra_time_score': self.home_extra_time_score,
            'away_extra_time_score': self.away_extra_time_score,
            'has_penalties': self.has_penalties,
            'home_penalty_score': self.home_penalty_score,
            'away_penalty_score': self.away_penalty_score,
            'winner_id': self.winner_id,
            'decided_by': self.decided_by,
            'parent_match_id': self.parent_match_id,
            'left_child_id': self.left_child_id,
            'right_child_id': self.right_child_id,
        }


class Standing(db.Model):
    """Round-robin accumulator for one participant in one tournament."""

    __tablename__ = 'standing'

    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournament.id'), nullable=False)
    team_id = db.Column(db.String(20), db.ForeignKey('team.team_id'), nullable=False)
    played = db.Column(db.Integer, nullable=False, default=0)
    wins = db.Column(db.Integer, nullable=False, default=0)
    draws = db.Column(db.Integer, nullable=False, default=0)
    losses = db.Column(db.Integer, nullable=False, default=0)
    goals_for = db.Column(db.Integer, nullable=False, default=0)
    goals_against = db.Column(db.Integer, nullable=False, default=0)
    goal_difference = db.Column(db.Integer, nullable=False, default=0)
    points = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=current_time)
    updated_at = db.Column(db.DateTime, default=current_time, onupdate=current_time)
    version_id = db.Column(db.Integer, nullable=False)

    __table_args__ = (db.UniqueConstraint('tournament_id', 'team_id', name='unique_standing'),)
    __mapper_args__ = {'version_id_col': version_id}

    team = db.relationship('Team')

    def __repr__(self):  # pragma: no cover - debug helper
        return f"<Standing {self.tournament_id}:{self.team_id} pts={self.points}>"

    @classmethod
    def blank(cls, tournament_id: int, team_id: str) -> 'Standing':
        return cls(
            tournament_id=tournament_id,
            team_id=team_id,
            played=0,
            wins=0,
            draws=0,
            losses=0,
            goals_for=0,
            goals_against=0,
            goal_difference=0,
            points=0,
        )

    def record(self, goals_for: int, goals_against: int, result: str, points: int) -> None:
        self.played += 1
        self.goals_for += goals_for
        self.goals_against += goals_against
        self.goal_difference = self.goals_for - self.goals_against
        if result == 'win':
            self.wins += 1
        elif result == 'draw':
            self.draws += 1
        else:
            self.losses += 1
        self.points += points

    def to_dict(self) -> dict:
        return {
            'team_id': self.team_id,
            'played': self.played,
            'wins': self.wins,
            'draws': self.draws,
            'losses': self.losses,
            'goals_for': self.goals_for,
            'goals_against': self.goals_against,
            'goal_difference': self.goal_difference,
            'points': self.points,
        }

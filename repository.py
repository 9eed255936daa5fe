"""Persistence operations used by the engine, backed by Flask-SQLAlchemy.

Reads that precede a write take a row lock (``SELECT ... FOR UPDATE``) when
``lock=True``. Matches and standings also carry an optimistic version
counter, so a lost update surfaces as ``StaleDataError`` on backends that
ignore row locks.
"""

from contextlib import contextmanager

from models import (
    MATCH_FINISHED,
    Match,
    Standing,
    Team,
    Tournament,
    TournamentTeam,
    db,
)


@contextmanager
def unit_of_work():
    """Commit everything done inside the block, or nothing at all."""
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def _locked(query, lock: bool):
    if lock:
        return query.with_for_update().populate_existing()
    return query


# ---------------------------------------------------------------------------
# Tournaments and participants
# ---------------------------------------------------------------------------
def get_tournament(tournament_id: int, lock: bool = False) -> Tournament | None:
    query = Tournament.query.filter_by(id=tournament_id)
    return _locked(query, lock).first()


def add_tournament(tournament: Tournament) -> Tournament:
    db.session.add(tournament)
    db.session.flush()
    return tournament


def list_tournaments(status: str | None = None) -> list[Tournament]:
    query = Tournament.query
    if status:
        query = query.filter_by(status=status)
    return query.order_by(Tournament.id.asc()).all()


def get_teams(team_ids) -> dict[str, Team]:
    if not team_ids:
        return {}
    teams = Team.query.filter(Team.team_id.in_(list(team_ids))).all()
    return {team.team_id: team for team in teams}


def list_teams() -> list[Team]:
    return Team.query.order_by(Team.team_id.asc()).all()


def last_team() -> Team | None:
    return Team.query.order_by(Team.id.desc()).first()


def add_team(team: Team) -> Team:
    db.session.add(team)
    db.session.flush()
    return team


def register_participants(tournament_id: int, team_ids) -> list[TournamentTeam]:
    entries = [
        TournamentTeam(tournament_id=tournament_id, team_id=team_id, seed=index + 1, status='active')
        for index, team_id in enumerate(team_ids)
    ]
    db.session.add_all(entries)
    db.session.flush()
    return entries


def get_participant(tournament_id: int, team_id: str) -> TournamentTeam | None:
    return TournamentTeam.query.filter_by(tournament_id=tournament_id, team_id=team_id).first()


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------
def get_match(match_id: str, lock: bool = False) -> Match | None:
    query = Match.query.filter_by(id=match_id)
    return _locked(query, lock).first()


def find_match_by_slot(tournament_id: int, bracket_slot: str, lock: bool = False) -> Match | None:
    query = Match.query.filter_by(tournament_id=tournament_id, bracket_slot=bracket_slot)
    return _locked(query, lock).first()


def create_matches(matches: list[Match]) -> list[Match]:
    db.session.add_all(matches)
    db.session.flush()
    return matches


def update_match(match: Match) -> Match:
    """Flush a match's pending changes.

    A row that vanished or changed underneath us raises ``StaleDataError``
    from the version check rather than silently updating nothing.
    """
    db.session.add(match)
    db.session.flush()
    return match


def list_matches(tournament_id: int) -> list[Match]:
    return (
        Match.query.filter_by(tournament_id=tournament_id)
        .order_by(Match.round_number.asc(), Match.round_position.asc())
        .all()
    )


def has_matches(tournament_id: int) -> bool:
    return Match.query.filter_by(tournament_id=tournament_id).first() is not None


def count_unfinished_matches(tournament_id: int) -> int:
    return Match.query.filter(
        Match.tournament_id == tournament_id,
        Match.status != MATCH_FINISHED,
    ).count()


# ---------------------------------------------------------------------------
# Standings
# ---------------------------------------------------------------------------
def create_standings(tournament_id: int, team_ids) -> list[Standing]:
    rows = [Standing.blank(tournament_id, team_id) for team_id in team_ids]
    db.session.add_all(rows)
    db.session.flush()
    return rows


def get_standing(tournament_id: int, team_id: str, lock: bool = False) -> Standing | None:
    query = Standing.query.filter_by(tournament_id=tournament_id, team_id=team_id)
    return _locked(query, lock).first()


def update_standing(standing: Standing) -> Standing:
    db.session.add(standing)
    db.session.flush()
    return standing


def list_standings(tournament_id: int) -> list[Standing]:
    return (
        Standing.query.filter_by(tournament_id=tournament_id)
        .order_by(
            Standing.points.desc(),
            Standing.goal_difference.desc(),
            Standing.goals_for.desc(),
            Standing.team_id.asc(),
        )
        .all()
    )

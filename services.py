"""Operations exposed to request handlers and queue consumers.

Each public function is one unit of work: it either commits every change it
makes (matches, parent slots, roster, standings) or none of them.
"""

import logging
import random

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

import bracket
import progression
import repository
import standings
from errors import (
    BracketAlreadyBuiltError,
    BracketIntegrityError,
    BracketSlotTakenError,
    ConcurrencyConflictError,
    MatchNotFoundError,
    MatchNotReadyError,
    ParticipantNotFoundError,
    ResultAlreadyRecordedError,
    TieBreakPolicyError,
    TournamentNotFoundError,
    ValidationError,
)
from models import (
    MATCH_IN_PROGRESS,
    MATCH_SCHEDULED,
    SEEDING_FIXED,
    TIE_BREAK_EXTRA_TIME,
    TIE_BREAK_PENALTIES,
    Match,
    Standing,
    Team,
    Tournament,
)
from results import Outcome, ScoreInput, resolve_result

logger = logging.getLogger(__name__)

DEFAULT_SUBMIT_ATTEMPTS = 3
RETRYABLE_ERRORS = (StaleDataError, OperationalError, BracketSlotTakenError)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------
def _generate_team_id() -> str:
    """Generate next available team identifier in TM0001 format."""
    last = repository.last_team()
    if last and last.team_id and last.team_id.startswith('TM'):
        try:
            next_num = int(last.team_id[2:]) + 1
        except ValueError:
            next_num = Team.query.count() + 1
    else:
        next_num = Team.query.count() + 1
    return f"TM{next_num:04d}"


def register_team(name: str, team_id: str | None = None) -> Team:
    if team_id is not None and not isinstance(team_id, str):
        raise ValidationError('team_id must be a string')
    if name is not None and not isinstance(name, str):
        raise ValidationError('Team name must be a string')

    with repository.unit_of_work():
        team_id = (team_id or '').strip() or _generate_team_id()
        if repository.get_teams([team_id]):
            raise ValidationError(f'Team {team_id} is already registered')
        team = repository.add_team(Team(team_id=team_id, name=name))
    logger.info('Registered team %s (%s)', team.team_id, team.name)
    return team


def _require_participants(participant_ids) -> list[str]:
    participants = bracket.validate_participants(participant_ids)
    known = repository.get_teams(participants)
    missing = [pid for pid in participants if pid not in known]
    if missing:
        raise ParticipantNotFoundError(f"Unknown participants: {', '.join(missing)}")
    return participants


def create_tournament(
    name: str,
    tournament_format: str,
    participant_ids,
    tie_break: str = TIE_BREAK_PENALTIES,
    seeding: str = SEEDING_FIXED,
    draw_seed: int | None = None,
) -> Tournament:
    """Validate and store a tournament descriptor.

    The roster is checked here but matches are only generated by
    ``build_bracket``, normally in response to the tournament-created event.
    """
    if draw_seed is not None and (isinstance(draw_seed, bool) or not isinstance(draw_seed, int)):
        raise ValidationError('draw_seed must be an integer')

    with repository.unit_of_work():
        tournament = Tournament(
            name=name,
            format=tournament_format,
            tie_break=tie_break,
            seeding=seeding,
            draw_seed=draw_seed,
            status='upcoming',
        )
        _require_participants(participant_ids)
        repository.add_tournament(tournament)
    logger.info('Created %s tournament %s (%s)', tournament.format, tournament.id, tournament.name)
    return tournament


# ---------------------------------------------------------------------------
# Bracket generation
# ---------------------------------------------------------------------------
def build_bracket(tournament_id: int, participant_ids, rng: random.Random | None = None) -> list[Match]:
    """Generate and persist every initial match of a tournament, once."""
    with repository.unit_of_work():
        tournament = repository.get_tournament(tournament_id, lock=True)
        if tournament is None:
            raise TournamentNotFoundError(f'Tournament {tournament_id} not found')
        if repository.has_matches(tournament.id):
            raise BracketAlreadyBuiltError(f'Tournament {tournament_id} already has matches')

        participants = _require_participants(participant_ids)
        matches = bracket.build_matches(tournament, participants, rng=rng)

        repository.create_matches(matches)
        repository.register_participants(tournament.id, participants)
        if tournament.is_league:
            repository.create_standings(tournament.id, participants)
        else:
            tournament.total_rounds = bracket.count_rounds(len(participants))
            progression.resolve_walkovers(tournament, matches)
        if tournament.status == 'upcoming':
            tournament.status = 'active'

    logger.info(
        'Built %s bracket for tournament %s: %d participants, %d matches',
        tournament.format,
        tournament_id,
        len(participants),
        len(matches),
    )
    return repository.list_matches(tournament_id)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
def start_match(match_id: str) -> Match:
    with repository.unit_of_work():
        match = repository.get_match(match_id, lock=True)
        if match is None:
            raise MatchNotFoundError(f'Match {match_id} not found')
        if match.status != MATCH_SCHEDULED:
            raise MatchNotReadyError(f'Match {match_id} is {match.status}, not scheduled')
        if not match.is_ready:
            raise MatchNotReadyError(f'Match {match_id} is still waiting for a participant')
        match.status = MATCH_IN_PROGRESS
        repository.update_match(match)
    return match


def submit_result(match_id: str, scores: ScoreInput) -> Match:
    """Record a match result and run its propagation as one transaction.

    Write conflicts on the match, its parent or its standings are retried
    from scratch; when every attempt conflicts the caller gets a transient
    ``ConcurrencyConflictError``.
    """
    attempts = current_app.config.get('RESULT_SUBMIT_ATTEMPTS', DEFAULT_SUBMIT_ATTEMPTS)
    last_error = None
    for attempt in range(1, attempts + 1):
        try:
            return _submit_result_once(match_id, scores)
        except RETRYABLE_ERRORS as exc:
            last_error = exc
            logger.warning(
                'Conflict recording result for match %s (attempt %d/%d): %s',
                match_id,
                attempt,
                attempts,
                exc,
            )
    raise ConcurrencyConflictError(
        f'Could not record result for match {match_id} after {attempts} attempts'
    ) from last_error


def _check_tie_break_policy(tournament: Tournament, scores: ScoreInput) -> None:
    if scores.has_penalties and tournament.tie_break == TIE_BREAK_EXTRA_TIME:
        raise TieBreakPolicyError(
            f'Tournament {tournament.id} is decided by extra time; penalties are not allowed'
        )


def _submit_result_once(match_id: str, scores: ScoreInput) -> Match:
    with repository.unit_of_work():
        match = repository.get_match(match_id, lock=True)
        if match is None:
            raise MatchNotFoundError(f'Match {match_id} not found')

        if match.is_finished:
            if match.decided_by != 'walkover' and match.has_same_result(scores):
                logger.info('Duplicate result for match %s ignored', match_id)
                return match
            raise ResultAlreadyRecordedError(f'Result already recorded for match {match_id}')

        if not match.is_ready:
            raise MatchNotReadyError(f'Match {match_id} is still waiting for a participant')

        tournament = repository.get_tournament(match.tournament_id)
        if tournament is None:
            raise BracketIntegrityError(f'Match {match_id} belongs to a missing tournament')
        if tournament.is_league:
            # the completion count below must see every other finished match
            tournament = repository.get_tournament(tournament.id, lock=True)

        _check_tie_break_policy(tournament, scores)
        resolution = resolve_result(match, scores)

        # a level league match is a draw; a tied shoot-out is never acceptable
        if tournament.is_knockout or resolution.outcome is Outcome.UNRESOLVED_TIEBREAK:
            resolution.require_winner()

        match.record_result(scores, resolution)
        repository.update_match(match)

        if tournament.is_knockout:
            progression.advance_winner(tournament, match)
        else:
            standings.apply_result(tournament, match, resolution)
            if repository.count_unfinished_matches(tournament.id) == 0:
                tournament.mark_decided(None)
                logger.info('League tournament %s completed', tournament.id)

    logger.info('Recorded %s for match %s', match.decided_by or 'draw', match_id)
    return match


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_tournament(tournament_id: int) -> Tournament:
    tournament = repository.get_tournament(tournament_id)
    if tournament is None:
        raise TournamentNotFoundError(f'Tournament {tournament_id} not found')
    return tournament


def get_match(match_id: str) -> Match:
    match = repository.get_match(match_id)
    if match is None:
        raise MatchNotFoundError(f'Match {match_id} not found')
    return match


def list_teams() -> list[Team]:
    return repository.list_teams()


def list_tournaments(status: str | None = None) -> list[Tournament]:
    return repository.list_tournaments(status)


def list_matches(tournament_id: int) -> list[Match]:
    get_tournament(tournament_id)
    return repository.list_matches(tournament_id)


def get_standings(tournament_id: int) -> list[Standing]:
    return standings.league_table(get_tournament(tournament_id))

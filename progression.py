"""Knockout progression: moving winners up the bracket.

Each call handles exactly one step of the cascade (a match into its parent)
and runs inside the caller's unit of work.
"""

import logging

from sqlalchemy.exc import IntegrityError

import repository
from bracket import attach_child, new_bracket_match, slot_code
from errors import BracketIntegrityError, BracketSlotTakenError
from models import SEEDING_RANDOM_DRAW, Match, Tournament

logger = logging.getLogger(__name__)


def advance_winner(tournament: Tournament, match: Match) -> Match | None:
    """Write a finished match's winner into the parent slot it feeds.

    Returns the updated parent, or ``None`` when the match was the final.
    """
    if not match.is_finished or not match.winner_id:
        raise BracketIntegrityError(f'Match {match.id} has no winner to propagate')

    _update_roster(tournament, match)

    if match.parent_match_id:
        parent = repository.get_match(match.parent_match_id, lock=True)
        if parent is None:
            raise BracketIntegrityError(
                f'Match {match.id} points at parent {match.parent_match_id}, which does not exist'
            )
    elif match.round_number >= (tournament.total_rounds or 0):
        _decide_tournament(tournament, match)
        return None
    elif tournament.seeding == SEEDING_RANDOM_DRAW:
        parent = _materialize_parent(tournament, match)
    else:
        raise BracketIntegrityError(
            f'Match {match.id} in round {match.round_number} has no parent below the final'
        )

    side = _check_parent(parent, match)
    _fill_slot(parent, side, match.winner_id)
    repository.update_match(parent)
    logger.info(
        'Propagated winner %s of %s into %s (%s slot)',
        match.winner_id,
        match.bracket_slot,
        parent.bracket_slot,
        side,
    )
    return parent


def resolve_walkovers(tournament: Tournament, matches: list[Match]) -> list[Match]:
    """Finish every one-sided first-round match and push its participant on."""
    resolved = []
    for match in matches:
        if not match.is_walkover or match.is_finished:
            continue
        match.record_walkover()
        repository.update_match(match)
        logger.info('Walkover for %s in %s', match.winner_id, match.bracket_slot)
        advance_winner(tournament, match)
        resolved.append(match)
    return resolved


def _check_parent(parent: Match, child: Match) -> str:
    side = parent.slot_of_child(child.id)
    if side is None:
        raise BracketIntegrityError(f'Match {child.id} is not a child of match {parent.id}')
    if parent.tournament_id != child.tournament_id:
        raise BracketIntegrityError(f'Match {parent.id} belongs to another tournament')
    if parent.round_number != child.round_number + 1:
        raise BracketIntegrityError(
            f'Match {parent.id} is in round {parent.round_number}, '
            f'expected {child.round_number + 1}'
        )
    if parent.is_finished:
        raise BracketIntegrityError(f'Parent match {parent.id} is already finished')
    return side


def _fill_slot(parent: Match, side: str, winner_id: str) -> None:
    current = parent.home_team_id if side == 'home' else parent.away_team_id
    if current == winner_id:
        return
    if current is not None:
        raise BracketIntegrityError(
            f'{side.title()} slot of match {parent.id} already holds {current}'
        )
    if side == 'home':
        parent.home_team_id = winner_id
    else:
        parent.away_team_id = winner_id


def _materialize_parent(tournament: Tournament, match: Match) -> Match:
    """Find or create the next-round match of a random-draw bracket.

    Concurrent creators collide on the unique bracket slot; the loser of that
    race is retried by the caller and then finds the existing row.
    """
    round_number = match.round_number + 1
    position = match.round_position // 2
    bracket_slot = slot_code(round_number, position)
    parent = repository.find_match_by_slot(tournament.id, bracket_slot, lock=True)
    if parent is None:
        parent = new_bracket_match(tournament.id, round_number, position, tournament.total_rounds)
        try:
            repository.create_matches([parent])
        except IntegrityError as exc:
            raise BracketSlotTakenError(
                f"{bracket_slot} of tournament {tournament.id} was created concurrently"
            ) from exc
        logger.info('Materialised %s for tournament %s', parent.bracket_slot, tournament.id)

    linked = parent.left_child_id if match.round_position % 2 == 0 else parent.right_child_id
    if linked not in (None, match.id):
        raise BracketIntegrityError(f'Match {parent.id} already has child {linked} in that position')
    attach_child(parent, match)
    repository.update_match(match)

    sibling = repository.find_match_by_slot(
        tournament.id,
        slot_code(match.round_number, match.round_position ^ 1),
        lock=True,
    )
    if sibling is not None and sibling.parent_match_id is None:
        attach_child(parent, sibling)
        repository.update_match(sibling)
    elif sibling is not None and sibling.parent_match_id != parent.id:
        raise BracketIntegrityError(f'Sibling {sibling.id} is linked to another parent')

    repository.update_match(parent)
    return parent


def _update_roster(tournament: Tournament, match: Match) -> None:
    loser_id = match.loser_id
    if not loser_id:
        return
    entry = repository.get_participant(tournament.id, loser_id)
    if entry is not None:
        entry.set_status('eliminated')


def _decide_tournament(tournament: Tournament, final: Match) -> None:
    tournament.mark_decided(final.winner_id)
    entry = repository.get_participant(tournament.id, final.winner_id)
    if entry is not None:
        entry.set_status('champion')
    logger.info('Tournament %s decided: champion %s', tournament.id, final.winner_id)

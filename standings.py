"""League table maintenance for round-robin tournaments."""

import logging

import repository
from errors import BracketIntegrityError
from models import Match, Standing, Tournament
from results import Resolution

logger = logging.getLogger(__name__)


def apply_result(tournament: Tournament, match: Match, resolution: Resolution) -> list[Standing]:
    """Fold one finished match into both participants' rows.

    Must only be called on the match's transition to finished; the rows are
    accumulators and are never re-derived.
    """
    updated = []
    for side in ('home', 'away'):
        team_id = match.home_team_id if side == 'home' else match.away_team_id
        standing = repository.get_standing(tournament.id, team_id, lock=True)
        if standing is None:
            raise BracketIntegrityError(
                f'No standing for {team_id} in tournament {tournament.id}'
            )

        if side == 'home':
            goals_for, goals_against = resolution.home_goals, resolution.away_goals
        else:
            goals_for, goals_against = resolution.away_goals, resolution.home_goals

        result = resolution.result_for(side)
        standing.record(goals_for, goals_against, result, tournament.points_for(result))
        repository.update_standing(standing)
        updated.append(standing)

    logger.info(
        'Standings updated for tournament %s after %s (%s-%s)',
        tournament.id,
        match.versus_display,
        resolution.home_goals,
        resolution.away_goals,
    )
    return updated


def league_table(tournament: Tournament) -> list[Standing]:
    if not tournament.is_league:
        return []
    return repository.list_standings(tournament.id)

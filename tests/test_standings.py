import pytest

import repository
import services
from errors import UnresolvedTiebreakError
from results import ScoreInput


def _fixture(tournament_id, home, away):
    for match in services.list_matches(tournament_id):
        if (match.home_team_id, match.away_team_id) == (home, away):
            return match
    raise AssertionError(f'No fixture {home} vs {away}')


def _row(tournament_id, team_id):
    return repository.get_standing(tournament_id, team_id)


class TestLeagueStandings:

    def test_build_creates_blank_rows(self, make_tournament):
        tournament_id = make_tournament('league', ['T1', 'T2', 'T3', 'T4'])

        table = services.get_standings(tournament_id)
        assert [row.team_id for row in table] == ['T1', 'T2', 'T3', 'T4']
        assert all(row.played == 0 and row.points == 0 for row in table)

    def test_draw_updates_both_sides(self, make_tournament):
        tournament_id = make_tournament('league', ['T1', 'T2', 'T3'])

        match = services.submit_result(_fixture(tournament_id, 'T1', 'T2').id, ScoreInput(2, 2))

        assert match.winner_id is None
        assert match.status == 'finished'
        for team_id in ('T1', 'T2'):
            row = _row(tournament_id, team_id)
            assert (row.played, row.draws, row.points) == (1, 1, 1)
            assert (row.goals_for, row.goals_against, row.goal_difference) == (2, 2, 0)
        assert _row(tournament_id, 'T3').played == 0

    def test_win_and_loss_points(self, make_tournament):
        tournament_id = make_tournament('league', ['T1', 'T2', 'T3'])

        services.submit_result(_fixture(tournament_id, 'T1', 'T2').id, ScoreInput(0, 3))

        winner, loser = _row(tournament_id, 'T2'), _row(tournament_id, 'T1')
        assert (winner.wins, winner.points, winner.goal_difference) == (1, 3, 3)
        assert (loser.losses, loser.points, loser.goal_difference) == (1, 0, -3)

    def test_goal_difference_accumulates(self, make_tournament):
        tournament_id = make_tournament('league', ['T1', 'T2', 'T3'])

        services.submit_result(_fixture(tournament_id, 'T1', 'T2').id, ScoreInput(2, 2))
        services.submit_result(_fixture(tournament_id, 'T1', 'T3').id, ScoreInput(4, 1))

        row = _row(tournament_id, 'T1')
        assert (row.played, row.wins, row.draws) == (2, 1, 1)
        assert (row.goals_for, row.goals_against, row.goal_difference) == (6, 3, 3)
        assert row.points == 4

    def test_extra_time_goals_count(self, make_tournament):
        tournament_id = make_tournament('league', ['T1', 'T2'])
        scores = ScoreInput(1, 1, has_extra_time=True, home_extra_time_score=0, away_extra_time_score=1)

        services.submit_result(_fixture(tournament_id, 'T1', 'T2').id, scores)

        assert _row(tournament_id, 'T2').goals_for == 2
        assert _row(tournament_id, 'T2').wins == 1

    def test_shootout_counts_as_draw_in_table(self, make_tournament):
        tournament_id = make_tournament('league', ['T1', 'T2'])
        scores = ScoreInput(1, 1, has_penalties=True, home_penalty_score=4, away_penalty_score=3)

        match = services.submit_result(_fixture(tournament_id, 'T1', 'T2').id, scores)

        assert match.decided_by == 'penalties'
        for team_id in ('T1', 'T2'):
            row = _row(tournament_id, team_id)
            assert (row.wins, row.draws, row.losses, row.points) == (0, 1, 0, 1)
            assert row.goal_difference == 0

    def test_tied_shootout_is_not_a_draw(self, make_tournament):
        tournament_id = make_tournament('league', ['T1', 'T2'])
        scores = ScoreInput(0, 0, has_penalties=True, home_penalty_score=2, away_penalty_score=2)

        with pytest.raises(UnresolvedTiebreakError):
            services.submit_result(_fixture(tournament_id, 'T1', 'T2').id, scores)
        assert _row(tournament_id, 'T1').played == 0

    def test_duplicate_submission_counts_once(self, make_tournament):
        tournament_id = make_tournament('league', ['T1', 'T2', 'T3'])
        match_id = _fixture(tournament_id, 'T1', 'T2').id

        services.submit_result(match_id, ScoreInput(1, 0))
        services.submit_result(match_id, ScoreInput(1, 0))

        assert _row(tournament_id, 'T1').played == 1
        assert _row(tournament_id, 'T1').points == 3

    def test_table_ordering(self, make_tournament):
        tournament_id = make_tournament('league', ['T1', 'T2', 'T3', 'T4'])

        services.submit_result(_fixture(tournament_id, 'T1', 'T2').id, ScoreInput(0, 1))
        services.submit_result(_fixture(tournament_id, 'T3', 'T4').id, ScoreInput(3, 0))
        services.submit_result(_fixture(tournament_id, 'T1', 'T3').id, ScoreInput(1, 1))

        table = [row.team_id for row in services.get_standings(tournament_id)]
        assert table == ['T3', 'T2', 'T1', 'T4']

    def test_level_points_fall_back_to_goal_difference(self, make_tournament):
        tournament_id = make_tournament('league', ['T1', 'T2', 'T3'])

        services.submit_result(_fixture(tournament_id, 'T1', 'T2').id, ScoreInput(1, 0))
        services.submit_result(_fixture(tournament_id, 'T2', 'T3').id, ScoreInput(0, 4))

        table = [row.team_id for row in services.get_standings(tournament_id)]
        assert table == ['T3', 'T1', 'T2']

    def test_league_completes_without_champion(self, make_tournament):
        tournament_id = make_tournament('league', ['T1', 'T2', 'T3'])

        for match in services.list_matches(tournament_id):
            services.submit_result(match.id, ScoreInput(1, 1))

        tournament = services.get_tournament(tournament_id)
        assert tournament.status == 'completed'
        assert tournament.champion_id is None
        assert all(row.points == 2 for row in services.get_standings(tournament_id))

    def test_knockout_has_no_table(self, make_tournament):
        tournament_id = make_tournament('knockout', ['A', 'B'])
        assert services.get_standings(tournament_id) == []

import random

import pytest

from app import create_app
from models import db
import services


@pytest.fixture
def flask_app():
    """Create test application with in-memory SQLite database"""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_ENGINE_OPTIONS': {},
        'SECRET_KEY': 'test-secret-key',
        'LOG_LEVEL': 'WARNING',
        'RESULT_SUBMIT_ATTEMPTS': 3,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(flask_app):
    """Test client"""
    return flask_app.test_client()


@pytest.fixture
def make_teams(flask_app):
    """Register teams with the given identifiers and return the identifiers"""
    def _make(*team_ids):
        for team_id in team_ids:
            services.register_team(f'Team {team_id}', team_id=team_id)
        return list(team_ids)
    return _make


@pytest.fixture
def make_tournament(flask_app, make_teams):
    """Create a tournament over freshly registered teams and build its bracket"""
    def _make(tournament_format, team_ids, seeding='fixed', tie_break='penalties', draw_seed=None, rng=None):
        make_teams(*team_ids)
        tournament = services.create_tournament(
            f'{tournament_format.title()} Cup',
            tournament_format,
            team_ids,
            tie_break=tie_break,
            seeding=seeding,
            draw_seed=draw_seed,
        )
        services.build_bracket(tournament.id, team_ids, rng=rng)
        return tournament.id
    return _make


@pytest.fixture
def seeded_rng():
    return random.Random(20240601)

"""JSON routes over the tournament services."""

import logging

from flask import Blueprint, jsonify, request

import events
import services
from errors import BracketIntegrityError, TournamentEngineError, ValidationError
from models import SEEDING_FIXED, TIE_BREAK_PENALTIES
from results import ScoreInput

logger = logging.getLogger(__name__)

api_bp = Blueprint('api', __name__, url_prefix='/api')


@api_bp.errorhandler(TournamentEngineError)
def handle_engine_error(error: TournamentEngineError):
    if isinstance(error, BracketIntegrityError):
        logger.error('Bracket integrity failure: %s', error.message)
        return jsonify({'error': 'Internal bracket error', 'kind': error.kind}), error.status_code

    body = {'error': error.message, 'kind': error.kind}
    outcome = getattr(error, 'outcome', None)
    if outcome is not None:
        body['outcome'] = outcome.value
    return jsonify(body), error.status_code


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError('Request body must be a JSON object')
    return payload


@api_bp.route('/teams', methods=['GET'])
def list_teams():
    return jsonify([team.to_dict() for team in services.list_teams()])


@api_bp.route('/teams', methods=['POST'])
def register_team():
    payload = _json_body()
    team = services.register_team(payload.get('name'), team_id=payload.get('team_id'))
    return jsonify(team.to_dict()), 201


@api_bp.route('/tournaments', methods=['GET'])
def list_tournaments():
    tournaments = services.list_tournaments(request.args.get('status'))
    return jsonify([tournament.to_dict() for tournament in tournaments])


@api_bp.route('/tournaments', methods=['POST'])
def create_tournament():
    """Create a tournament and hand it to the bracket builder."""
    payload = _json_body()
    participant_ids = payload.get('participant_ids') or []
    tournament = services.create_tournament(
        payload.get('name'),
        payload.get('format'),
        participant_ids,
        tie_break=payload.get('tie_break', TIE_BREAK_PENALTIES),
        seeding=payload.get('seeding', SEEDING_FIXED),
        draw_seed=payload.get('draw_seed'),
    )

    message = events.TournamentCreatedMessage(tournament.id, list(participant_ids))
    ack = events.handle_tournament_created(message.to_json())

    body = services.get_tournament(tournament.id).to_dict()
    body['bracket'] = ack
    return jsonify(body), 201


@api_bp.route('/tournaments/<int:tournament_id>')
def tournament_detail(tournament_id: int):
    return jsonify(services.get_tournament(tournament_id).to_dict())


@api_bp.route('/tournaments/<int:tournament_id>/matches')
def tournament_matches(tournament_id: int):
    matches = services.list_matches(tournament_id)
    return jsonify([match.to_dict() for match in matches])


@api_bp.route('/tournaments/<int:tournament_id>/standings')
def tournament_standings(tournament_id: int):
    table = services.get_standings(tournament_id)
    return jsonify([row.to_dict() for row in table])


@api_bp.route('/matches/<match_id>')
def match_detail(match_id: str):
    return jsonify(services.get_match(match_id).to_dict())


@api_bp.route('/matches/<match_id>/start', methods=['POST'])
def start_match(match_id: str):
    return jsonify(services.start_match(match_id).to_dict())


@api_bp.route('/matches/<match_id>/result', methods=['POST'])
def submit_result(match_id: str):
    scores = ScoreInput.from_payload(_json_body())
    match = services.submit_result(match_id, scores)
    return jsonify(match.to_dict())

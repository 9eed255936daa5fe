"""Tournament-created events and their consumer.

The broker itself is out of scope; a transport hands the raw message body to
``handle_tournament_created`` and acts on the returned acknowledgement.
"""

from dataclasses import asdict, dataclass, field
import json
import logging

from sqlalchemy.exc import SQLAlchemyError

import services
from errors import ConcurrencyConflictError, TournamentEngineError

logger = logging.getLogger(__name__)

ACK = 'ack'
REJECT = 'reject'
REQUEUE = 'requeue'


@dataclass
class TournamentCreatedMessage:
    tournament_id: int
    participant_ids: list[str] = field(default_factory=list)

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, body) -> 'TournamentCreatedMessage':
        if isinstance(body, (bytes, bytearray)):
            body = body.decode('utf-8')
        try:
            payload = json.loads(body)
        except (TypeError, json.JSONDecodeError) as exc:
            raise ValueError(f'Message body is not valid JSON: {exc}') from exc

        if not isinstance(payload, dict):
            raise ValueError('Message body must be a JSON object')
        tournament_id = payload.get('tournament_id')
        participant_ids = payload.get('participant_ids')
        if isinstance(tournament_id, bool) or not isinstance(tournament_id, int):
            raise ValueError('tournament_id must be an integer')
        if not isinstance(participant_ids, list):
            raise ValueError('participant_ids must be a list')
        return cls(tournament_id=tournament_id, participant_ids=participant_ids)


def handle_tournament_created(body) -> str:
    """Build the bracket for a freshly created tournament.

    Returns ``ack`` on success, ``reject`` for messages that can never
    succeed, and ``requeue`` for transient failures.
    """
    try:
        message = TournamentCreatedMessage.from_json(body)
    except ValueError as exc:
        logger.error('Dropping malformed tournament-created message: %s', exc)
        return REJECT

    try:
        services.build_bracket(message.tournament_id, message.participant_ids)
    except ConcurrencyConflictError as exc:
        logger.warning('Bracket build for tournament %s conflicted: %s', message.tournament_id, exc)
        return REQUEUE
    except TournamentEngineError as exc:
        logger.error('Bracket build for tournament %s rejected: %s', message.tournament_id, exc)
        return REJECT
    except SQLAlchemyError:
        logger.exception('Bracket build for tournament %s failed', message.tournament_id)
        return REQUEUE
    return ACK

"""Error hierarchy shared by the bracket engine, the services and the API."""


class TournamentEngineError(Exception):
    """Base exception for every tournament engine failure."""

    status_code: int = 500
    kind: str = 'error'

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        if status_code:
            self.status_code = status_code
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------
class ValidationError(TournamentEngineError, ValueError):
    """Malformed tournament or match input. Correctable by the caller."""

    status_code = 400
    kind = 'validation'


class InsufficientParticipantsError(ValidationError):
    pass


class DuplicateParticipantError(ValidationError):
    pass


class TieBreakPolicyError(ValidationError):
    """Submitted tie-break data is not allowed by the tournament."""


class BracketAlreadyBuiltError(ValidationError):
    status_code = 409


class MatchNotReadyError(ValidationError):
    """Match still waits for a participant or is otherwise not playable."""

    status_code = 409


class ResultAlreadyRecordedError(ValidationError):
    status_code = 409


# ---------------------------------------------------------------------------
# Referential
# ---------------------------------------------------------------------------
class NotFoundError(TournamentEngineError):
    status_code = 404
    kind = 'not_found'


class TournamentNotFoundError(NotFoundError):
    pass


class MatchNotFoundError(NotFoundError):
    pass


class ParticipantNotFoundError(NotFoundError):
    pass


# ---------------------------------------------------------------------------
# Unresolved outcome
# ---------------------------------------------------------------------------
class UnresolvedOutcomeError(TournamentEngineError):
    """A result that cannot produce the winner the tournament requires.

    ``outcome`` holds the resolver category so callers can ask for the
    missing score data instead of guessing a winner.
    """

    status_code = 422
    kind = 'unresolved_outcome'

    def __init__(self, message: str, outcome=None):
        super().__init__(message)
        self.outcome = outcome


class DecisiveResultRequiredError(UnresolvedOutcomeError):
    pass


class UnresolvedTiebreakError(UnresolvedOutcomeError):
    pass


# ---------------------------------------------------------------------------
# Concurrency and structure
# ---------------------------------------------------------------------------
class ConcurrencyConflictError(TournamentEngineError):
    """Write conflict that survived every retry. Safe to resubmit."""

    status_code = 503
    kind = 'conflict'
    retryable = True


class BracketSlotTakenError(ConcurrencyConflictError):
    """Another transaction created the same next-round match first."""


class BracketIntegrityError(TournamentEngineError):
    """Stored bracket contradicts its own structure; never repaired in place."""

    status_code = 500
    kind = 'integrity'

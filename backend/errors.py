"""Matchmaking error taxonomy.

Every error carries a stable machine-readable ``kind``, a human message and a
``context`` dict (match id, court number, offending player) so the host UI can
re-render actionable state.
"""


class MatchmakingError(Exception):
    status_code = 500
    default_kind = 'matchmaking_error'

    def __init__(self, message, kind=None, context=None, status_code=None):
        super().__init__(message)
        self.message = message
        self.kind = kind or self.default_kind
        self.context = dict(context or {})
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        data = {
            'status': 'error',
            'kind': self.kind,
            'message': self.message,
        }
        if self.context:
            data['context'] = self.context
        return data


class ValidationError(MatchmakingError):
    """Malformed or out-of-range input."""
    status_code = 422
    default_kind = 'validation_error'


class AuthorizationError(MatchmakingError):
    """Caller is not the event host or an admin."""
    status_code = 403
    default_kind = 'forbidden'


class StateConflictError(MatchmakingError):
    """Court in use, player already booked or an illegal lifecycle transition.

    Always recoverable by retrying with different input.
    """
    status_code = 409
    default_kind = 'state_conflict'

    _STATUS_BY_KIND = {
        'court_in_use': 400,
        'invalid_transition': 422,
        'player_not_in_match': 422,
    }

    def __init__(self, message, kind=None, context=None, status_code=None):
        if status_code is None:
            status_code = self._STATUS_BY_KIND.get(kind)
        super().__init__(message, kind=kind, context=context, status_code=status_code)


class NotFoundError(MatchmakingError):
    status_code = 404
    default_kind = 'not_found'


class InsufficientDataError(MatchmakingError):
    """Too few eligible participants to pair. A normal outcome, not a fault."""
    status_code = 422
    default_kind = 'insufficient_participants'


def court_in_use(court_number, match_id=None, held_by_match_id=None):
    return StateConflictError(
        f'Court {court_number} is currently in use',
        kind='court_in_use',
        context={
            'court_number': court_number,
            'match_id': match_id,
            'held_by_match_id': held_by_match_id,
        },
    )


def invalid_transition(match_id, current_status, target_status):
    return StateConflictError(
        f'Match {match_id} cannot move from {current_status} to {target_status}',
        kind='invalid_transition',
        context={
            'match_id': match_id,
            'current_status': current_status,
            'target_status': target_status,
        },
    )

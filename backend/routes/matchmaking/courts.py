"""Court routes: assignment, revocation, occupancy and next-round suggestions."""
from flask import request
from backend.auth_utils import host_required
from backend.routes.matchmaking import matchmaking_bp
from backend.routes.matchmaking.helpers import (
    _default_rating, _durations, _emit_matchmaking_update, _event_defaults, _json_body,
    _success, parse_assign_court,
)
from backend.services import court_registry, match_lifecycle, pairing
from backend.services.participant_pool import waiting_players


@matchmaking_bp.route('/<int:event_id>/assign-court', methods=['POST'])
@host_required
def assign_court(event_id):
    event = request.current_event
    params = parse_assign_court(_json_body())
    match = match_lifecycle.assign_court(
        event, params.match_id, params.court_number, request.current_user,
    )
    _emit_matchmaking_update(event_id, reason='court_assigned')
    return _success({'match': match.to_dict()})


@matchmaking_bp.route('/<int:event_id>/revoke-court/<int:match_id>', methods=['POST'])
@host_required
def revoke_court(event_id, match_id):
    match = match_lifecycle.revoke_court(request.current_event, match_id, request.current_user)
    _emit_matchmaking_update(event_id, reason='court_revoked')
    return _success({'match': match.to_dict()})


@matchmaking_bp.route('/<int:event_id>/court-status', methods=['GET'])
@host_required
def court_status(event_id):
    event = request.current_event
    waiting = waiting_players(event, default_rating=_default_rating())
    return _success(court_registry.court_status(event, waiting=waiting))


@matchmaking_bp.route('/<int:event_id>/suggestions', methods=['GET'])
@host_required
def suggestions(event_id):
    """Read-only pairings of waiting players onto the courts free right now."""
    event = request.current_event
    defaults = _event_defaults(event)
    free = court_registry.free_courts(event)
    waiting = waiting_players(event, default_rating=_default_rating())
    suggested = pairing.suggest_next_round(
        waiting, free, defaults.match_type, defaults.skill_tolerance, durations=_durations(),
    )
    return _success({
        'free_courts': free,
        'suggestions': [proposal.to_dict() for proposal in suggested],
        'waiting_count': len(waiting),
    })

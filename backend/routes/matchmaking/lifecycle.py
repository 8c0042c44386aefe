"""Match lifecycle routes: start, end and cancel."""
from flask import request
from backend.auth_utils import host_required
from backend.routes.matchmaking import matchmaking_bp
from backend.routes.matchmaking.helpers import _emit_matchmaking_update, _json_body, _success
from backend.services import match_lifecycle


@matchmaking_bp.route('/<int:event_id>/start-match/<int:match_id>', methods=['POST'])
@host_required
def start_match(event_id, match_id):
    match = match_lifecycle.start_match(request.current_event, match_id, request.current_user)
    _emit_matchmaking_update(event_id, reason='match_started')
    return _success({'match': match.to_dict()})


@matchmaking_bp.route('/<int:event_id>/end-match/<int:match_id>', methods=['POST'])
@host_required
def end_match(event_id, match_id):
    match = match_lifecycle.end_match(request.current_event, match_id, request.current_user)
    _emit_matchmaking_update(event_id, reason='match_completed')
    return _success({'match': match.to_dict()})


@matchmaking_bp.route('/<int:event_id>/cancel-match/<int:match_id>', methods=['POST'])
@host_required
def cancel_match(event_id, match_id):
    reason = str(_json_body().get('reason') or '').strip()
    match = match_lifecycle.cancel_match(
        request.current_event, match_id, request.current_user, reason=reason,
    )
    _emit_matchmaking_update(event_id, reason='match_cancelled')
    return _success({'match': match.to_dict()})

"""Host override routes: replace a player, hand-build a match, lock a match."""
from flask import request
from backend.auth_utils import host_required
from backend.errors import ValidationError
from backend.routes.matchmaking import matchmaking_bp
from backend.routes.matchmaking.helpers import (
    _coerce_bool, _default_rating, _durations, _emit_matchmaking_update, _json_body,
    _success, parse_override_match, parse_override_player,
)
from backend.services import overrides as override_service


@matchmaking_bp.route('/<int:event_id>/override-player', methods=['POST'])
@host_required
def override_player(event_id):
    params = parse_override_player(_json_body())
    match = override_service.override_player(
        request.current_event,
        params.match_id,
        params.player_to_replace,
        params.replacement,
        request.current_user,
        default_rating=_default_rating(),
    )
    _emit_matchmaking_update(event_id, reason='player_overridden')
    return _success({'match': match.to_dict()})


@matchmaking_bp.route('/<int:event_id>/override-match', methods=['POST'])
@host_required
def override_match(event_id):
    params = parse_override_match(_json_body())
    match = override_service.create_override_match(
        request.current_event,
        params.player1,
        params.player2,
        request.current_user,
        court_number=params.court_number,
        durations=_durations(),
        default_rating=_default_rating(),
    )
    _emit_matchmaking_update(event_id, reason='match_overridden')
    return _success({'match': match.to_dict()}, 201)


@matchmaking_bp.route('/<int:event_id>/lock/<int:match_id>', methods=['POST'])
@host_required
def lock_match(event_id, match_id):
    data = _json_body()
    if 'locked' not in data:
        raise ValidationError('locked is required', kind='validation_error')
    match = override_service.set_match_lock(
        request.current_event, match_id, _coerce_bool(data['locked']), request.current_user,
    )
    _emit_matchmaking_update(event_id, reason='match_locked' if match.is_locked else 'match_unlocked')
    return _success({'match': match.to_dict()})

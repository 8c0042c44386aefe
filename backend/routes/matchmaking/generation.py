"""Pairing routes: generate, preview and host-saved lineups."""
from flask import request
from backend.auth_utils import host_required
from backend.routes.matchmaking import matchmaking_bp
from backend.routes.matchmaking.helpers import (
    _default_rating, _durations, _emit_matchmaking_update, _event_defaults, _json_body,
    _success, parse_generate_request, parse_save_entries,
)
from backend.services import match_lifecycle
from backend.services.participant_pool import waiting_queue_payload


def _run_generation(event, params, persist):
    matches, waiting = match_lifecycle.generate_round(
        event,
        request.current_user,
        params.match_type,
        params.max_courts,
        params.skill_tolerance,
        durations=_durations(),
        persist=persist,
        default_rating=_default_rating(),
    )
    return matches, waiting_queue_payload(waiting)


@matchmaking_bp.route('/<int:event_id>/generate', methods=['POST'])
@host_required
def generate(event_id):
    event = request.current_event
    params = parse_generate_request(_json_body(), event)
    matches, waiting = _run_generation(event, params, persist=True)
    _emit_matchmaking_update(event_id, reason='matches_generated')
    return _success({
        'matches': [match.to_dict() for match in matches],
        'waiting': waiting,
        'match_type': params.match_type,
        'skill_tolerance': params.skill_tolerance,
    }, 201)


@matchmaking_bp.route('/<int:event_id>/fair-matches', methods=['POST'])
@host_required
def fair_matches(event_id):
    """Generate with the event's own settings, ignoring any body."""
    event = request.current_event
    params = _event_defaults(event)
    matches, waiting = _run_generation(event, params, persist=True)
    _emit_matchmaking_update(event_id, reason='matches_generated')
    return _success({
        'matches': [match.to_dict() for match in matches],
        'waiting': waiting,
        'match_type': params.match_type,
        'skill_tolerance': params.skill_tolerance,
    }, 201)


@matchmaking_bp.route('/<int:event_id>/preview', methods=['POST'])
@host_required
def preview(event_id):
    event = request.current_event
    params = parse_generate_request(_json_body(), event)
    proposals, waiting = _run_generation(event, params, persist=False)
    return _success({
        'proposals': [proposal.to_dict() for proposal in proposals],
        'waiting': waiting,
        'match_type': params.match_type,
        'skill_tolerance': params.skill_tolerance,
    })


@matchmaking_bp.route('/<int:event_id>/save', methods=['POST'])
@host_required
def save_matches(event_id):
    event = request.current_event
    entries = parse_save_entries(_json_body())
    matches = match_lifecycle.save_host_matches(
        event, entries, request.current_user,
        durations=_durations(), default_rating=_default_rating(),
    )
    _emit_matchmaking_update(event_id, reason='matches_saved')
    return _success({
        'matches': [match.to_dict() for match in matches],
        'event': event.to_dict(),
    }, 201)

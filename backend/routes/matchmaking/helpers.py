"""Event matchmaking: request parsing, response envelope and broadcasts.

Each endpoint parses its body into a small frozen dataclass here, so the
services only ever see validated, typed values.
"""
from dataclasses import dataclass

from flask import current_app, jsonify, request

from backend.errors import ValidationError
from backend.services import match_events
from backend.services.pairing import DOUBLES, SINGLES
from backend.services.participant_pool import parse_player_ref


@dataclass(frozen=True)
class GenerateRequest:
    match_type: str
    max_courts: int
    skill_tolerance: int


@dataclass(frozen=True)
class SaveMatchEntry:
    court_number: int
    player1: object
    player2: object
    estimated_duration: int = None


@dataclass(frozen=True)
class OverridePlayerRequest:
    match_id: int
    player_to_replace: object
    replacement: object


@dataclass(frozen=True)
class OverrideMatchRequest:
    player1: object
    player2: object
    court_number: int = None


@dataclass(frozen=True)
class AssignCourtRequest:
    match_id: int
    court_number: int


def _success(data, status_code=200):
    return jsonify({'status': 'success', 'data': data}), status_code


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Invalid JSON payload', kind='validation_error')
    return data


def _coerce_bool(raw_value):
    if isinstance(raw_value, bool):
        return raw_value
    if isinstance(raw_value, (int, float)):
        return raw_value == 1
    if raw_value is None:
        return False
    return str(raw_value).strip().lower() in {'1', 'true', 'yes', 'on'}


def _parse_int(raw_value, field, kind='validation_error'):
    if isinstance(raw_value, bool):
        raise _bad_int(field, raw_value, kind)
    if isinstance(raw_value, int):
        return raw_value
    try:
        return int(str(raw_value).strip())
    except (TypeError, ValueError):
        raise _bad_int(field, raw_value, kind)


def _bad_int(field, raw_value, kind):
    return ValidationError(
        f'{field} must be an integer', kind=kind, context={field: raw_value},
    )


def _required(data, field):
    value = data.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(
            f'{field} is required', kind='validation_error', context={'field': field},
        )
    return value


def _durations():
    return {
        SINGLES: current_app.config.get('MATCHMAKING_SINGLES_DURATION_MINUTES', 60),
        DOUBLES: current_app.config.get('MATCHMAKING_DOUBLES_DURATION_MINUTES', 75),
    }


def _default_rating():
    return current_app.config.get('DEFAULT_SKILL_RATING', 1000)


def _event_defaults(event):
    return GenerateRequest(
        match_type=(event.match_type or SINGLES),
        max_courts=event.max_courts or current_app.config.get('MATCHMAKING_DEFAULT_MAX_COURTS', 4),
        skill_tolerance=(
            event.skill_tolerance
            or current_app.config.get('MATCHMAKING_DEFAULT_SKILL_TOLERANCE', 200)
        ),
    )


def parse_generate_request(data, event):
    """Body values override the event's own match type, court count and tolerance.

    Range checks that need no config (positive values, known mode) are left to
    the pairing engine.
    """
    defaults = _event_defaults(event)
    match_type = str(data.get('match_type') or defaults.match_type).strip().lower()

    max_courts = defaults.max_courts
    if data.get('max_courts') is not None:
        max_courts = _parse_int(data['max_courts'], 'max_courts', kind='invalid_parameter')
    courts_limit = current_app.config.get('MATCHMAKING_MAX_COURTS_LIMIT', 20)
    if max_courts > courts_limit:
        raise ValidationError(
            f'max_courts cannot exceed {courts_limit}',
            kind='invalid_parameter', context={'max_courts': max_courts},
        )

    skill_tolerance = defaults.skill_tolerance
    if data.get('skill_tolerance') is not None:
        skill_tolerance = _parse_int(
            data['skill_tolerance'], 'skill_tolerance', kind='invalid_parameter',
        )
    tolerance_limit = current_app.config.get('MATCHMAKING_MAX_SKILL_TOLERANCE', 500)
    if skill_tolerance > tolerance_limit:
        raise ValidationError(
            f'skill_tolerance cannot exceed {tolerance_limit}',
            kind='invalid_parameter', context={'skill_tolerance': skill_tolerance},
        )
    return GenerateRequest(match_type, max_courts, skill_tolerance)


def parse_save_entries(data):
    raw_matches = data.get('matches')
    if not isinstance(raw_matches, list) or not raw_matches:
        raise ValidationError('matches must be a non-empty list', kind='validation_error')

    entries = []
    for raw in raw_matches:
        if not isinstance(raw, dict):
            raise ValidationError('Each match must be an object', kind='validation_error')
        duration = raw.get('estimated_duration')
        entries.append(SaveMatchEntry(
            court_number=_parse_int(_required(raw, 'court_number'), 'court_number'),
            player1=parse_player_ref(_required(raw, 'player1')),
            player2=parse_player_ref(_required(raw, 'player2')),
            estimated_duration=(
                _parse_int(duration, 'estimated_duration') if duration is not None else None
            ),
        ))
    return entries


def parse_override_player(data):
    return OverridePlayerRequest(
        match_id=_parse_int(_required(data, 'match_id'), 'match_id'),
        player_to_replace=parse_player_ref(_required(data, 'player_to_replace')),
        replacement=parse_player_ref(_required(data, 'replacement_player')),
    )


def parse_override_match(data):
    court_number = data.get('court_number')
    return OverrideMatchRequest(
        player1=parse_player_ref(_required(data, 'player1')),
        player2=parse_player_ref(_required(data, 'player2')),
        court_number=(
            _parse_int(court_number, 'court_number') if court_number is not None else None
        ),
    )


def parse_assign_court(data):
    return AssignCourtRequest(
        match_id=_parse_int(_required(data, 'match_id'), 'match_id'),
        court_number=_parse_int(_required(data, 'court_number'), 'court_number'),
    )


def _emit_matchmaking_update(event_id, reason=''):
    match_events.emit_matchmaking_update(event_id, reason=reason)

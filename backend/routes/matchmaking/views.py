"""Read-only matchmaking views: event status and the audit trail."""
from flask import request
from backend.auth_utils import host_required
from backend.models import MatchAuditLog
from backend.routes.matchmaking import matchmaking_bp
from backend.routes.matchmaking.helpers import _default_rating, _success
from backend.services.match_lifecycle import active_matches
from backend.services.participant_pool import waiting_players, waiting_queue_payload
from backend.time_utils import utcnow_naive


@matchmaking_bp.route('/<int:event_id>/status', methods=['GET'])
@host_required
def get_status(event_id):
    """Non-terminal matches plus the waiting queue, as one snapshot."""
    event = request.current_event
    now = utcnow_naive()
    matches = active_matches(event_id)
    waiting = waiting_players(event, now=now, default_rating=_default_rating())
    counts = {'pending': 0, 'scheduled': 0, 'ongoing': 0}
    for match in matches:
        counts[match.status] += 1
    return _success({
        'event': event.to_dict(),
        'matches': [match.to_dict() for match in matches],
        'waiting': waiting_queue_payload(waiting, now=now),
        'counts': counts,
    })


@matchmaking_bp.route('/<int:event_id>/audit', methods=['GET'])
@host_required
def get_audit(event_id):
    entries = MatchAuditLog.query.filter_by(event_id=event_id).order_by(
        MatchAuditLog.created_at.asc(), MatchAuditLog.id.asc()
    ).all()
    return _success({'entries': [entry.to_dict() for entry in entries]})

"""Outbound matchmaking events: live broadcasts and the completion sink."""
import logging

from flask import current_app

from backend.app import db, socketio
from backend.models import EventMatch, Notification
from backend.time_utils import utcnow_naive

logger = logging.getLogger(__name__)


def broadcast(event_name, payload):
    if not current_app.config.get('MATCHMAKING_BROADCAST_UPDATES', True):
        return
    socketio.emit(event_name, payload)


def emit_matchmaking_update(event_id, reason=''):
    broadcast('matchmaking_update', {
        'event_id': event_id,
        'reason': reason,
        'updated_at': utcnow_naive().isoformat(),
    })


def record_completion(match, now=None):
    """Claim the completion for ``match`` and queue player notifications.

    The claim is a conditional write on ``completion_emitted_at``, so only one
    caller ever gets True. Does not commit.
    """
    now = now or utcnow_naive()
    claimed = EventMatch.query.filter(
        EventMatch.id == match.id,
        EventMatch.completion_emitted_at.is_(None),
    ).update({'completion_emitted_at': now}, synchronize_session='fetch')
    if not claimed:
        return False

    opponents_by_team = {
        1: [slot.display_name() for slot in match.team_slots(2)],
        2: [slot.display_name() for slot in match.team_slots(1)],
    }
    for slot in match.ordered_slots():
        if slot.user_id is None:
            continue
        opponents = ', '.join(opponents_by_team.get(slot.team, []))
        db.session.add(Notification(
            user_id=slot.user_id,
            notif_type='match_completed',
            content=f'Your match against {opponents} has finished',
            reference_id=match.id,
        ))
    logger.info('Completion recorded for match %s of event %s', match.id, match.event_id)
    return True


def emit_completion(match):
    """Publish a completed match after its transaction committed."""
    broadcast('match_completed', {
        'event_id': match.event_id,
        'match_id': match.id,
        'court_number': match.court_number,
        'players': [slot.player_ref for slot in match.ordered_slots()],
        'ended_at': match.ended_at.isoformat() if match.ended_at else None,
    })

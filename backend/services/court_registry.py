"""Court registry: which of an event's numbered courts are held, and by whom.

Occupancy is derived from match rows. A court is held by the one match of the
event that is scheduled or ongoing on it; the partial unique index
``uq_event_match_active_court`` makes the store reject a second holder.
"""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased

from backend.app import db
from backend.errors import NotFoundError, ValidationError, court_in_use, invalid_transition
from backend.models import COURT_HOLDING_STATUSES, EventMatch
from backend.services.pairing import MIN_PLAYERS, SINGLES
from backend.time_utils import minutes_since, utcnow_naive

logger = logging.getLogger(__name__)

COURT_AVAILABLE = 'available'
COURT_SCHEDULED = 'scheduled'
COURT_PLAYING = 'playing'


def validate_court_number(event, court_number):
    if isinstance(court_number, bool) or not isinstance(court_number, int):
        raise ValidationError(
            'Court number must be an integer',
            kind='validation_error',
            context={'court_number': court_number},
        )
    if court_number < 1 or court_number > event.max_courts:
        raise ValidationError(
            f'Court number must be between 1 and {event.max_courts}',
            kind='court_out_of_range',
            context={'court_number': court_number, 'max_courts': event.max_courts},
        )


def holding_match(event_id, court_number):
    return EventMatch.query.filter(
        EventMatch.event_id == event_id,
        EventMatch.court_number == court_number,
        EventMatch.status.in_(COURT_HOLDING_STATUSES),
    ).first()


def is_court_free(event_id, court_number):
    return holding_match(event_id, court_number) is None


def occupied_courts(event_id):
    """``{court_number: match}`` for every held court of the event."""
    matches = EventMatch.query.filter(
        EventMatch.event_id == event_id,
        EventMatch.status.in_(COURT_HOLDING_STATUSES),
        EventMatch.court_number.isnot(None),
    ).all()
    return {match.court_number: match for match in matches}


def free_courts(event):
    held = occupied_courts(event.id)
    return [number for number in range(1, event.max_courts + 1) if number not in held]


def occupy(event, court_number, match_id, now=None):
    """Move a pending match onto ``court_number`` in a single conditional write.

    The UPDATE only matches when the match is still pending and no other
    scheduled/ongoing match of the event holds the court. Does not commit.
    """
    validate_court_number(event, court_number)
    now = now or utcnow_naive()

    holder = aliased(EventMatch)
    court_taken = db.session.query(holder.id).filter(
        holder.event_id == event.id,
        holder.court_number == court_number,
        holder.status.in_(COURT_HOLDING_STATUSES),
        holder.id != match_id,
    ).exists()

    try:
        updated = EventMatch.query.filter(
            EventMatch.id == match_id,
            EventMatch.event_id == event.id,
            EventMatch.status == 'pending',
            ~court_taken,
        ).update(
            {'court_number': court_number, 'status': 'scheduled', 'scheduled_at': now},
            synchronize_session='fetch',
        )
    except IntegrityError:
        db.session.rollback()
        current = holding_match(event.id, court_number)
        logger.warning(
            'Court %s of event %s taken concurrently while assigning match %s',
            court_number, event.id, match_id,
        )
        raise court_in_use(
            court_number, match_id=match_id,
            held_by_match_id=current.id if current else None,
        )

    if updated:
        logger.info('Match %s scheduled on court %s of event %s', match_id, court_number, event.id)
        return db.session.get(EventMatch, match_id)

    match = EventMatch.query.filter_by(id=match_id, event_id=event.id).first()
    if not match:
        raise NotFoundError(
            'Match not found', kind='match_not_found', context={'match_id': match_id},
        )
    if match.status != 'pending':
        raise invalid_transition(match_id, match.status, 'scheduled')
    current = holding_match(event.id, court_number)
    raise court_in_use(
        court_number, match_id=match_id,
        held_by_match_id=current.id if current else None,
    )


def release(event_id, court_number):
    """Courts free themselves when their match leaves scheduled/ongoing.

    Kept as an explicit call so callers can assert the court is free again.
    """
    return is_court_free(event_id, court_number)


def court_status(event, waiting=None, now=None):
    now = now or utcnow_naive()
    waiting = waiting or []
    held = occupied_courts(event.id)
    courts = []
    for number in range(1, event.max_courts + 1):
        match = held.get(number)
        if match is None:
            courts.append({'court_number': number, 'status': COURT_AVAILABLE, 'match': None})
            continue
        entry = {
            'court_number': number,
            'status': COURT_PLAYING if match.status == 'ongoing' else COURT_SCHEDULED,
            'match': match.to_dict(),
        }
        if match.status == 'ongoing':
            entry['elapsed_minutes'] = minutes_since(match.started_at, now)
        courts.append(entry)

    free = [court['court_number'] for court in courts if court['match'] is None]
    needed = MIN_PLAYERS.get(event.match_type, MIN_PLAYERS[SINGLES])
    return {
        'event_id': event.id,
        'max_courts': event.max_courts,
        'courts': courts,
        'free_courts': free,
        'waiting': [player.to_dict(now) for player in waiting],
        'total_waiting': len(waiting),
        'active_matches': sum(1 for court in courts if court['status'] == COURT_PLAYING),
        'scheduled_matches': sum(1 for court in courts if court['status'] == COURT_SCHEDULED),
        'can_create_match': bool(free) and len(waiting) >= needed,
    }

"""Participant pool: one uniform ``Player`` view over registrants and guests.

The pool is a pure read over the event's participant and guest tables. It
never decides who plays whom; it only answers "who could be paired right now"
and "who has been waiting longest".
"""
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import func

from backend.app import db
from backend.errors import AuthorizationError, NotFoundError, ValidationError
from backend.models import (
    ELIGIBLE_PARTICIPANT_STATUSES, GUEST_REF_PREFIX, TERMINAL_MATCH_STATUSES,
    Event, EventMatch, EventMatchSlot, EventParticipant, GuestPlayer, User,
    format_player_ref,
)
from backend.time_utils import isoformat_or_none, minutes_since, utcnow_naive

REGISTERED = 'registered'
GUEST = 'guest'
DEFAULT_SKILL_RATING = 1000


@dataclass(frozen=True, order=True)
class PlayerRef:
    """Registered-user id XOR guest id."""
    origin: str
    id: int

    @property
    def is_guest(self):
        return self.origin == GUEST

    def slot_columns(self):
        if self.is_guest:
            return {'user_id': None, 'guest_id': self.id}
        return {'user_id': self.id, 'guest_id': None}

    def __str__(self):
        if self.is_guest:
            return format_player_ref(guest_id=self.id)
        return format_player_ref(user_id=self.id)

    @classmethod
    def registered(cls, user_id):
        return cls(REGISTERED, int(user_id))

    @classmethod
    def guest(cls, guest_id):
        return cls(GUEST, int(guest_id))

    @classmethod
    def from_slot(cls, slot):
        if slot.guest_id is not None:
            return cls.guest(slot.guest_id)
        return cls.registered(slot.user_id)


@dataclass(frozen=True)
class Player:
    ref: PlayerRef
    name: str
    skill_rating: int
    matches_played: int = 0
    waiting_since: datetime = field(default=None, compare=False)

    @property
    def is_guest(self):
        return self.ref.is_guest

    def to_dict(self, now=None):
        return {
            'id': str(self.ref),
            'origin': self.ref.origin,
            'is_guest': self.is_guest,
            'name': self.name,
            'skill_rating': self.skill_rating,
            'matches_played': self.matches_played,
            'waiting_since': isoformat_or_none(self.waiting_since),
            'waiting_minutes': minutes_since(self.waiting_since, now),
        }


def parse_player_ref(raw_value):
    """Parse ``7`` / ``"7"`` as a registered user and ``"guest_7"`` as a guest."""
    if isinstance(raw_value, bool):
        raise _bad_ref(raw_value)
    if isinstance(raw_value, int):
        if raw_value <= 0:
            raise _bad_ref(raw_value)
        return PlayerRef.registered(raw_value)

    raw = str(raw_value or '').strip()
    guest_part = raw[len(GUEST_REF_PREFIX):] if raw.startswith(GUEST_REF_PREFIX) else None
    digits = guest_part if guest_part is not None else raw
    if not digits.isdigit() or int(digits) <= 0:
        raise _bad_ref(raw_value)
    if guest_part is not None:
        return PlayerRef.guest(digits)
    return PlayerRef.registered(digits)


def _bad_ref(raw_value):
    return ValidationError(
        'Player id must be a user id or guest_<id>',
        kind='validation_error',
        context={'player': raw_value},
    )


def get_event(event_id):
    event = db.session.get(Event, event_id)
    if not event:
        raise NotFoundError(
            'Event not found', kind='event_not_found', context={'event_id': event_id},
        )
    return event


def can_manage_event(user, event):
    if user is None or event is None:
        return False
    return user.id == event.host_user_id or bool(getattr(user, 'is_admin', False))


def ensure_event_manager(event, actor):
    """Reject any mutating call that lacks a verified host/admin principal."""
    if not can_manage_event(actor, event):
        raise AuthorizationError(
            'Only the event host can manage matchmaking',
            kind='forbidden',
            context={'event_id': event.id if event else None},
        )


def bound_player_refs(event_id):
    """Refs currently held by a pending, scheduled or ongoing match."""
    rows = db.session.query(EventMatchSlot.user_id, EventMatchSlot.guest_id).filter(
        EventMatchSlot.event_id == event_id,
        EventMatchSlot.active.is_(True),
    ).all()
    refs = set()
    for user_id, guest_id in rows:
        if guest_id is not None:
            refs.add(PlayerRef.guest(guest_id))
        else:
            refs.add(PlayerRef.registered(user_id))
    return refs


def _last_match_end_by_ref(event_id):
    ended_at = func.max(func.coalesce(EventMatch.ended_at, EventMatch.cancelled_at))
    rows = db.session.query(
        EventMatchSlot.user_id, EventMatchSlot.guest_id, ended_at,
    ).join(EventMatch, EventMatch.id == EventMatchSlot.match_id).filter(
        EventMatch.event_id == event_id,
        EventMatch.status.in_(TERMINAL_MATCH_STATUSES),
    ).group_by(EventMatchSlot.user_id, EventMatchSlot.guest_id).all()

    last_end = {}
    for user_id, guest_id, value in rows:
        ref = PlayerRef.guest(guest_id) if guest_id is not None else PlayerRef.registered(user_id)
        last_end[ref] = value
    return last_end


def _registered_player(participant, last_end, default_rating):
    user = participant.user
    ref = PlayerRef.registered(user.id)
    rating = user.skill_rating if user.skill_rating is not None else default_rating
    return Player(
        ref=ref,
        name=user.display_name(),
        skill_rating=int(rating),
        matches_played=int(user.matches_played or 0),
        waiting_since=(
            last_end.get(ref) or participant.checked_in_at or participant.registered_at
        ),
    )


def _guest_player(guest, last_end):
    ref = PlayerRef.guest(guest.id)
    return Player(
        ref=ref,
        name=guest.display_name(),
        skill_rating=int(guest.estimated_mmr),
        matches_played=0,
        waiting_since=last_end.get(ref) or guest.checked_in_at or guest.created_at,
    )


def _queue_key(player):
    return (player.waiting_since or datetime.min, player.ref)


def pool_players(event, now=None, default_rating=DEFAULT_SKILL_RATING):
    """Everyone eligible for this event, bound or not, in waiting-queue order."""
    now = now or utcnow_naive()
    last_end = _last_match_end_by_ref(event.id)

    participants = EventParticipant.query.filter(
        EventParticipant.event_id == event.id,
        EventParticipant.status.in_(ELIGIBLE_PARTICIPANT_STATUSES),
    ).all()
    players = [
        _registered_player(participant, last_end, default_rating)
        for participant in participants
        if participant.user is not None
    ]

    guests = GuestPlayer.query.filter_by(event_id=event.id).all()
    players.extend(
        _guest_player(guest, last_end)
        for guest in guests
        if guest.is_eligible(now)
    )
    players.sort(key=_queue_key)
    return players


def eligible_players(event, now=None, default_rating=DEFAULT_SKILL_RATING):
    """Players free to be paired: the pool minus anyone bound to a live match.

    This is also the waiting queue, ordered by time since last match end
    (or check-in/registration when never matched).
    """
    bound = bound_player_refs(event.id)
    return [
        player for player in pool_players(event, now=now, default_rating=default_rating)
        if player.ref not in bound
    ]


def waiting_players(event, now=None, default_rating=DEFAULT_SKILL_RATING):
    return eligible_players(event, now=now, default_rating=default_rating)


def waiting_queue_payload(players, now=None):
    now = now or utcnow_naive()
    return [player.to_dict(now) for player in players]


def resolve_player(event, ref, now=None, default_rating=DEFAULT_SKILL_RATING):
    """Load the ``Player`` for ``ref`` if it belongs to this event's pool."""
    now = now or utcnow_naive()
    if ref.is_guest:
        guest = db.session.get(GuestPlayer, ref.id)
        if not guest or guest.event_id != event.id:
            raise _player_not_found(ref)
        if not guest.is_eligible(now):
            raise ValidationError(
                'Guest player is inactive or expired',
                kind='player_not_eligible',
                context={'player': str(ref)},
            )
        return _guest_player(guest, _last_match_end_by_ref(event.id))

    user = db.session.get(User, ref.id)
    if not user:
        raise _player_not_found(ref)
    participant = EventParticipant.query.filter_by(event_id=event.id, user_id=user.id).first()
    if not participant or participant.status not in ELIGIBLE_PARTICIPANT_STATUSES:
        raise ValidationError(
            'Player is not a confirmed participant of this event',
            kind='player_not_eligible',
            context={'player': str(ref)},
        )
    return _registered_player(participant, _last_match_end_by_ref(event.id), default_rating)


def _player_not_found(ref):
    return NotFoundError(
        'Player not found', kind='player_not_found', context={'player': str(ref)},
    )

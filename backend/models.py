from sqlalchemy import text
from backend.app import db
from backend.time_utils import utcnow_naive, isoformat_or_none

MATCH_STATUSES = ('pending', 'scheduled', 'ongoing', 'completed', 'cancelled')
ACTIVE_MATCH_STATUSES = ('pending', 'scheduled', 'ongoing')
COURT_HOLDING_STATUSES = ('scheduled', 'ongoing')
TERMINAL_MATCH_STATUSES = ('completed', 'cancelled')
ELIGIBLE_PARTICIPANT_STATUSES = ('confirmed', 'checked_in')
GUEST_REF_PREFIX = 'guest_'


def format_player_ref(user_id=None, guest_id=None):
    if guest_id is not None:
        return f'{GUEST_REF_PREFIX}{guest_id}'
    return str(user_id)


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    name = db.Column(db.String(120), default='')
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    skill_rating = db.Column(db.Integer, nullable=True)
    matches_played = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    def display_name(self):
        return self.name or self.username

    def to_dict(self):
        return {
            'id': self.id, 'username': self.username,
            'name': self.display_name(), 'is_admin': self.is_admin,
            'skill_rating': self.skill_rating,
            'matches_played': self.matches_played,
            'created_at': isoformat_or_none(self.created_at),
        }


class Event(db.Model):
    """Host-run event. Owned by the event directory; read-only here apart from status."""
    id = db.Column(db.Integer, primary_key=True)
    host_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    status = db.Column(db.String(20), default='published')
    # draft, published, ongoing, completed, cancelled
    max_courts = db.Column(db.Integer, default=4, nullable=False)
    match_type = db.Column(db.String(20), default='singles')  # singles, doubles
    skill_tolerance = db.Column(db.Integer, nullable=True)
    start_time = db.Column(db.DateTime, nullable=True)
    end_time = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    host_user = db.relationship('User', foreign_keys=[host_user_id], backref='hosted_events')

    def to_dict(self):
        return {
            'id': self.id,
            'host_user_id': self.host_user_id,
            'title': self.title,
            'status': self.status,
            'max_courts': self.max_courts,
            'match_type': self.match_type,
            'skill_tolerance': self.skill_tolerance,
            'start_time': isoformat_or_none(self.start_time),
            'end_time': isoformat_or_none(self.end_time),
        }


class EventParticipant(db.Model):
    """Registered user's registration state for an event."""
    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey('event.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    status = db.Column(db.String(20), default='registered')
    # registered, confirmed, checked_in, waiting, cancelled
    registered_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    checked_in_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        db.UniqueConstraint('event_id', 'user_id', name='uq_event_participant_unique'),
        db.Index('ix_event_participant_event_status', 'event_id', 'status'),
    )

    event = db.relationship('Event', backref='participants')
    user = db.relationship('User', backref='event_participations')


class GuestPlayer(db.Model):
    """Temporary non-account player a host adds for one event."""
    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey('event.id'), nullable=False)
    added_by_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    name = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(30), default='')
    skill_level = db.Column(db.Integer, default=0)
    estimated_mmr = db.Column(db.Integer, default=1000, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    checked_in_at = db.Column(db.DateTime, nullable=True)
    expires_at = db.Column(db.DateTime, nullable=True)
    deleted_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    event = db.relationship('Event', backref='guest_players')

    def is_eligible(self, now=None):
        """Active, not soft-deleted and not past its expiry."""
        now = now or utcnow_naive()
        if not self.is_active or self.deleted_at is not None:
            return False
        return self.expires_at is None or self.expires_at > now

    def display_name(self):
        return f'{self.name} (Guest)'


class EventMatch(db.Model):
    """A match inside one event. Never deleted; ends completed or cancelled."""
    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey('event.id'), nullable=False)
    match_type = db.Column(db.String(20), default='singles', nullable=False)
    court_number = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(20), default='pending', nullable=False)
    estimated_duration_minutes = db.Column(db.Integer, default=60)
    skill_difference = db.Column(db.Float, nullable=True)
    match_quality = db.Column(db.Float, nullable=True)
    source = db.Column(db.String(20), default='generated')  # generated, host_saved, override
    is_locked = db.Column(db.Boolean, default=False, nullable=False)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    cancel_reason = db.Column(db.String(200), default='')
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    scheduled_at = db.Column(db.DateTime, nullable=True)
    started_at = db.Column(db.DateTime, nullable=True)
    ended_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    completion_emitted_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        db.CheckConstraint(
            'court_number IS NULL OR court_number >= 1',
            name='ck_event_match_court_positive',
        ),
        db.Index('ix_event_match_event_status', 'event_id', 'status'),
        db.Index(
            'uq_event_match_active_court', 'event_id', 'court_number',
            unique=True,
            sqlite_where=text("status IN ('scheduled', 'ongoing')"),
            postgresql_where=text("status IN ('scheduled', 'ongoing')"),
        ),
    )

    event = db.relationship('Event', backref='matches')
    slots = db.relationship('EventMatchSlot', backref='match', lazy='joined')

    @property
    def is_terminal(self):
        return self.status in TERMINAL_MATCH_STATUSES

    def ordered_slots(self):
        return sorted(self.slots, key=lambda slot: (slot.team, slot.position))

    def team_slots(self, team):
        return [slot for slot in self.ordered_slots() if slot.team == team]

    def to_dict(self):
        slots = [slot.to_dict() for slot in self.ordered_slots()]
        team1 = [slot for slot in slots if slot['team'] == 1]
        team2 = [slot for slot in slots if slot['team'] == 2]
        return {
            'id': self.id,
            'event_id': self.event_id,
            'match_type': self.match_type,
            'court_number': self.court_number,
            'status': self.status,
            'estimated_duration_minutes': self.estimated_duration_minutes,
            'skill_difference': self.skill_difference,
            'match_quality': self.match_quality,
            'source': self.source,
            'locked': self.is_locked,
            'team1': team1,
            'team2': team2,
            'player1': team1[0] if team1 else None,
            'player2': team2[0] if team2 else None,
            'created_at': isoformat_or_none(self.created_at),
            'scheduled_at': isoformat_or_none(self.scheduled_at),
            'started_at': isoformat_or_none(self.started_at),
            'ended_at': isoformat_or_none(self.ended_at),
            'cancelled_at': isoformat_or_none(self.cancelled_at),
        }


class EventMatchSlot(db.Model):
    """One player position in a match; references a user XOR a guest."""
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('event_match.id'), nullable=False)
    event_id = db.Column(db.Integer, db.ForeignKey('event.id'), nullable=False)
    team = db.Column(db.Integer, nullable=False)
    position = db.Column(db.Integer, default=1, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    guest_id = db.Column(db.Integer, db.ForeignKey('guest_player.id'), nullable=True)
    skill_rating = db.Column(db.Integer, nullable=True)
    # False once the match is terminal, which frees the player for rebooking
    active = db.Column(db.Boolean, default=True, nullable=False)

    __table_args__ = (
        db.CheckConstraint(
            '(user_id IS NULL) != (guest_id IS NULL)',
            name='ck_event_match_slot_user_xor_guest',
        ),
        db.UniqueConstraint('match_id', 'team', 'position', name='uq_event_match_slot_position'),
        db.Index(
            'uq_event_match_slot_active_user', 'event_id', 'user_id',
            unique=True,
            sqlite_where=text('active = 1 AND user_id IS NOT NULL'),
            postgresql_where=text('active AND user_id IS NOT NULL'),
        ),
        db.Index(
            'uq_event_match_slot_active_guest', 'event_id', 'guest_id',
            unique=True,
            sqlite_where=text('active = 1 AND guest_id IS NOT NULL'),
            postgresql_where=text('active AND guest_id IS NOT NULL'),
        ),
    )

    user = db.relationship('User')
    guest = db.relationship('GuestPlayer')

    @property
    def player_ref(self):
        return format_player_ref(user_id=self.user_id, guest_id=self.guest_id)

    @property
    def is_guest(self):
        return self.guest_id is not None

    def display_name(self):
        if self.guest is not None:
            return self.guest.display_name()
        if self.user is not None:
            return self.user.display_name()
        return ''

    def to_dict(self):
        return {
            'id': self.player_ref,
            'team': self.team,
            'position': self.position,
            'user_id': self.user_id,
            'guest_id': self.guest_id,
            'is_guest': self.is_guest,
            'name': self.display_name(),
            'skill_rating': self.skill_rating,
        }


class MatchAuditLog(db.Model):
    """Host-visible record of overrides and court changes."""
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('event_match.id'), nullable=False)
    event_id = db.Column(db.Integer, db.ForeignKey('event.id'), nullable=False)
    action = db.Column(db.String(40), nullable=False)
    # override_player, override_match, assign_court, revoke_court, cancel, lock, unlock
    removed_player = db.Column(db.String(40), nullable=True)
    added_player = db.Column(db.String(40), nullable=True)
    court_number = db.Column(db.Integer, nullable=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    details = db.Column(db.Text, default='')
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    __table_args__ = (
        db.Index('ix_match_audit_log_event_created', 'event_id', 'created_at'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'match_id': self.match_id,
            'event_id': self.event_id,
            'action': self.action,
            'removed_player': self.removed_player,
            'added_player': self.added_player,
            'court_number': self.court_number,
            'admin': self.actor_user_id,
            'details': self.details,
            'timestamp': isoformat_or_none(self.created_at),
        }


class Notification(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    notif_type = db.Column(db.String(50), nullable=False)
    content = db.Column(db.Text, nullable=False)
    reference_id = db.Column(db.Integer, nullable=True)
    read = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    user = db.relationship('User', backref='notifications')

    def to_dict(self):
        return {
            'id': self.id, 'notif_type': self.notif_type,
            'content': self.content, 'reference_id': self.reference_id,
            'read': self.read,
            'created_at': isoformat_or_none(self.created_at),
        }

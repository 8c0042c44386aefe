"""
Match lifecycle: pending → scheduled → ongoing → completed, or cancelled.

Every transition is one conditional UPDATE guarded by the expected current
status. A zero row count means another request got there first; the match is
re-read and the caller gets ``invalid_transition`` with the status it actually
has. Failed transitions never change the stored status.

Public functions commit their own transaction; helpers that only stage writes
say so in their docstring.
"""
import logging

from sqlalchemy.exc import IntegrityError

from backend.app import db
from backend.errors import NotFoundError, StateConflictError, ValidationError, court_in_use, invalid_transition
from backend.models import ACTIVE_MATCH_STATUSES, EventMatch, EventMatchSlot, MatchAuditLog
from backend.services import court_registry, match_events, pairing
from backend.services.participant_pool import (
    DEFAULT_SKILL_RATING, bound_player_refs, eligible_players, ensure_event_manager,
    resolve_player,
)
from backend.time_utils import utcnow_naive

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    'pending': {'scheduled', 'cancelled'},
    'scheduled': {'ongoing', 'pending', 'cancelled'},
    'ongoing': {'completed', 'cancelled'},
    'completed': set(),
    'cancelled': set(),
}

MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 180


def can_transition(current_status, target_status):
    return target_status in ALLOWED_TRANSITIONS.get(current_status, set())


def source_statuses(target_status):
    return sorted(
        status for status, targets in ALLOWED_TRANSITIONS.items()
        if target_status in targets
    )


def get_match(event, match_id):
    match = EventMatch.query.filter_by(id=match_id, event_id=event.id).first()
    if not match:
        raise NotFoundError(
            'Match not found', kind='match_not_found',
            context={'match_id': match_id, 'event_id': event.id},
        )
    return match


def add_audit_entry(match, action, actor, removed_player=None, added_player=None,
                    court_number=None, details=''):
    """Stage an audit row in the caller's transaction."""
    entry = MatchAuditLog(
        match_id=match.id,
        event_id=match.event_id,
        action=action,
        removed_player=removed_player,
        added_player=added_player,
        court_number=court_number,
        actor_user_id=actor.id if actor else None,
        details=details,
    )
    db.session.add(entry)
    return entry


def translate_write_conflict(exc, context=None):
    """Map a unique-index violation to the state conflict it stands for."""
    message = str(getattr(exc, 'orig', exc))
    if 'court_number' in message or 'active_court' in message:
        return StateConflictError(
            'A requested court is already in use',
            kind='court_in_use', context=context,
        )
    return StateConflictError(
        'A player is already booked in another active match',
        kind='player_already_booked', context=context,
    )


def _transition(event, match_id, target_status, **values):
    updated = EventMatch.query.filter(
        EventMatch.id == match_id,
        EventMatch.event_id == event.id,
        EventMatch.status.in_(source_statuses(target_status)),
    ).update({'status': target_status, **values}, synchronize_session='fetch')

    match = get_match(event, match_id)
    if not updated:
        db.session.refresh(match)
        logger.warning(
            'Rejected %s -> %s for match %s of event %s',
            match.status, target_status, match_id, event.id,
        )
        raise invalid_transition(match_id, match.status, target_status)
    return match


def _deactivate_slots(match_id):
    EventMatchSlot.query.filter_by(match_id=match_id).update(
        {'active': False}, synchronize_session='fetch',
    )


def assign_court(event, match_id, court_number, actor):
    """Pending match onto a free court. All or nothing."""
    ensure_event_manager(event, actor)
    match = get_match(event, match_id)
    if match.status != 'pending':
        raise invalid_transition(match_id, match.status, 'scheduled')

    match = court_registry.occupy(event, court_number, match_id)
    add_audit_entry(match, 'assign_court', actor, court_number=court_number)
    db.session.commit()
    return match


def revoke_court(event, match_id, actor):
    """Take a scheduled match off its court and back to pending."""
    ensure_event_manager(event, actor)
    previous_court = get_match(event, match_id).court_number
    match = _transition(event, match_id, 'pending', court_number=None, scheduled_at=None)
    add_audit_entry(match, 'revoke_court', actor, court_number=previous_court)
    db.session.commit()
    logger.info('Court %s revoked from match %s of event %s', previous_court, match_id, event.id)
    return match


def start_match(event, match_id, actor, now=None):
    ensure_event_manager(event, actor)
    match = _transition(event, match_id, 'ongoing', started_at=now or utcnow_naive())
    db.session.commit()
    logger.info('Match %s started on court %s of event %s', match_id, match.court_number, event.id)
    return match


def end_match(event, match_id, actor, now=None):
    """Complete an ongoing match, free its court and players, emit completion."""
    ensure_event_manager(event, actor)
    match = _transition(event, match_id, 'completed', ended_at=now or utcnow_naive())
    _deactivate_slots(match_id)
    emitted = match_events.record_completion(match, now=now)
    db.session.commit()
    if emitted:
        match_events.emit_completion(match)
    logger.info('Match %s completed; court %s of event %s released', match_id, match.court_number, event.id)
    return match


def cancel_match(event, match_id, actor, reason='', now=None):
    ensure_event_manager(event, actor)
    court_number = get_match(event, match_id).court_number
    match = _transition(
        event, match_id, 'cancelled',
        cancelled_at=now or utcnow_naive(), cancel_reason=(reason or '')[:200],
    )
    _deactivate_slots(match_id)
    add_audit_entry(match, 'cancel', actor, court_number=court_number, details=reason or '')
    db.session.commit()
    logger.info('Match %s of event %s cancelled', match_id, event.id)
    return match


def new_match(event, match_type, teams, actor, source, status='pending', court_number=None,
               estimated_duration_minutes=None, skill_difference=None, match_quality=None,
               now=None):
    """Stage a match with its slots; ``teams`` is a pair of Player sequences."""
    now = now or utcnow_naive()
    match = EventMatch(
        event_id=event.id,
        match_type=match_type,
        status=status,
        court_number=court_number,
        scheduled_at=now if status == 'scheduled' else None,
        estimated_duration_minutes=estimated_duration_minutes,
        skill_difference=skill_difference,
        match_quality=match_quality,
        source=source,
        created_by_user_id=actor.id if actor else None,
        created_at=now,
    )
    for team_number, team in enumerate(teams, start=1):
        for position, player in enumerate(team, start=1):
            match.slots.append(EventMatchSlot(
                event_id=event.id,
                team=team_number,
                position=position,
                skill_rating=player.skill_rating,
                **player.ref.slot_columns(),
            ))
    db.session.add(match)
    return match


def materialize_proposals(event, proposals, actor, source='generated'):
    """Persist proposals as pending matches in one transaction.

    The active-slot unique indexes reject a player booked by a concurrent run;
    the whole batch is then rolled back.
    """
    ensure_event_manager(event, actor)
    now = utcnow_naive()
    matches = [
        new_match(
            event, proposal.match_type, (proposal.team1, proposal.team2), actor, source,
            estimated_duration_minutes=proposal.estimated_duration_minutes,
            skill_difference=proposal.skill_difference,
            match_quality=proposal.match_quality,
            now=now,
        )
        for proposal in proposals
    ]
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning('Concurrent booking rejected a generated batch for event %s', event.id)
        raise translate_write_conflict(exc, {'event_id': event.id}) from exc
    logger.info('Materialized %d pending matches for event %s', len(matches), event.id)
    return matches


def generate_round(event, actor, mode, max_courts, skill_tolerance, durations=None,
                   persist=True, default_rating=DEFAULT_SKILL_RATING, now=None):
    """Pair the event's free players; persist the proposals unless previewing.

    Returns ``(matches_or_proposals, waiting_players)``.
    """
    ensure_event_manager(event, actor)
    players = eligible_players(event, now=now, default_rating=default_rating)
    proposals, waiting = pairing.generate_matches(
        players, mode, max_courts, skill_tolerance, durations=durations,
    )
    if not persist:
        return proposals, waiting
    return materialize_proposals(event, proposals, actor), waiting


def save_host_matches(event, entries, actor, durations=None,
                      default_rating=DEFAULT_SKILL_RATING, now=None):
    """Persist a host-built singles lineup straight onto courts.

    ``entries`` carry ``court_number``, ``player1``, ``player2`` (PlayerRef) and
    an optional ``estimated_duration``. The event moves to ongoing.
    """
    ensure_event_manager(event, actor)
    now = now or utcnow_naive()
    durations = durations or pairing.DEFAULT_DURATIONS
    if not entries:
        raise ValidationError('At least one match is required', kind='validation_error')

    courts_seen = set()
    refs_seen = set()
    for entry in entries:
        court_registry.validate_court_number(event, entry.court_number)
        if entry.court_number in courts_seen:
            raise ValidationError(
                f'Court {entry.court_number} is used twice',
                kind='validation_error', context={'court_number': entry.court_number},
            )
        courts_seen.add(entry.court_number)
        for ref in (entry.player1, entry.player2):
            if ref in refs_seen:
                raise ValidationError(
                    'A player appears in more than one match',
                    kind='validation_error', context={'player': str(ref)},
                )
            refs_seen.add(ref)
        duration = entry.estimated_duration
        if duration is not None and not MIN_DURATION_MINUTES <= duration <= MAX_DURATION_MINUTES:
            raise ValidationError(
                f'Estimated duration must be between {MIN_DURATION_MINUTES} and '
                f'{MAX_DURATION_MINUTES} minutes',
                kind='validation_error', context={'estimated_duration': duration},
            )

    bound = bound_player_refs(event.id)
    for ref in sorted(refs_seen):
        if ref in bound:
            raise StateConflictError(
                'Player is already booked in another active match',
                kind='player_already_booked', context={'player': str(ref)},
            )
    held = court_registry.occupied_courts(event.id)
    for court_number in sorted(courts_seen):
        if court_number in held:
            raise court_in_use(court_number, held_by_match_id=held[court_number].id)

    matches = []
    for entry in entries:
        player1 = resolve_player(event, entry.player1, now=now, default_rating=default_rating)
        player2 = resolve_player(event, entry.player2, now=now, default_rating=default_rating)
        matches.append(new_match(
            event, pairing.SINGLES, ((player1,), (player2,)), actor, 'host_saved',
            status='scheduled', court_number=entry.court_number,
            estimated_duration_minutes=entry.estimated_duration or durations[pairing.SINGLES],
            skill_difference=float(abs(player1.skill_rating - player2.skill_rating)),
            match_quality=pairing.singles_match_quality(player1, player2),
            now=now,
        ))

    if event.status not in ('completed', 'cancelled'):
        event.status = 'ongoing'
    try:
        db.session.flush()
        for match in matches:
            add_audit_entry(match, 'assign_court', actor, court_number=match.court_number)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning('Concurrent write rejected saved lineup for event %s', event.id)
        raise translate_write_conflict(exc, {'event_id': event.id}) from exc
    logger.info('Saved %d host matches for event %s', len(matches), event.id)
    return matches


def active_matches(event_id):
    """Pending, scheduled and ongoing matches, oldest first."""
    return EventMatch.query.filter(
        EventMatch.event_id == event_id,
        EventMatch.status.in_(ACTIVE_MATCH_STATUSES),
    ).order_by(EventMatch.created_at.asc(), EventMatch.id.asc()).all()

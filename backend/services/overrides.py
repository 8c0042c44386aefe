"""Host overrides: swap a player, hand-build a match, lock a match.

Checks run in a fixed order so the host always sees the first thing that is
wrong: terminal, locked, not in match, unknown replacement, already booked.
The active-slot unique indexes re-check booking at write time, and the audit
row rides in the same transaction as the change it records.
"""
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from backend.app import db
from backend.errors import StateConflictError, ValidationError
from backend.models import ACTIVE_MATCH_STATUSES, EventMatch, EventMatchSlot
from backend.services import court_registry, pairing
from backend.services.match_lifecycle import (
    new_match, add_audit_entry, get_match, translate_write_conflict,
)
from backend.services.participant_pool import (
    DEFAULT_SKILL_RATING, Player, PlayerRef, bound_player_refs, ensure_event_manager,
    resolve_player,
)
from backend.time_utils import utcnow_naive

logger = logging.getLogger(__name__)


def _ensure_mutable(match):
    if match.is_terminal:
        raise StateConflictError(
            f'Match {match.id} is already {match.status}',
            kind='match_terminal',
            context={'match_id': match.id, 'current_status': match.status},
        )
    if match.is_locked:
        raise StateConflictError(
            f'Match {match.id} is locked',
            kind='match_locked',
            context={'match_id': match.id},
        )


def _replacement_booked(match_id, replacement):
    return StateConflictError(
        'Replacement player is already booked in an active match',
        kind='replacement_already_booked',
        context={'match_id': match_id, 'player': str(replacement)},
    )


def _not_in_match(match_id, player):
    return StateConflictError(
        'Player is not part of this match',
        kind='player_not_in_match',
        context={'match_id': match_id, 'player': str(player)},
    )


def _slot_player(slot):
    return Player(
        ref=PlayerRef.from_slot(slot),
        name=slot.display_name(),
        skill_rating=slot.skill_rating if slot.skill_rating is not None else DEFAULT_SKILL_RATING,
        matches_played=int(slot.user.matches_played or 0) if slot.user else 0,
    )


def _refresh_balance(match):
    """Recompute skill difference and quality from the current slot ratings."""
    team1 = [_slot_player(slot) for slot in match.team_slots(1)]
    team2 = [_slot_player(slot) for slot in match.team_slots(2)]
    if not team1 or not team2:
        return
    if match.match_type == pairing.DOUBLES:
        match.skill_difference = round(
            abs(pairing.team_rating(team1) - pairing.team_rating(team2)), 1,
        )
        match.match_quality = pairing.doubles_match_quality(team1, team2)
    else:
        match.skill_difference = float(abs(team1[0].skill_rating - team2[0].skill_rating))
        match.match_quality = pairing.singles_match_quality(team1[0], team2[0])


def _swap_slot(match_id, slot_id, replacement, skill_rating):
    """Rewrite one slot only while it is active and its match is still mutable.

    Returns the number of rows written. The active-slot unique indexes raise
    ``IntegrityError`` when the replacement got booked elsewhere meanwhile.
    """
    mutable_match = select(EventMatch.id).where(
        EventMatch.id == match_id,
        EventMatch.status.in_(ACTIVE_MATCH_STATUSES),
        EventMatch.is_locked.is_(False),
    )
    values = dict(replacement.slot_columns())
    values['skill_rating'] = skill_rating
    return EventMatchSlot.query.filter(
        EventMatchSlot.id == slot_id,
        EventMatchSlot.active.is_(True),
        EventMatchSlot.match_id.in_(mutable_match),
    ).update(values, synchronize_session='fetch')


def override_player(event, match_id, player_to_replace, replacement, actor,
                    default_rating=DEFAULT_SKILL_RATING, now=None):
    """Replace one player of a non-terminal, unlocked match in place."""
    ensure_event_manager(event, actor)
    now = now or utcnow_naive()
    match = get_match(event, match_id)
    _ensure_mutable(match)

    slots_by_ref = {PlayerRef.from_slot(slot): slot for slot in match.ordered_slots()}
    slot = slots_by_ref.get(player_to_replace)
    if slot is None:
        raise _not_in_match(match_id, player_to_replace)
    if replacement == player_to_replace:
        raise ValidationError(
            'Replacement must be a different player',
            kind='validation_error',
            context={'match_id': match.id, 'player': str(replacement)},
        )

    incoming = resolve_player(event, replacement, now=now, default_rating=default_rating)
    if replacement in slots_by_ref or replacement in bound_player_refs(event.id):
        logger.warning(
            'Override on match %s rejected: %s already booked', match.id, replacement,
        )
        raise _replacement_booked(match_id, replacement)

    slot_id = slot.id
    try:
        updated = _swap_slot(match_id, slot_id, replacement, incoming.skill_rating)
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning(
            'Override on match %s lost a booking race for %s', match_id, replacement,
        )
        raise _replacement_booked(match_id, replacement) from exc
    if not updated:
        # The match moved on between the checks above and the write.
        db.session.rollback()
        match = get_match(event, match_id)
        logger.warning(
            'Override on match %s refused: match is now %s (locked=%s)',
            match_id, match.status, match.is_locked,
        )
        _ensure_mutable(match)
        raise _not_in_match(match_id, player_to_replace)

    db.session.expire(slot)
    _refresh_balance(match)
    add_audit_entry(
        match, 'override_player', actor,
        removed_player=str(player_to_replace), added_player=str(replacement),
        court_number=match.court_number,
    )
    db.session.commit()
    logger.info(
        'Match %s of event %s: %s replaced by %s',
        match.id, event.id, player_to_replace, replacement,
    )
    return match


def create_override_match(event, player1, player2, actor, court_number=None,
                          durations=None, default_rating=DEFAULT_SKILL_RATING, now=None):
    """Host-built singles match, scheduled straight onto ``court_number`` if given."""
    ensure_event_manager(event, actor)
    now = now or utcnow_naive()
    durations = durations or pairing.DEFAULT_DURATIONS
    if player1 == player2:
        raise ValidationError(
            'A match needs two different players',
            kind='validation_error', context={'player': str(player1)},
        )
    if court_number is not None:
        court_registry.validate_court_number(event, court_number)

    first = resolve_player(event, player1, now=now, default_rating=default_rating)
    second = resolve_player(event, player2, now=now, default_rating=default_rating)
    bound = bound_player_refs(event.id)
    for ref in (player1, player2):
        if ref in bound:
            raise StateConflictError(
                'Player is already booked in another active match',
                kind='player_already_booked', context={'player': str(ref)},
            )

    match = new_match(
        event, pairing.SINGLES, ((first,), (second,)), actor, 'override',
        estimated_duration_minutes=durations[pairing.SINGLES],
        skill_difference=float(abs(first.skill_rating - second.skill_rating)),
        match_quality=pairing.singles_match_quality(first, second),
        now=now,
    )
    try:
        db.session.flush()
    except IntegrityError as exc:
        db.session.rollback()
        raise translate_write_conflict(exc, {'event_id': event.id}) from exc

    if court_number is not None:
        try:
            match = court_registry.occupy(event, court_number, match.id, now=now)
        except StateConflictError:
            db.session.rollback()
            raise
    add_audit_entry(
        match, 'override_match', actor,
        added_player=f'{player1},{player2}', court_number=court_number,
    )
    db.session.commit()
    logger.info(
        'Override match %s created for event %s on court %s', match.id, event.id, court_number,
    )
    return match


def set_match_lock(event, match_id, locked, actor):
    ensure_event_manager(event, actor)
    match = get_match(event, match_id)
    if match.is_terminal:
        raise StateConflictError(
            f'Match {match.id} is already {match.status}',
            kind='match_terminal',
            context={'match_id': match.id, 'current_status': match.status},
        )
    match.is_locked = bool(locked)
    add_audit_entry(match, 'lock' if locked else 'unlock', actor, court_number=match.court_number)
    db.session.commit()
    return match

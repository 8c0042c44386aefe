"""Tests for match state transitions, completion and host-saved lineups."""
import pytest

from backend.app import db
from backend.errors import AuthorizationError, InsufficientDataError, NotFoundError, StateConflictError, ValidationError
from backend.models import Event, EventMatch, EventMatchSlot, Notification
from backend.routes.matchmaking.helpers import SaveMatchEntry
from backend.services import match_lifecycle
from backend.services.match_lifecycle import ALLOWED_TRANSITIONS, can_transition
from backend.services.participant_pool import PlayerRef, eligible_players


@pytest.fixture
def pending_match(event, host, make_player):
    make_player(skill_rating=1000, name='alice')
    make_player(skill_rating=1050, name='bob')
    matches, _ = match_lifecycle.generate_round(event, host, 'singles', 4, 200)
    return matches[0]


def test_transition_table():
    assert can_transition('pending', 'scheduled')
    assert can_transition('scheduled', 'ongoing')
    assert can_transition('scheduled', 'pending')
    assert can_transition('ongoing', 'completed')
    assert not can_transition('pending', 'ongoing')
    assert not can_transition('scheduled', 'completed')
    for status in ('pending', 'scheduled', 'ongoing'):
        assert can_transition(status, 'cancelled')
    assert ALLOWED_TRANSITIONS['completed'] == set()
    assert ALLOWED_TRANSITIONS['cancelled'] == set()


def test_full_lifecycle(event, host, pending_match):
    match_lifecycle.assign_court(event, pending_match.id, 1, host)
    started = match_lifecycle.start_match(event, pending_match.id, host)
    assert started.status == 'ongoing'
    assert started.started_at is not None

    ended = match_lifecycle.end_match(event, pending_match.id, host)
    assert ended.status == 'completed'
    assert ended.ended_at is not None
    assert ended.completion_emitted_at is not None
    assert all(not slot.active for slot in ended.slots)
    assert len(eligible_players(event)) == 2


def test_end_match_on_scheduled_match_is_rejected(event, host, pending_match):
    match_lifecycle.assign_court(event, pending_match.id, 1, host)

    with pytest.raises(StateConflictError) as exc:
        match_lifecycle.end_match(event, pending_match.id, host)

    assert exc.value.kind == 'invalid_transition'
    assert exc.value.status_code == 422
    assert exc.value.context['current_status'] == 'scheduled'
    db.session.rollback()
    assert db.session.get(EventMatch, pending_match.id).status == 'scheduled'


def test_start_requires_a_court(event, host, pending_match):
    with pytest.raises(StateConflictError) as exc:
        match_lifecycle.start_match(event, pending_match.id, host)
    assert exc.value.context['current_status'] == 'pending'


def test_completion_is_emitted_once(event, host, pending_match):
    match_lifecycle.assign_court(event, pending_match.id, 1, host)
    match_lifecycle.start_match(event, pending_match.id, host)
    match_lifecycle.end_match(event, pending_match.id, host)

    with pytest.raises(StateConflictError):
        match_lifecycle.end_match(event, pending_match.id, host)
    db.session.rollback()

    notifications = Notification.query.filter_by(
        notif_type='match_completed', reference_id=pending_match.id,
    ).all()
    assert len(notifications) == 2
    assert any('alice' in n.content for n in notifications)


def test_cancel_frees_players_and_is_terminal(event, host, pending_match):
    match_lifecycle.assign_court(event, pending_match.id, 2, host)
    cancelled = match_lifecycle.cancel_match(event, pending_match.id, host, reason='rain')

    assert cancelled.status == 'cancelled'
    assert cancelled.cancel_reason == 'rain'
    assert EventMatchSlot.query.filter_by(match_id=pending_match.id, active=True).count() == 0
    assert len(eligible_players(event)) == 2

    with pytest.raises(StateConflictError):
        match_lifecycle.cancel_match(event, pending_match.id, host)


def test_unknown_match_is_not_found(event, host):
    with pytest.raises(NotFoundError):
        match_lifecycle.start_match(event, 999, host)


def test_non_host_cannot_transition(event, pending_match, make_user):
    with pytest.raises(AuthorizationError):
        match_lifecycle.cancel_match(event, pending_match.id, make_user())


def test_regenerating_without_new_players_changes_nothing(event, host, pending_match):
    with pytest.raises(InsufficientDataError) as exc:
        match_lifecycle.generate_round(event, host, 'singles', 4, 200)
    assert exc.value.kind == 'insufficient_participants'
    assert EventMatch.query.filter_by(event_id=event.id).count() == 1


def test_save_host_matches_schedules_on_courts(event, host, make_player, make_guest):
    alice = make_player(skill_rating=1000)
    bob = make_player(skill_rating=1100)
    guest = make_guest(estimated_mmr=1200)
    carol = make_player(skill_rating=1300)
    entries = [
        SaveMatchEntry(1, PlayerRef.registered(alice.id), PlayerRef.registered(bob.id)),
        SaveMatchEntry(3, PlayerRef.guest(guest.id), PlayerRef.registered(carol.id), 90),
    ]

    matches = match_lifecycle.save_host_matches(event, entries, host)

    assert [m.status for m in matches] == ['scheduled', 'scheduled']
    assert [m.court_number for m in matches] == [1, 3]
    assert matches[0].estimated_duration_minutes == 60
    assert matches[1].estimated_duration_minutes == 90
    assert matches[1].to_dict()['player1']['id'] == f'guest_{guest.id}'
    assert db.session.get(Event, event.id).status == 'ongoing'


def test_save_host_matches_rejects_duplicates_and_busy_courts(event, host, make_player, pending_match):
    alice = make_player()
    bob = make_player()
    carol = make_player()
    dave = make_player()

    with pytest.raises(ValidationError):
        match_lifecycle.save_host_matches(event, [
            SaveMatchEntry(1, PlayerRef.registered(alice.id), PlayerRef.registered(bob.id)),
            SaveMatchEntry(1, PlayerRef.registered(carol.id), PlayerRef.registered(dave.id)),
        ], host)

    with pytest.raises(ValidationError):
        match_lifecycle.save_host_matches(event, [
            SaveMatchEntry(1, PlayerRef.registered(alice.id), PlayerRef.registered(bob.id), 5),
        ], host)

    match_lifecycle.assign_court(event, pending_match.id, 2, host)
    with pytest.raises(StateConflictError) as exc:
        match_lifecycle.save_host_matches(event, [
            SaveMatchEntry(2, PlayerRef.registered(alice.id), PlayerRef.registered(bob.id)),
        ], host)
    assert exc.value.kind == 'court_in_use'

    booked = PlayerRef.from_slot(pending_match.ordered_slots()[0])
    with pytest.raises(StateConflictError) as exc:
        match_lifecycle.save_host_matches(event, [
            SaveMatchEntry(3, booked, PlayerRef.registered(carol.id)),
        ], host)
    assert exc.value.kind == 'player_already_booked'
    db.session.rollback()
    assert EventMatch.query.filter_by(event_id=event.id).count() == 1


def test_materialize_rolls_back_whole_batch_on_booking_race(event, host, make_player):
    from backend.services.pairing import generate_matches
    for rating in (1000, 1010, 1020, 1030):
        make_player(skill_rating=rating)
    proposals, _ = generate_matches(eligible_players(event), 'singles', 4, 100)
    match_lifecycle.materialize_proposals(event, proposals[1:], host)

    with pytest.raises(StateConflictError) as exc:
        match_lifecycle.materialize_proposals(event, proposals, host)
    assert exc.value.kind == 'player_already_booked'
    assert EventMatch.query.filter_by(event_id=event.id).count() == 1

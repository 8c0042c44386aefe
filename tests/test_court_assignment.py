"""Tests for court exclusivity and court status."""
import pytest

from backend.app import db
from backend.errors import StateConflictError, ValidationError
from backend.models import EventMatch
from backend.services import court_registry, match_lifecycle
from backend.services.participant_pool import eligible_players


def _pending_matches(event, host, make_player, count=2):
    for _ in range(count * 2):
        make_player(skill_rating=1000)
    matches, _ = match_lifecycle.generate_round(event, host, 'singles', 4, 200)
    return matches


def test_assign_court_schedules_pending_match(event, host, make_player):
    match, _ = _pending_matches(event, host, make_player)
    scheduled = match_lifecycle.assign_court(event, match.id, 2, host)

    assert scheduled.status == 'scheduled'
    assert scheduled.court_number == 2
    assert scheduled.scheduled_at is not None
    assert not court_registry.is_court_free(event.id, 2)
    assert court_registry.free_courts(event) == [1, 3, 4]


def test_court_in_use_leaves_second_match_pending(event, host, make_player):
    match_a, match_b = _pending_matches(event, host, make_player)
    match_lifecycle.assign_court(event, match_a.id, 1, host)

    with pytest.raises(StateConflictError) as exc:
        match_lifecycle.assign_court(event, match_b.id, 1, host)

    assert exc.value.kind == 'court_in_use'
    assert exc.value.status_code == 400
    assert exc.value.context['court_number'] == 1
    assert exc.value.context['held_by_match_id'] == match_a.id
    db.session.rollback()
    refreshed = db.session.get(EventMatch, match_b.id)
    assert refreshed.status == 'pending'
    assert refreshed.court_number is None


@pytest.mark.parametrize('court_number', [0, 5, -1])
def test_court_outside_event_range_is_rejected(event, host, make_player, court_number):
    match, _ = _pending_matches(event, host, make_player)
    with pytest.raises(ValidationError) as exc:
        match_lifecycle.assign_court(event, match.id, court_number, host)
    assert exc.value.kind == 'court_out_of_range'


def test_assign_court_requires_pending_match(event, host, make_player):
    match, _ = _pending_matches(event, host, make_player)
    match_lifecycle.assign_court(event, match.id, 1, host)

    with pytest.raises(StateConflictError) as exc:
        match_lifecycle.assign_court(event, match.id, 2, host)
    assert exc.value.kind == 'invalid_transition'
    assert court_registry.is_court_free(event.id, 2)


def test_court_is_released_when_match_ends(event, host, make_player):
    match, _ = _pending_matches(event, host, make_player)
    match_lifecycle.assign_court(event, match.id, 3, host)
    match_lifecycle.start_match(event, match.id, host)
    assert not court_registry.release(event.id, 3)

    match_lifecycle.end_match(event, match.id, host)
    assert court_registry.release(event.id, 3)


def test_revoked_court_can_be_reused(event, host, make_player):
    match_a, match_b = _pending_matches(event, host, make_player)
    match_lifecycle.assign_court(event, match_a.id, 1, host)
    revoked = match_lifecycle.revoke_court(event, match_a.id, host)
    assert revoked.status == 'pending'
    assert revoked.court_number is None

    scheduled = match_lifecycle.assign_court(event, match_b.id, 1, host)
    assert scheduled.court_number == 1


def test_court_status_reports_occupancy_and_waiting(event, host, make_player):
    match_a, match_b = _pending_matches(event, host, make_player)
    make_player(skill_rating=1900)
    match_lifecycle.assign_court(event, match_a.id, 1, host)
    match_lifecycle.assign_court(event, match_b.id, 2, host)
    match_lifecycle.start_match(event, match_b.id, host)

    status = court_registry.court_status(
        event, waiting=eligible_players(event),
    )
    by_court = {court['court_number']: court for court in status['courts']}
    assert by_court[1]['status'] == 'scheduled'
    assert by_court[2]['status'] == 'playing'
    assert by_court[2]['elapsed_minutes'] == 0
    assert by_court[3]['status'] == 'available'
    assert status['free_courts'] == [3, 4]
    assert [player['skill_rating'] for player in status['waiting']] == [1900]
    assert status['total_waiting'] == 1
    assert status['active_matches'] == 1
    assert status['scheduled_matches'] == 1
    assert status['can_create_match'] is False


def test_court_status_can_create_match_with_free_court_and_two_waiting(event, make_player):
    make_player(skill_rating=1000)
    make_player(skill_rating=1100)

    status = court_registry.court_status(event, waiting=eligible_players(event))

    assert status['total_waiting'] == 2
    assert status['active_matches'] == 0
    assert status['scheduled_matches'] == 0
    assert status['can_create_match'] is True

    event.max_courts = 0
    assert court_registry.court_status(event, waiting=eligible_players(event))['can_create_match'] is False


def test_court_taken_at_write_time_is_court_in_use(event, host, make_player, monkeypatch):
    match_a, match_b = _pending_matches(event, host, make_player)
    match_lifecycle.assign_court(event, match_a.id, 1, host)
    # Hide the scheduled holder from the read-side guard so only the
    # unique court index stands between match B and court 1.
    monkeypatch.setattr(court_registry, 'COURT_HOLDING_STATUSES', ('ongoing',))

    with pytest.raises(StateConflictError) as exc:
        match_lifecycle.assign_court(event, match_b.id, 1, host)

    assert exc.value.kind == 'court_in_use'
    assert exc.value.status_code == 400
    monkeypatch.undo()
    assert db.session.get(EventMatch, match_b.id).status == 'pending'
    assert db.session.get(EventMatch, match_b.id).court_number is None
    assert court_registry.holding_match(event.id, 1).id == match_a.id

"""Tests for the pure pairing engine."""
import itertools

import pytest

from backend.errors import InsufficientDataError, ValidationError
from backend.services.pairing import (
    doubles_match_quality, generate_matches, singles_match_quality, suggest_next_round,
)
from backend.services.participant_pool import Player, PlayerRef


def _players(*ratings, guests=()):
    players = [
        Player(ref=PlayerRef.registered(index), name=f'P{index}', skill_rating=rating)
        for index, rating in enumerate(ratings, start=1)
    ]
    players.extend(
        Player(ref=PlayerRef.guest(index), name=f'G{index}', skill_rating=rating)
        for index, rating in enumerate(guests, start=1)
    )
    return players


def _pair_ratings(proposal):
    return (
        [player.skill_rating for player in proposal.team1],
        [player.skill_rating for player in proposal.team2],
    )


def test_singles_pairs_adjacent_players_within_tolerance():
    proposals, waiting = generate_matches(_players(1000, 1100, 1200, 1300), 'singles', 4, 200)
    assert [_pair_ratings(p) for p in proposals] == [
        ([1000], [1100]),
        ([1200], [1300]),
    ]
    assert waiting == []
    assert all(p.court_number is None for p in proposals)
    assert all(p.estimated_duration_minutes == 60 for p in proposals)


def test_singles_tight_tolerance_leaves_everyone_waiting():
    players = _players(1000, 1100, 1200, 1300)
    proposals, waiting = generate_matches(players, 'singles', 4, 50)
    assert proposals == []
    assert waiting == players


def test_singles_unpairable_player_waits_and_scan_continues():
    proposals, waiting = generate_matches(_players(900, 1200, 1250), 'singles', 4, 100)
    assert [_pair_ratings(p) for p in proposals] == [([1200], [1250])]
    assert [p.skill_rating for p in waiting] == [900]


def test_max_courts_caps_proposals_and_rest_wait():
    players = _players(1000, 1010, 1020, 1030, 1040, 1050)
    proposals, waiting = generate_matches(players, 'singles', 2, 100)
    assert len(proposals) == 2
    assert [p.skill_rating for p in waiting] == [1040, 1050]


def test_every_player_is_either_paired_once_or_waiting():
    players = _players(1000, 1090, 1150, 1400, 1420, 1700, 1710)
    proposals, waiting = generate_matches(players, 'singles', 4, 100)
    paired = [player.ref for p in proposals for player in p.players]
    waiting_refs = [player.ref for player in waiting]
    assert len(paired) == len(set(paired))
    assert sorted(paired + waiting_refs) == sorted(player.ref for player in players)


def test_paired_players_respect_tolerance():
    players = _players(1000, 1090, 1150, 1400, 1420, 1700, 1710, 1905)
    for tolerance in (10, 60, 100, 300):
        proposals, _ = generate_matches(players, 'singles', 8, tolerance)
        for proposal in proposals:
            assert proposal.skill_difference <= tolerance


def test_generation_is_independent_of_input_order():
    players = _players(1000, 1100, 1105, 1200, 1300, 1310)
    baseline, _ = generate_matches(players, 'singles', 4, 150)
    for permutation in itertools.islice(itertools.permutations(players), 20):
        proposals, _ = generate_matches(list(permutation), 'singles', 4, 150)
        assert proposals == baseline


def test_equal_ratings_break_ties_on_matches_played_then_id():
    players = [
        Player(ref=PlayerRef.registered(3), name='C', skill_rating=1000, matches_played=5),
        Player(ref=PlayerRef.registered(2), name='B', skill_rating=1000, matches_played=0),
        Player(ref=PlayerRef.registered(1), name='A', skill_rating=1000, matches_played=0),
    ]
    proposals, waiting = generate_matches(players, 'singles', 4, 100)
    assert [p.ref.id for p in proposals[0].players] == [1, 2]
    assert [p.ref.id for p in waiting] == [3]


def test_guests_and_registered_users_pair_together():
    proposals, waiting = generate_matches(_players(1000, guests=(1050,)), 'singles', 4, 100)
    assert len(proposals) == 1
    assert {p.is_guest for p in proposals[0].players} == {False, True}
    assert waiting == []


def test_doubles_forms_adjacent_teams_and_pairs_them():
    players = _players(1000, 1010, 1100, 1110)
    proposals, waiting = generate_matches(players, 'doubles', 4, 200)
    assert len(proposals) == 1
    assert _pair_ratings(proposals[0]) == ([1000, 1010], [1100, 1110])
    assert proposals[0].skill_difference == 100.0
    assert proposals[0].estimated_duration_minutes == 75
    assert waiting == []


def test_doubles_remainder_waits():
    players = _players(1000, 1010, 1020, 1030, 1040, 1050)
    proposals, waiting = generate_matches(players, 'doubles', 4, 200)
    assert len(proposals) == 1
    assert sorted(p.skill_rating for p in waiting) == [1040, 1050]


def test_doubles_unpairable_teams_wait():
    players = _players(1000, 1010, 1600, 1610)
    proposals, waiting = generate_matches(players, 'doubles', 4, 100)
    assert proposals == []
    assert len(waiting) == 4


@pytest.mark.parametrize('mode,max_courts,tolerance', [
    ('singles', 4, 0),
    ('singles', 0, 200),
    ('singles', -1, 200),
    ('triples', 4, 200),
])
def test_invalid_parameters_are_rejected_before_pairing(mode, max_courts, tolerance):
    with pytest.raises(ValidationError) as exc:
        generate_matches([], mode, max_courts, tolerance)
    assert exc.value.kind == 'invalid_parameter'


def test_too_few_players_is_insufficient_data():
    with pytest.raises(InsufficientDataError):
        generate_matches(_players(1000), 'singles', 4, 200)
    with pytest.raises(InsufficientDataError):
        generate_matches(_players(1000, 1000, 1000), 'doubles', 4, 200)


def test_match_quality_scores():
    a = Player(ref=PlayerRef.registered(1), name='A', skill_rating=1000, matches_played=10)
    b = Player(ref=PlayerRef.registered(2), name='B', skill_rating=1100, matches_played=20)
    assert singles_match_quality(a, b) == 94.0
    assert singles_match_quality(a, a) == 100.0
    assert doubles_match_quality((a, a), (b, b)) == 90.0


def test_suggestions_fill_free_courts_lowest_first():
    suggestions = suggest_next_round(_players(1000, 1050, 1100, 1150), [3, 1], 'singles', 100)
    assert [s.court_number for s in suggestions] == [1, 3]


def test_suggestions_empty_without_courts_or_players():
    assert suggest_next_round(_players(1000, 1050), [], 'singles', 100) == []
    assert suggest_next_round(_players(1000), [1, 2], 'singles', 100) == []

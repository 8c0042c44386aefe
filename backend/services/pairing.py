"""
Pairing engine: balanced singles/doubles pairings within a skill tolerance.

Key rules:
- Players are sorted by skill rating, then matches played, then a stable id
  order, so the same pool always yields the same pairings and re-running
  generation without new check-ins changes nothing.
- Singles: greedy adjacent scan. In a sorted list the next available player is
  the closest candidate, so when it is out of tolerance the current player
  waits and the scan moves on.
- Doubles: adjacent players form teams (smallest intra-team gap), adjacent
  teams are paired on average rating under the same tolerance. Players beyond
  a multiple of four wait.
- No more proposals than courts; everyone else waits, pairable or not.
- Pure: no database, no clock, no request state.
"""
from dataclasses import dataclass

from backend.errors import InsufficientDataError, ValidationError

SINGLES = 'singles'
DOUBLES = 'doubles'
MATCH_TYPES = (SINGLES, DOUBLES)
PLAYERS_PER_TEAM = {SINGLES: 1, DOUBLES: 2}
MIN_PLAYERS = {SINGLES: 2, DOUBLES: 4}
DEFAULT_DURATIONS = {SINGLES: 60, DOUBLES: 75}


@dataclass(frozen=True)
class MatchProposal:
    match_type: str
    team1: tuple
    team2: tuple
    skill_difference: float
    match_quality: float
    estimated_duration_minutes: int
    court_number: int = None

    @property
    def players(self):
        return self.team1 + self.team2

    def to_dict(self):
        team1 = [player.to_dict() for player in self.team1]
        team2 = [player.to_dict() for player in self.team2]
        return {
            'match_type': self.match_type,
            'team1': team1,
            'team2': team2,
            'player1': team1[0],
            'player2': team2[0],
            'skill_difference': self.skill_difference,
            'match_quality': self.match_quality,
            'estimated_duration_minutes': self.estimated_duration_minutes,
            'court_number': self.court_number,
            'status': 'pending',
        }


def sort_key(player):
    return (player.skill_rating, player.matches_played, player.ref)


def team_rating(team):
    return sum(player.skill_rating for player in team) / len(team)


def singles_match_quality(player1, player2):
    """0-100; closer rating and experience score higher."""
    skill_diff = abs(player1.skill_rating - player2.skill_rating)
    experience_diff = abs(player1.matches_played - player2.matches_played)
    skill_score = max(0.0, 100 - skill_diff / 10)
    experience_score = max(0.0, 100 - experience_diff / 5)
    return round((skill_score + experience_score) / 2, 1)


def doubles_match_quality(team1, team2):
    skill_diff = abs(team_rating(team1) - team_rating(team2))
    return max(0.0, round(100 - skill_diff / 10, 1))


def validate_parameters(mode, max_courts, skill_tolerance):
    if mode not in MATCH_TYPES:
        raise ValidationError(
            'Match type must be singles or doubles',
            kind='invalid_parameter',
            context={'match_type': mode},
        )
    if not isinstance(max_courts, int) or isinstance(max_courts, bool) or max_courts <= 0:
        raise ValidationError(
            'max_courts must be a positive integer',
            kind='invalid_parameter',
            context={'max_courts': max_courts},
        )
    if not isinstance(skill_tolerance, int) or isinstance(skill_tolerance, bool) or skill_tolerance <= 0:
        raise ValidationError(
            'skill_tolerance must be a positive integer',
            kind='invalid_parameter',
            context={'skill_tolerance': skill_tolerance},
        )


def _pair_adjacent(units, tolerance, limit, rating_of):
    """Greedy adjacent pairing over sorted units.

    Returns (pairs, leftover_units) where pairs are (unit_a, unit_b, diff).
    """
    pairs = []
    leftover = []
    i = 0
    while i < len(units):
        if len(pairs) >= limit or i + 1 >= len(units):
            leftover.extend(units[i:])
            break
        current, candidate = units[i], units[i + 1]
        diff = abs(rating_of(current) - rating_of(candidate))
        if diff <= tolerance:
            pairs.append((current, candidate, diff))
            i += 2
        else:
            leftover.append(current)
            i += 1
    return pairs, leftover


def _singles(ordered, max_courts, skill_tolerance, duration):
    pairs, _ = _pair_adjacent(
        ordered, skill_tolerance, max_courts, lambda player: player.skill_rating,
    )
    return [
        MatchProposal(
            match_type=SINGLES,
            team1=(player1,),
            team2=(player2,),
            skill_difference=float(diff),
            match_quality=singles_match_quality(player1, player2),
            estimated_duration_minutes=duration,
        )
        for player1, player2, diff in pairs
    ]


def _doubles(ordered, max_courts, skill_tolerance, duration):
    usable = len(ordered) - len(ordered) % 4
    teams = [tuple(ordered[i:i + 2]) for i in range(0, usable, 2)]
    pairs, _ = _pair_adjacent(teams, skill_tolerance, max_courts, team_rating)
    return [
        MatchProposal(
            match_type=DOUBLES,
            team1=team1,
            team2=team2,
            skill_difference=round(float(diff), 1),
            match_quality=doubles_match_quality(team1, team2),
            estimated_duration_minutes=duration,
        )
        for team1, team2, diff in pairs
    ]


def generate_matches(players, mode, max_courts, skill_tolerance, durations=None):
    """Pair ``players`` into match proposals.

    Args:
        players: Sequence of ``Player`` read-models.
        mode: ``'singles'`` or ``'doubles'``.
        max_courts: Upper bound on the number of proposals.
        skill_tolerance: Max rating gap between paired players/teams.
        durations: Optional ``{mode: minutes}`` override.

    Returns:
        (proposals, waiting). Proposals carry no court; waiting keeps the
        caller's order.
    """
    validate_parameters(mode, max_courts, skill_tolerance)
    players = list(players)
    if len(players) < MIN_PLAYERS[mode]:
        raise InsufficientDataError(
            f'At least {MIN_PLAYERS[mode]} players are needed for {mode} matchmaking',
            kind='insufficient_participants',
            context={'players': len(players), 'required': MIN_PLAYERS[mode]},
        )
    refs = [player.ref for player in players]
    if len(set(refs)) != len(refs):
        raise ValidationError(
            'Duplicate players in the pool', kind='validation_error',
        )

    duration = (durations or DEFAULT_DURATIONS).get(mode, DEFAULT_DURATIONS[mode])
    ordered = sorted(players, key=sort_key)
    if mode == SINGLES:
        proposals = _singles(ordered, max_courts, skill_tolerance, duration)
    else:
        proposals = _doubles(ordered, max_courts, skill_tolerance, duration)

    paired = {player.ref for proposal in proposals for player in proposal.players}
    waiting = [player for player in players if player.ref not in paired]
    return proposals, waiting


def suggest_next_round(waiting, free_courts, mode, skill_tolerance, durations=None):
    """Pair waiting players onto the given free courts, lowest court first.

    Read-only; returns an empty list when there is nothing to suggest.
    """
    free_courts = sorted(free_courts)
    if not free_courts:
        return []
    try:
        proposals, _ = generate_matches(
            waiting, mode, len(free_courts), skill_tolerance, durations=durations,
        )
    except InsufficientDataError:
        return []
    return [
        MatchProposal(
            match_type=proposal.match_type,
            team1=proposal.team1,
            team2=proposal.team2,
            skill_difference=proposal.skill_difference,
            match_quality=proposal.match_quality,
            estimated_duration_minutes=proposal.estimated_duration_minutes,
            court_number=court_number,
        )
        for proposal, court_number in zip(proposals, free_courts)
    ]

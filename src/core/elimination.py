"""
Single elimination bracket generation and round progression.
"""
import logging
import math
import random
from typing import List, Dict, Tuple, Optional

from core.errors import InvalidRosterError, InsufficientWinnersError
from core.models import Match, MATCH_PENDING, MATCH_BYE

logger = logging.getLogger(__name__)


def get_round_name(players_remaining: int) -> str:
    """Get the name of a round based on number of players still in it."""
    if players_remaining == 2:
        return "Final"
    elif players_remaining == 4:
        return "Semifinal"
    elif players_remaining == 8:
        return "Quarterfinal"
    elif players_remaining in (16, 32, 64):
        return f"Round of {players_remaining}"
    else:
        return f"Round {int(math.log2(players_remaining))}"


def get_round_name_for(round_number: int, total_rounds: int) -> str:
    """Get the name of a round from its position in a bracket of total_rounds."""
    return get_round_name(2 ** (total_rounds - round_number + 1))


def calculate_bracket_size(num_players: int) -> int:
    """Calculate the bracket size (next power of 2)."""
    if num_players <= 0:
        return 0
    return 1 << (num_players - 1).bit_length()


def calculate_total_rounds(num_players: int) -> int:
    """Number of rounds needed to reduce num_players to a single winner."""
    bracket_size = calculate_bracket_size(num_players)
    if bracket_size == 0:
        return 0
    return bracket_size.bit_length() - 1


def calculate_byes(num_players: int) -> int:
    """Calculate number of byes needed."""
    bracket_size = calculate_bracket_size(num_players)
    return bracket_size - num_players


def describe_initial_round(players: list) -> Dict[str, int]:
    """Aggregate sizing of the first round for a roster, without building it."""
    num_players = len(players)
    return {
        'player_count': num_players,
        'bracket_size': calculate_bracket_size(num_players),
        'total_rounds': calculate_total_rounds(num_players),
        'bye_count': calculate_byes(num_players),
    }


def shuffle_players(players: list, rng: Optional[random.Random] = None) -> list:
    """
    Return a shuffled copy of players.

    rng is any object with a shuffle(list) method. A fresh random.Random is
    used when none is given so no seed is shared between calls.
    """
    if rng is None:
        rng = random.Random()
    shuffled = list(players)
    rng.shuffle(shuffled)
    return shuffled


def _player_id(player):
    """Players may be Player objects, dicts with an 'id' key, or bare ids."""
    if isinstance(player, dict):
        return player['id']
    return getattr(player, 'id', player)


def build_initial_round(players: list, tournament_id, rng: Optional[random.Random] = None) -> Tuple[List[Match], int]:
    """
    Build the first round of a single elimination bracket.

    The roster is shuffled, padded with empty slots up to the next power of
    two and paired off in slot order. A pair whose second slot is empty is a
    bye: its only player is recorded as the winner straight away.

    Empty slots go at the end of the bracket, one after each of the last
    bye_count players, so no pair is ever two empty slots.

    Returns (matches, total_rounds). There are always bracket_size / 2
    matches, bye_count of which are byes.
    """
    if not players or len(players) < 2:
        raise InvalidRosterError('At least 2 players are required to create a tournament')

    sizing = describe_initial_round(players)
    logger.debug('Tournament generation: %s', sizing)

    shuffled = [_player_id(p) for p in shuffle_players(players, rng)]
    paired_count = sizing['player_count'] - sizing['bye_count']
    bracket = shuffled[:paired_count]
    for player_id in shuffled[paired_count:]:
        bracket.extend([player_id, None])

    matches = []
    match_number = 1
    for i in range(0, len(bracket), 2):
        player1 = bracket[i]
        player2 = bracket[i + 1]

        if player2 is None:
            matches.append(Match(
                tournament_id=tournament_id,
                round_number=1,
                match_number=match_number,
                player1_id=player1,
                player2_id=None,
                winner_id=player1,
                status=MATCH_BYE,
            ))
        else:
            matches.append(Match(
                tournament_id=tournament_id,
                round_number=1,
                match_number=match_number,
                player1_id=player1,
                player2_id=player2,
                winner_id=None,
                status=MATCH_PENDING,
            ))
        match_number += 1

    return matches, sizing['total_rounds']


def collect_winners(matches: List[Match]) -> list:
    """Winner ids of matches in the order given, skipping undecided matches."""
    return [m.winner_id for m in matches if m.winner_id is not None]


def build_next_round(previous_round_matches: List[Match], next_round_number: int, tournament_id) -> List[Match]:
    """
    Build the next round from the winners of the previous one.

    previous_round_matches must be ordered by match_number; winners are paired
    in that order and are never reshuffled. An odd winner out gets a bye.
    """
    winners = collect_winners(previous_round_matches)

    if len(winners) < 2:
        raise InsufficientWinnersError('Not enough winners to generate next round')

    next_matches = []
    match_number = 1
    for i in range(0, len(winners), 2):
        if i + 1 < len(winners):
            next_matches.append(Match(
                tournament_id=tournament_id,
                round_number=next_round_number,
                match_number=match_number,
                player1_id=winners[i],
                player2_id=winners[i + 1],
                winner_id=None,
                status=MATCH_PENDING,
            ))
        else:
            # Odd number of winners, last one moves on unopposed
            next_matches.append(Match(
                tournament_id=tournament_id,
                round_number=next_round_number,
                match_number=match_number,
                player1_id=winners[i],
                player2_id=None,
                winner_id=winners[i],
                status=MATCH_BYE,
            ))
        match_number += 1

    logger.debug('Round %d built with %d matches from %d winners',
                 next_round_number, len(next_matches), len(winners))
    return next_matches


def group_matches_by_round(matches: List[Match]) -> Dict[int, List[Match]]:
    """Group matches by round number, each round sorted by match number."""
    rounds = {}
    for match in matches:
        rounds.setdefault(match.round_number, []).append(match)
    for round_matches in rounds.values():
        round_matches.sort(key=lambda m: m.match_number)
    return dict(sorted(rounds.items()))

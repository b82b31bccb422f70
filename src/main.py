"""
Command line entry point: simulate a bracket from a roster, manage admin accounts.
"""
import argparse
import logging
import random
import sys

from core.elimination import (
    build_initial_round,
    build_next_round,
    describe_initial_round,
    get_round_name_for,
)
from core.errors import BracketError
from core.models import Player, MATCH_COMPLETED
from core.progress import compute_progress, can_advance
from roster import RosterParseError, parse_roster_file, validate_players

logger = logging.getLogger('bracket')


def load_roster(file_path):
    with open(file_path, mode='rb') as file:
        rows = parse_roster_file(file_path, file.read())
    validation = validate_players(rows)
    for warning in validation['warnings']:
        logger.warning(warning)
    if not validation['valid']:
        raise RosterParseError('; '.join(validation['errors']))
    return [
        Player(id=f'p{i}', name=row['name'], team_name=row['team_name'], email=row['email'] or None)
        for i, row in enumerate(rows, start=1)
    ]


def play_round(matches, rng):
    """Pick a random winner for every undecided match."""
    for match in matches:
        if match.winner_id is None:
            match.winner_id = rng.choice([match.player1_id, match.player2_id])
            match.status = MATCH_COMPLETED


def print_round(matches, round_number, total_rounds, names):
    print(f"\n# {get_round_name_for(round_number, total_rounds)} (round {round_number})")
    for match in matches:
        player1 = names[match.player1_id]
        if match.is_bye:
            print(f"  M{match.match_number}: {player1} - bye")
        else:
            player2 = names[match.player2_id]
            print(f"  M{match.match_number}: {player1} vs {player2} -> {names[match.winner_id]}")


def simulate(roster_file, seed=None):
    players = load_roster(roster_file)
    names = {p.id: p.name for p in players}
    rng = random.Random(seed)

    sizing = describe_initial_round(players)
    logger.info(f"{sizing['player_count']} players, bracket of {sizing['bracket_size']}, "
                f"{sizing['bye_count']} byes, {sizing['total_rounds']} rounds")

    matches, total_rounds = build_initial_round(players, 'simulation', rng=rng)
    all_matches = list(matches)
    current_round = 1
    while True:
        play_round(matches, rng)
        print_round(matches, current_round, total_rounds, names)
        progress = compute_progress(all_matches, total_rounds)
        if not can_advance(progress):
            break
        current_round += 1
        matches = build_next_round(matches, current_round, 'simulation')
        all_matches.extend(matches)

    print(f"\nChampion: {names[progress['champion_id']]}")
    return progress['champion_id']


def create_admin(username, password):
    from app import create_user
    ok, msg = create_user(username, password, role='admin')
    print(msg)
    return ok


def main(argv=None):
    parser = argparse.ArgumentParser(description='Single elimination bracket manager')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    simulate_parser = subparsers.add_parser('simulate', help='Play out a random bracket from a roster workbook or CSV')
    simulate_parser.add_argument('roster', help='.xlsx or .csv file with Name, Email, Phone, Team columns')
    simulate_parser.add_argument('--seed', type=int, default=None, help='Seed for shuffling and results')

    admin_parser = subparsers.add_parser('create-admin', help='Create an admin account')
    admin_parser.add_argument('username')
    admin_parser.add_argument('password')

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(levelname)s %(name)s: %(message)s',
    )

    if args.command == 'simulate':
        try:
            simulate(args.roster, seed=args.seed)
        except (RosterParseError, BracketError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        return 0
    return 0 if create_admin(args.username, args.password) else 1


if __name__ == '__main__':
    sys.exit(main())

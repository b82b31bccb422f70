"""
YAML file storage for tournaments, players and matches.

Layout under a data directory:
    tournaments.yaml                    registry of tournaments
    tournaments/<slug>/players.yaml     roster
    tournaments/<slug>/matches.yaml     every match of every round
"""
import logging
import os
import re
from datetime import datetime
from typing import List, Optional

import yaml
from filelock import FileLock

from core.errors import (
    TournamentNotFoundError,
    MatchNotFoundError,
    DuplicateMatchError,
    RoundClosedError,
)
from core.models import Player, Match, Tournament, MATCH_COMPLETED, MATCH_BYE

logger = logging.getLogger(__name__)


_locks = {}


def data_lock(data_dir: str) -> FileLock:
    """
    Lock guarding read-modify-write of anything under data_dir.

    The same FileLock instance is handed out for a directory, so a holder can
    call other storage functions that take the lock again.
    """
    os.makedirs(data_dir, exist_ok=True)
    path = os.path.abspath(os.path.join(data_dir, '.lock'))
    if path not in _locks:
        _locks[path] = FileLock(path, timeout=10)
    return _locks[path]


def slugify(name: str) -> str:
    """Convert tournament name to filesystem-safe slug."""
    slug = name.lower().strip()
    slug = re.sub(r'[^a-z0-9\s-]', '', slug)
    slug = re.sub(r'[\s-]+', '-', slug)
    slug = slug.strip('-')
    return slug or 'tournament'


def _tournaments_file(data_dir: str) -> str:
    return os.path.join(data_dir, 'tournaments.yaml')


def _tournament_dir(data_dir: str, slug: str) -> str:
    return os.path.join(data_dir, 'tournaments', slug)


def _read_yaml(path: str) -> dict:
    if not os.path.exists(path):
        return {}
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.warning(f'Failed to parse {path}: {e}')
        return {}
    return data if isinstance(data, dict) else {}


def _write_yaml(path: str, data: dict):
    """Write YAML in one step so readers never see a half-written file."""
    os.makedirs(os.path.dirname(path), exist_ok=True)
    tmp_path = path + '.tmp'
    with open(tmp_path, 'w', encoding='utf-8') as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)
    os.replace(tmp_path, path)


# ---------------------------------------------------------------------------
# Tournaments
# ---------------------------------------------------------------------------

def load_tournaments(data_dir: str) -> List[Tournament]:
    """Load the tournament registry."""
    data = _read_yaml(_tournaments_file(data_dir))
    return [Tournament.from_dict(t) for t in data.get('tournaments', []) or []]


def save_tournaments(data_dir: str, tournaments: List[Tournament]):
    _write_yaml(_tournaments_file(data_dir), {'tournaments': [t.to_dict() for t in tournaments]})


def get_tournament(data_dir: str, slug: str) -> Tournament:
    for tournament in load_tournaments(data_dir):
        if tournament.slug == slug:
            return tournament
    raise TournamentNotFoundError(f'Tournament "{slug}" not found')


def create_tournament(data_dir: str, name: str, sport_type: Optional[str] = None,
                      description: str = '', created_by: Optional[str] = None) -> Tournament:
    """Register a new draft tournament. Raises ValueError on an empty or taken name."""
    name = (name or '').strip()
    if not name:
        raise ValueError('Tournament name is required.')
    slug = slugify(name)
    with data_lock(data_dir):
        tournaments = load_tournaments(data_dir)
        if any(t.slug == slug for t in tournaments):
            raise ValueError(f'A tournament with a similar name already exists ("{slug}").')
        tournament = Tournament(
            slug=slug,
            name=name,
            sport_type=sport_type,
            description=description or '',
            created=datetime.now().isoformat(),
            created_by=created_by,
        )
        tournaments.append(tournament)
        os.makedirs(_tournament_dir(data_dir, slug), exist_ok=True)
        save_tournaments(data_dir, tournaments)
    return tournament


def update_tournament(data_dir: str, slug: str, **fields) -> Tournament:
    """Update fields of a tournament record and return it."""
    with data_lock(data_dir):
        tournaments = load_tournaments(data_dir)
        for tournament in tournaments:
            if tournament.slug == slug:
                for key, value in fields.items():
                    if not hasattr(tournament, key):
                        raise AttributeError(f'Tournament has no field "{key}"')
                    setattr(tournament, key, value)
                save_tournaments(data_dir, tournaments)
                return tournament
    raise TournamentNotFoundError(f'Tournament "{slug}" not found')


def delete_tournament(data_dir: str, slug: str):
    """Remove a tournament from the registry along with its files."""
    with data_lock(data_dir):
        tournaments = load_tournaments(data_dir)
        remaining = [t for t in tournaments if t.slug != slug]
        if len(remaining) == len(tournaments):
            raise TournamentNotFoundError(f'Tournament "{slug}" not found')
        save_tournaments(data_dir, remaining)
        tournament_dir = _tournament_dir(data_dir, slug)
        for filename in ('players.yaml', 'matches.yaml'):
            path = os.path.join(tournament_dir, filename)
            if os.path.exists(path):
                os.remove(path)
        if os.path.isdir(tournament_dir) and not os.listdir(tournament_dir):
            os.rmdir(tournament_dir)


# ---------------------------------------------------------------------------
# Players
# ---------------------------------------------------------------------------

def _players_file(data_dir: str, slug: str) -> str:
    return os.path.join(_tournament_dir(data_dir, slug), 'players.yaml')


def load_players(data_dir: str, slug: str) -> List[Player]:
    data = _read_yaml(_players_file(data_dir, slug))
    return [Player.from_dict(p) for p in data.get('players', []) or []]


def load_active_players(data_dir: str, slug: str) -> List[Player]:
    return [p for p in load_players(data_dir, slug) if p.is_active]


def _next_player_number(players: List[Player]) -> int:
    highest = 0
    for player in players:
        match = re.fullmatch(r'p(\d+)', str(player.id))
        if match:
            highest = max(highest, int(match.group(1)))
    return highest + 1


def add_players(data_dir: str, slug: str, rows: List[dict]) -> List[Player]:
    """
    Append players to a tournament roster.

    Ids are assigned as p1, p2, ... continuing after the highest existing one.
    Returns the newly added players.
    """
    with data_lock(data_dir):
        players = load_players(data_dir, slug)
        number = _next_player_number(players)
        added = []
        for row in rows:
            added.append(Player(
                id=f'p{number}',
                name=row['name'],
                team_name=row.get('team_name', ''),
                email=row.get('email') or None,
                phone=row.get('phone') or None,
                is_active=True,
                tournament_id=slug,
            ))
            number += 1
        players.extend(added)
        _write_yaml(_players_file(data_dir, slug), {'players': [p.to_dict() for p in players]})
    return added


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------

def _matches_file(data_dir: str, slug: str) -> str:
    return os.path.join(_tournament_dir(data_dir, slug), 'matches.yaml')


def load_matches(data_dir: str, slug: str) -> List[Match]:
    """Load every match of a tournament, ordered by round then match number."""
    data = _read_yaml(_matches_file(data_dir, slug))
    matches = [Match.from_dict(m) for m in data.get('matches', []) or []]
    matches.sort(key=lambda m: (m.round_number, m.match_number))
    return matches


def load_round_matches(data_dir: str, slug: str, round_number: int) -> List[Match]:
    return [m for m in load_matches(data_dir, slug) if m.round_number == round_number]


def _save_matches(data_dir: str, slug: str, matches: List[Match]):
    _write_yaml(_matches_file(data_dir, slug), {'matches': [m.to_dict() for m in matches]})


def insert_matches(data_dir: str, slug: str, new_matches: List[Match]) -> List[Match]:
    """
    Insert a batch of matches, all or nothing.

    Raises DuplicateMatchError if any (tournament, round, match number) key
    already exists or repeats within the batch; nothing is written then.
    """
    with data_lock(data_dir):
        matches = load_matches(data_dir, slug)
        seen = {m.key for m in matches}
        for match in new_matches:
            if match.key in seen:
                raise DuplicateMatchError(
                    f'Match {match.match_number} of round {match.round_number} already exists'
                )
            seen.add(match.key)
        _save_matches(data_dir, slug, matches + list(new_matches))
    return list(new_matches)


def report_match_result(data_dir: str, slug: str, round_number: int, match_number: int,
                        winner_id, notes: Optional[str] = None) -> Match:
    """
    Record the winner of a match and mark it completed.

    Raises MatchNotFoundError for an unknown match, RoundClosedError once a
    later round has been stored, and ValueError when the match is a bye or
    winner_id did not play in it.
    """
    with data_lock(data_dir):
        matches = load_matches(data_dir, slug)
        if any(m.round_number > round_number for m in matches):
            raise RoundClosedError(f'Round {round_number} is closed; round {round_number + 1} has already been drawn')
        for match in matches:
            if match.round_number == round_number and match.match_number == match_number:
                break
        else:
            raise MatchNotFoundError(f'Match {match_number} of round {round_number} not found')

        if match.status == MATCH_BYE:
            raise ValueError('Cannot record a result for a bye')
        if winner_id not in (match.player1_id, match.player2_id):
            raise ValueError('Winner must be one of the match players')

        match.winner_id = winner_id
        match.status = MATCH_COMPLETED
        match.notes = notes
        match.completed_at = datetime.now().isoformat()
        _save_matches(data_dir, slug, matches)
    return match


def commit_round(data_dir: str, slug: str, new_matches: List[Match], **fields) -> Tournament:
    """
    Store a new round and update the tournament record in one step.

    Both writes happen under the data lock. If the tournament record cannot
    be written the match file is put back, so a stored round never runs
    ahead of current_round.
    """
    with data_lock(data_dir):
        previous = load_matches(data_dir, slug)
        insert_matches(data_dir, slug, new_matches)
        try:
            return update_tournament(data_dir, slug, **fields)
        except Exception:
            _save_matches(data_dir, slug, previous)
            raise

"""
Flask web application for Bracket Manager.
"""
import os
import re
import random
from datetime import datetime, timedelta
from functools import wraps
from io import BytesIO

import yaml
from flask import Flask, request, jsonify, session, g, send_file
from werkzeug.security import generate_password_hash, check_password_hash

from core.elimination import (
    build_initial_round,
    build_next_round,
    describe_initial_round,
    get_round_name_for,
    group_matches_by_round,
)
from core.errors import (
    BracketError,
    TournamentNotFoundError,
    MatchNotFoundError,
    DuplicateMatchError,
    RoundClosedError,
)
from core.models import (
    SPORT_TYPES,
    TOURNAMENT_DRAFT,
    TOURNAMENT_ACTIVE,
    TOURNAMENT_COMPLETED,
)
from core.progress import compute_progress, can_advance
from roster import (
    RosterParseError,
    XLSX_MIMETYPE,
    build_sample_template,
    parse_roster_file,
    validate_players,
)
from storage import (
    data_lock,
    load_tournaments,
    get_tournament,
    create_tournament,
    update_tournament,
    delete_tournament,
    load_players,
    load_active_players,
    add_players,
    load_matches,
    commit_round,
    report_match_result,
)

app = Flask(__name__)


def _get_or_create_secret_key() -> bytes:
    """Get SECRET_KEY from env, or generate and persist to file."""
    env_key = os.environ.get('SECRET_KEY')
    if env_key:
        return env_key.encode() if isinstance(env_key, str) else env_key
    key_file = os.path.join(DATA_DIR, '.secret_key')
    if os.path.exists(key_file):
        with open(key_file, 'rb') as f:
            return f.read()
    key = os.urandom(24)
    os.makedirs(os.path.dirname(key_file), exist_ok=True)
    with open(key_file, 'wb') as f:
        f.write(key)
    return key


BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('TOURNAMENT_DATA_DIR', os.path.join(BASE_DIR, 'data'))

app.secret_key = _get_or_create_secret_key()
app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(days=30)
MAX_UPLOAD_SIZE = 10 * 1024 * 1024  # 10 MB
app.config['MAX_CONTENT_LENGTH'] = MAX_UPLOAD_SIZE
# Seed for first-round shuffles; None draws fresh entropy on every generation
app.config.setdefault('BRACKET_SEED', None)

USERS_FILE = os.path.join(DATA_DIR, 'users.yaml')

ROLE_ADMIN = 'admin'
ROLE_PLAYER = 'player'
ADMIN_USERS = {
    name.strip().lower()
    for name in os.environ.get('BRACKET_ADMIN_USERS', '').split(',')
    if name.strip()
}


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

def load_users() -> list:
    """Load user registry from YAML."""
    if not os.path.exists(USERS_FILE):
        return []
    try:
        with open(USERS_FILE, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        return data.get('users', []) if data else []
    except yaml.YAMLError as e:
        app.logger.warning(f'Failed to parse {USERS_FILE}: {e}')
        return []


def save_users(users: list):
    """Save user registry to YAML."""
    os.makedirs(os.path.dirname(USERS_FILE), exist_ok=True)
    with open(USERS_FILE, 'w', encoding='utf-8') as f:
        yaml.dump({'users': users}, f, default_flow_style=False)


def create_user(username: str, password: str, role: str = None) -> tuple:
    """Create a new user. Returns (success, message)."""
    username = username.lower().strip()
    if not re.match(r'^[a-z0-9][a-z0-9-]*$', username) or len(username) < 2:
        return False, 'Username must be at least 2 characters: letters, numbers, hyphens.'
    if len(password) < 4:
        return False, 'Password must be at least 4 characters.'
    if role is None:
        role = ROLE_ADMIN if username in ADMIN_USERS else ROLE_PLAYER
    if role not in (ROLE_ADMIN, ROLE_PLAYER):
        return False, f'Unknown role "{role}".'
    with data_lock(DATA_DIR):
        users = load_users()
        if any(u['username'] == username for u in users):
            return False, 'Username already taken.'
        users.append({
            'username': username,
            'password_hash': generate_password_hash(password),
            'role': role,
            'created': datetime.now().isoformat()
        })
        save_users(users)
    return True, 'Account created successfully.'


def authenticate_user(username: str, password: str):
    """Check username/password. Returns the user record if valid, else None."""
    users = load_users()
    for u in users:
        if u['username'] == username.lower().strip():
            if check_password_hash(u['password_hash'], password):
                return u
            return None
    return None


def get_user(username: str):
    for u in load_users():
        if u['username'] == username:
            return u
    return None


def _public_user(user: dict) -> dict:
    return {'username': user['username'], 'role': user.get('role', ROLE_PLAYER)}


def login_required(f):
    """Reject the request with 401 if the user is not authenticated."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_user(session.get('user')) if 'user' in session else None
        if user is None:
            return jsonify({'error': 'Authentication required'}), 401
        g.user = user
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """Reject the request with 403 unless the user is an admin."""
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        if g.user.get('role') != ROLE_ADMIN:
            return jsonify({'error': 'Admin access required'}), 403
        return f(*args, **kwargs)
    return decorated_function


def _request_data() -> dict:
    """Accept JSON bodies as well as form posts."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------

@app.errorhandler(BracketError)
def handle_bracket_error(e):
    return jsonify({'error': str(e)}), 400


@app.errorhandler(TournamentNotFoundError)
@app.errorhandler(MatchNotFoundError)
def handle_not_found(e):
    return jsonify({'error': str(e)}), 404


@app.errorhandler(DuplicateMatchError)
@app.errorhandler(RoundClosedError)
def handle_conflict(e):
    return jsonify({'error': str(e)}), 409


# ---------------------------------------------------------------------------
# Authentication routes
# ---------------------------------------------------------------------------

@app.route('/api/register', methods=['POST'])
def api_register():
    """Create an account and log it in."""
    data = _request_data()
    username = data.get('username', '')
    password = data.get('password', '')
    confirm = data.get('confirm_password', password)
    if password != confirm:
        return jsonify({'error': 'Passwords do not match.'}), 400
    ok, msg = create_user(username, password)
    if not ok:
        return jsonify({'error': msg}), 400
    session['user'] = username.lower().strip()
    session.permanent = True
    return jsonify({'success': True, 'message': msg, 'user': _public_user(get_user(session['user']))})


@app.route('/api/login', methods=['POST'])
def api_login():
    data = _request_data()
    user = authenticate_user(data.get('username', ''), data.get('password', ''))
    if user is None:
        return jsonify({'error': 'Invalid username or password.'}), 401
    session['user'] = user['username']
    session.permanent = True
    return jsonify({'success': True, 'user': _public_user(user)})


@app.route('/api/logout', methods=['POST'])
def api_logout():
    session.clear()
    return jsonify({'success': True})


@app.route('/api/me')
@login_required
def api_me():
    return jsonify(_public_user(g.user))


# ---------------------------------------------------------------------------
# Tournaments
# ---------------------------------------------------------------------------

def _progress_or_none(tournament, matches):
    if not matches:
        return None
    return compute_progress(matches, tournament.total_rounds, current_round=tournament.current_round)


@app.route('/api/tournaments', methods=['GET'])
@login_required
def api_list_tournaments():
    """List tournaments. Players only see tournaments that have started."""
    tournaments = load_tournaments(DATA_DIR)
    if g.user.get('role') != ROLE_ADMIN:
        tournaments = [t for t in tournaments if t.status in (TOURNAMENT_ACTIVE, TOURNAMENT_COMPLETED)]
    return jsonify({'tournaments': [t.to_dict() for t in tournaments]})


@app.route('/api/tournaments', methods=['POST'])
@admin_required
def api_create_tournament():
    data = _request_data()
    sport_type = data.get('sport_type') or None
    if sport_type and sport_type not in SPORT_TYPES:
        return jsonify({'error': f'Unknown sport type "{sport_type}".'}), 400
    try:
        tournament = create_tournament(
            DATA_DIR,
            data.get('name', ''),
            sport_type=sport_type,
            description=data.get('description', ''),
            created_by=g.user['username'],
        )
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    app.logger.info(f'Tournament "{tournament.slug}" created by {g.user["username"]}')
    return jsonify({'success': True, 'tournament': tournament.to_dict()}), 201


@app.route('/api/tournaments/<slug>', methods=['GET'])
@login_required
def api_get_tournament(slug):
    tournament = get_tournament(DATA_DIR, slug)
    matches = load_matches(DATA_DIR, slug)
    return jsonify({
        'tournament': tournament.to_dict(),
        'player_count': len(load_active_players(DATA_DIR, slug)),
        'progress': _progress_or_none(tournament, matches),
    })


@app.route('/api/tournaments/<slug>', methods=['DELETE'])
@admin_required
def api_delete_tournament(slug):
    delete_tournament(DATA_DIR, slug)
    app.logger.info(f'Tournament "{slug}" deleted by {g.user["username"]}')
    return jsonify({'success': True})


# ---------------------------------------------------------------------------
# Players
# ---------------------------------------------------------------------------

@app.route('/api/tournaments/<slug>/players', methods=['GET'])
@login_required
def api_list_players(slug):
    get_tournament(DATA_DIR, slug)
    return jsonify({'players': [p.to_dict() for p in load_players(DATA_DIR, slug)]})


@app.route('/api/tournaments/<slug>/players/template', methods=['GET'])
@login_required
def api_roster_template(slug):
    """Download a sample roster workbook to fill in and import."""
    get_tournament(DATA_DIR, slug)
    return send_file(
        BytesIO(build_sample_template()),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name='player_template.xlsx',
    )


@app.route('/api/tournaments/<slug>/players/import', methods=['POST'])
@admin_required
def api_import_players(slug):
    """Import a roster from an uploaded Excel workbook or CSV file."""
    file = request.files.get('roster_file')
    if not file or not file.filename:
        return jsonify({'error': 'Please select a roster file to import.'}), 400

    try:
        rows = parse_roster_file(file.filename, file.read())
    except RosterParseError as e:
        return jsonify({'error': str(e)}), 400

    validation = validate_players(rows)
    if not validation['valid']:
        return jsonify({'error': 'Roster validation failed', **validation}), 400

    with data_lock(DATA_DIR):
        tournament = get_tournament(DATA_DIR, slug)
        if tournament.status != TOURNAMENT_DRAFT:
            return jsonify({'error': 'Players can only be imported before the bracket is generated'}), 409
        added = add_players(DATA_DIR, slug, rows)

    app.logger.info(f'Imported {len(added)} player(s) into "{slug}"')
    return jsonify({
        'success': True,
        'imported': len(added),
        'players': [p.to_dict() for p in added],
        'warnings': validation['warnings'],
    })


# ---------------------------------------------------------------------------
# Bracket
# ---------------------------------------------------------------------------

def _bracket_rng() -> random.Random:
    return random.Random(app.config.get('BRACKET_SEED'))


@app.route('/api/tournaments/<slug>/bracket/generate', methods=['POST'])
@admin_required
def api_generate_bracket(slug):
    """Shuffle the roster into a first round and start the tournament."""
    with data_lock(DATA_DIR):
        tournament = get_tournament(DATA_DIR, slug)
        if tournament.status != TOURNAMENT_DRAFT or load_matches(DATA_DIR, slug):
            return jsonify({'error': 'Bracket has already been generated'}), 409

        players = load_active_players(DATA_DIR, slug)
        matches, total_rounds = build_initial_round(players, slug, rng=_bracket_rng())
        tournament = commit_round(
            DATA_DIR, slug, matches,
            status=TOURNAMENT_ACTIVE,
            current_round=1,
            total_rounds=total_rounds,
        )

    sizing = describe_initial_round(players)
    app.logger.info(
        f'Bracket generated for "{slug}": {sizing["player_count"]} players, '
        f'bracket of {sizing["bracket_size"]}, {sizing["bye_count"]} byes, {total_rounds} rounds'
    )
    return jsonify({
        'success': True,
        'tournament': tournament.to_dict(),
        'bye_count': sizing['bye_count'],
        'matches': [m.to_dict() for m in matches],
    })


@app.route('/api/tournaments/<slug>/bracket/advance', methods=['POST'])
@admin_required
def api_advance_round(slug):
    """Pair the winners of the current round into the next one."""
    with data_lock(DATA_DIR):
        tournament = get_tournament(DATA_DIR, slug)
        matches = load_matches(DATA_DIR, slug)
        if tournament.status != TOURNAMENT_ACTIVE or not matches:
            return jsonify({'error': 'Tournament is not in progress'}), 409

        progress = _progress_or_none(tournament, matches)
        if not can_advance(progress):
            if progress['is_complete']:
                return jsonify({'error': 'Tournament is already complete'}), 409
            return jsonify({'error': f'Round {tournament.current_round} is not complete yet'}), 409

        current_round_matches = [m for m in matches if m.round_number == tournament.current_round]
        next_round_number = tournament.current_round + 1
        next_matches = build_next_round(current_round_matches, next_round_number, slug)
        tournament = commit_round(DATA_DIR, slug, next_matches, current_round=next_round_number)

    app.logger.info(f'Round {next_round_number} generated for "{slug}" with {len(next_matches)} match(es)')
    return jsonify({
        'success': True,
        'tournament': tournament.to_dict(),
        'matches': [m.to_dict() for m in next_matches],
    })


@app.route('/api/tournaments/<slug>/matches/<int:round_number>/<int:match_number>/result', methods=['POST'])
@admin_required
def api_report_result(slug, round_number, match_number):
    """Record the winner of a match in the current round."""
    data = _request_data()
    winner_id = data.get('winner_id')

    with data_lock(DATA_DIR):
        tournament = get_tournament(DATA_DIR, slug)
        if tournament.status != TOURNAMENT_ACTIVE:
            return jsonify({'error': 'Tournament is not in progress'}), 409
        if round_number != tournament.current_round:
            return jsonify({'error': f'Only results of round {tournament.current_round} can be recorded'}), 409
        if not winner_id:
            return jsonify({'error': 'Please select a winner'}), 400

        try:
            match = report_match_result(
                DATA_DIR, slug, round_number, match_number,
                winner_id, notes=data.get('notes') or None,
            )
        except ValueError as e:
            return jsonify({'error': str(e)}), 400
        app.logger.info(f'Result recorded for "{slug}" R{round_number}-M{match_number}: winner {winner_id}')

        progress = _progress_or_none(tournament, load_matches(DATA_DIR, slug))
        if progress['is_complete']:
            tournament = update_tournament(
                DATA_DIR, slug,
                status=TOURNAMENT_COMPLETED,
                champion_id=progress['champion_id'],
            )
            app.logger.info(f'Tournament "{slug}" complete, champion {progress["champion_id"]}')

    return jsonify({
        'success': True,
        'match': match.to_dict(),
        'tournament': tournament.to_dict(),
        'progress': progress,
    })


@app.route('/api/tournaments/<slug>/bracket', methods=['GET'])
@login_required
def api_bracket(slug):
    """Bracket grouped by round, with player names filled in."""
    tournament = get_tournament(DATA_DIR, slug)
    matches = load_matches(DATA_DIR, slug)
    names = {p.id: p.name for p in load_players(DATA_DIR, slug)}

    rounds = []
    for round_number, round_matches in group_matches_by_round(matches).items():
        round_data = []
        for match in round_matches:
            match_data = match.to_dict()
            match_data['player1_name'] = names.get(match.player1_id)
            match_data['player2_name'] = names.get(match.player2_id) if match.player2_id else 'BYE'
            match_data['winner_name'] = names.get(match.winner_id)
            round_data.append(match_data)
        rounds.append({
            'round_number': round_number,
            'name': get_round_name_for(round_number, tournament.total_rounds),
            'matches': round_data,
        })

    return jsonify({
        'tournament': tournament.to_dict(),
        'rounds': rounds,
        'progress': _progress_or_none(tournament, matches),
    })


if __name__ == '__main__':
    app.run(debug=True)

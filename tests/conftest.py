"""
Shared pytest fixtures for bracket manager tests.

Running tests:
    pytest tests/
"""
import pytest
import sys
import os
import yaml

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
# Keep app import from writing a secret key file into the repo
os.environ.setdefault('SECRET_KEY', 'test-secret-key')

from core.models import Player


class FixedOrder:
    """Stand-in for random.Random whose shuffle applies a known permutation.

    With no order the list is left as it is.
    """

    def __init__(self, order=None):
        self.order = order

    def shuffle(self, items):
        if self.order is None:
            return
        items[:] = [items[i] for i in self.order]


@pytest.fixture
def fixed_order():
    return FixedOrder


def make_players(count):
    return [Player(id=f'p{i}', name=f'Player {i}', team_name=f'Team {i % 3}') for i in range(1, count + 1)]


@pytest.fixture
def players_factory():
    return make_players


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    """Point the app at an empty temporary data directory."""
    import app as app_module

    users_file = tmp_path / 'users.yaml'
    users_file.write_text(yaml.dump({'users': [
        {'username': 'admin', 'password_hash': 'unused', 'role': 'admin', 'created': '2026-01-01'},
        {'username': 'player', 'password_hash': 'unused', 'role': 'player', 'created': '2026-01-01'},
    ]}, default_flow_style=False))

    monkeypatch.setattr(app_module, 'DATA_DIR', str(tmp_path))
    monkeypatch.setattr(app_module, 'USERS_FILE', str(users_file))
    app_module.app.config['BRACKET_SEED'] = 1234
    yield str(tmp_path)
    app_module.app.config['BRACKET_SEED'] = None


def _client_as(username):
    from app import app
    app.config['TESTING'] = True
    client = app.test_client()
    if username:
        with client.session_transaction() as sess:
            sess['user'] = username
    return client


@pytest.fixture
def admin_client(data_dir):
    """Test client logged in as an admin."""
    with _client_as('admin') as client:
        yield client


@pytest.fixture
def player_client(data_dir):
    """Test client logged in as a player."""
    with _client_as('player') as client:
        yield client


@pytest.fixture
def anon_client(data_dir):
    with _client_as(None) as client:
        yield client


@pytest.fixture
def roster_csv():
    """Five-player roster in the spreadsheet export format."""
    return (
        "Name,Email,Phone,Team\n"
        "Alice,alice@example.com,111,Red\n"
        "Bob,bob@example.com,222,Blue\n"
        "Carol,carol@example.com,333,Red\n"
        "Dave,,444,Green\n"
        "Erin,erin@example.com,555,Blue\n"
    )

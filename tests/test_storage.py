"""
Tests for YAML storage of tournaments, players and matches.
"""
import pytest
import sys
import os
import yaml

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import storage
from storage import (
    slugify,
    load_tournaments,
    get_tournament,
    create_tournament,
    update_tournament,
    delete_tournament,
    load_players,
    load_active_players,
    add_players,
    load_matches,
    load_round_matches,
    insert_matches,
    report_match_result,
    commit_round,
    data_lock,
)
from core.errors import TournamentNotFoundError, MatchNotFoundError, DuplicateMatchError, RoundClosedError
from core.models import Match, MATCH_BYE, MATCH_COMPLETED, TOURNAMENT_ACTIVE


@pytest.fixture
def store(tmp_path):
    return str(tmp_path)


@pytest.fixture
def tournament(store):
    return create_tournament(store, 'Spring Cup', sport_type='Chess', created_by='admin')


class TestSlugify:

    def test_slugify(self):
        assert slugify('Spring Cup 2026!') == 'spring-cup-2026'
        assert slugify('  --  ') == 'tournament'


class TestTournaments:

    def test_create_and_load(self, store, tournament):
        assert tournament.slug == 'spring-cup'
        loaded = get_tournament(store, 'spring-cup')
        assert loaded.name == 'Spring Cup'
        assert loaded.sport_type == 'Chess'
        assert loaded.created_by == 'admin'
        assert os.path.isdir(os.path.join(store, 'tournaments', 'spring-cup'))

    def test_create_requires_name(self, store):
        with pytest.raises(ValueError):
            create_tournament(store, '   ')

    def test_create_rejects_duplicate_slug(self, store, tournament):
        with pytest.raises(ValueError):
            create_tournament(store, 'spring  cup')

    def test_get_unknown(self, store):
        with pytest.raises(TournamentNotFoundError):
            get_tournament(store, 'missing')

    def test_update(self, store, tournament):
        updated = update_tournament(store, 'spring-cup', status=TOURNAMENT_ACTIVE, current_round=1, total_rounds=3)
        assert updated.status == TOURNAMENT_ACTIVE
        assert get_tournament(store, 'spring-cup').total_rounds == 3

    def test_update_unknown_field(self, store, tournament):
        with pytest.raises(AttributeError):
            update_tournament(store, 'spring-cup', colour='red')

    def test_delete(self, store, tournament):
        add_players(store, 'spring-cup', [{'name': 'Alice', 'team_name': 'Red'}])
        delete_tournament(store, 'spring-cup')
        assert load_tournaments(store) == []
        assert not os.path.exists(os.path.join(store, 'tournaments', 'spring-cup'))

    def test_delete_unknown(self, store):
        with pytest.raises(TournamentNotFoundError):
            delete_tournament(store, 'missing')

    def test_corrupt_registry_treated_as_empty(self, store):
        with open(os.path.join(store, 'tournaments.yaml'), 'w', encoding='utf-8') as f:
            f.write('tournaments: [unclosed')
        assert load_tournaments(store) == []


class TestPlayers:

    def test_add_players_assigns_ids(self, store, tournament):
        added = add_players(store, 'spring-cup', [
            {'name': 'Alice', 'team_name': 'Red', 'email': 'a@example.com'},
            {'name': 'Bob', 'team_name': 'Blue', 'email': ''},
        ])
        assert [p.id for p in added] == ['p1', 'p2']
        assert added[1].email is None
        assert [p.name for p in load_players(store, 'spring-cup')] == ['Alice', 'Bob']

    def test_ids_continue_after_existing(self, store, tournament):
        add_players(store, 'spring-cup', [{'name': 'Alice', 'team_name': 'Red'}])
        added = add_players(store, 'spring-cup', [{'name': 'Bob', 'team_name': 'Blue'}])
        assert added[0].id == 'p2'

    def test_inactive_players_filtered(self, store, tournament):
        add_players(store, 'spring-cup', [{'name': 'Alice', 'team_name': 'Red'},
                                          {'name': 'Bob', 'team_name': 'Blue'}])
        path = os.path.join(store, 'tournaments', 'spring-cup', 'players.yaml')
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        data['players'][0]['is_active'] = False
        with open(path, 'w', encoding='utf-8') as f:
            yaml.dump(data, f)
        assert [p.id for p in load_active_players(store, 'spring-cup')] == ['p2']

    def test_no_players_file(self, store, tournament):
        assert load_players(store, 'spring-cup') == []


class TestMatches:

    def first_round(self):
        return [
            Match('spring-cup', 1, 1, 'p1', 'p2'),
            Match('spring-cup', 1, 2, 'p3', None, winner_id='p3', status=MATCH_BYE),
        ]

    def test_insert_and_load(self, store, tournament):
        insert_matches(store, 'spring-cup', self.first_round())
        assert load_matches(store, 'spring-cup') == self.first_round()
        assert len(load_round_matches(store, 'spring-cup', 1)) == 2
        assert load_round_matches(store, 'spring-cup', 2) == []

    def test_loaded_in_round_and_match_order(self, store, tournament):
        insert_matches(store, 'spring-cup', [Match('spring-cup', 2, 1, 'p1', 'p3'),
                                             Match('spring-cup', 1, 2, 'p3', 'p4'),
                                             Match('spring-cup', 1, 1, 'p1', 'p2')])
        assert [m.key[1:] for m in load_matches(store, 'spring-cup')] == [(1, 1), (1, 2), (2, 1)]

    def test_duplicate_insert_writes_nothing(self, store, tournament):
        insert_matches(store, 'spring-cup', self.first_round())
        batch = [Match('spring-cup', 2, 1, 'p2', 'p3'), Match('spring-cup', 1, 2, 'p9', 'p8')]
        with pytest.raises(DuplicateMatchError):
            insert_matches(store, 'spring-cup', batch)
        assert load_matches(store, 'spring-cup') == self.first_round()

    def test_duplicate_within_batch(self, store, tournament):
        with pytest.raises(DuplicateMatchError):
            insert_matches(store, 'spring-cup', [Match('spring-cup', 1, 1, 'a', 'b'),
                                                 Match('spring-cup', 1, 1, 'c', 'd')])
        assert load_matches(store, 'spring-cup') == []

    def test_report_result(self, store, tournament):
        insert_matches(store, 'spring-cup', self.first_round())
        match = report_match_result(store, 'spring-cup', 1, 1, 'p2', notes='3-1')
        assert match.winner_id == 'p2'
        assert match.status == MATCH_COMPLETED
        assert match.completed_at is not None
        stored = load_round_matches(store, 'spring-cup', 1)[0]
        assert stored.winner_id == 'p2'
        assert stored.notes == '3-1'

    def test_report_result_can_be_corrected(self, store, tournament):
        insert_matches(store, 'spring-cup', self.first_round())
        report_match_result(store, 'spring-cup', 1, 1, 'p2')
        report_match_result(store, 'spring-cup', 1, 1, 'p1')
        assert load_round_matches(store, 'spring-cup', 1)[0].winner_id == 'p1'

    def test_report_result_rejects_bye(self, store, tournament):
        insert_matches(store, 'spring-cup', self.first_round())
        with pytest.raises(ValueError):
            report_match_result(store, 'spring-cup', 1, 2, 'p3')

    def test_report_result_rejects_outsider(self, store, tournament):
        insert_matches(store, 'spring-cup', self.first_round())
        with pytest.raises(ValueError):
            report_match_result(store, 'spring-cup', 1, 1, 'p3')

    def test_report_result_unknown_match(self, store, tournament):
        with pytest.raises(MatchNotFoundError):
            report_match_result(store, 'spring-cup', 1, 9, 'p1')

    def test_report_result_rejected_once_next_round_stored(self, store, tournament):
        insert_matches(store, 'spring-cup', self.first_round())
        report_match_result(store, 'spring-cup', 1, 1, 'p1')
        insert_matches(store, 'spring-cup', [Match('spring-cup', 2, 1, 'p1', 'p3')])
        with pytest.raises(RoundClosedError):
            report_match_result(store, 'spring-cup', 1, 1, 'p2')
        assert load_round_matches(store, 'spring-cup', 1)[0].winner_id == 'p1'


class TestCommitRound:

    def second_round(self):
        return [Match('spring-cup', 2, 1, 'p1', 'p3')]

    def test_commit_round_stores_matches_and_record(self, store, tournament):
        insert_matches(store, 'spring-cup', [Match('spring-cup', 1, 1, 'p1', 'p2', winner_id='p1')])
        updated = commit_round(store, 'spring-cup', self.second_round(), current_round=2)
        assert updated.current_round == 2
        assert get_tournament(store, 'spring-cup').current_round == 2
        assert load_round_matches(store, 'spring-cup', 2) == self.second_round()

    def test_failed_record_update_restores_matches(self, store, tournament, monkeypatch):
        first = [Match('spring-cup', 1, 1, 'p1', 'p2', winner_id='p1')]
        insert_matches(store, 'spring-cup', first)

        def fail(*args, **kwargs):
            raise OSError('disk full')

        monkeypatch.setattr(storage, 'update_tournament', fail)
        with pytest.raises(OSError):
            commit_round(store, 'spring-cup', self.second_round(), current_round=2)
        assert load_matches(store, 'spring-cup') == first
        assert get_tournament(store, 'spring-cup').current_round == 0

        monkeypatch.undo()
        commit_round(store, 'spring-cup', self.second_round(), current_round=2)
        assert get_tournament(store, 'spring-cup').current_round == 2

    def test_duplicate_round_leaves_record_alone(self, store, tournament):
        insert_matches(store, 'spring-cup', self.second_round())
        with pytest.raises(DuplicateMatchError):
            commit_round(store, 'spring-cup', self.second_round(), current_round=2)
        assert get_tournament(store, 'spring-cup').current_round == 0


class TestDataLock:

    def test_same_lock_for_a_directory(self, store):
        assert data_lock(store) is data_lock(store)

    def test_lock_can_be_taken_again_by_holder(self, store, tournament):
        with data_lock(store):
            add_players(store, 'spring-cup', [{'name': 'Alice', 'team_name': 'Red'}])
            update_tournament(store, 'spring-cup', description='Held under one lock')
        assert get_tournament(store, 'spring-cup').description == 'Held under one lock'
        assert [p.name for p in load_players(store, 'spring-cup')] == ['Alice']

"""
Route tests for the league finals bracket.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))


def create_finals(client, tournament_id, nominees, title='Club Finals'):
    return client.post(f'/tournaments/{tournament_id}/league/finals', json={'title': title, 'nominees': nominees})


def final_match(store, bracket_id, round_no, match_no):
    return store.snapshot().first('final_matches', bracket_id=bracket_id, round_no=round_no, match_no=match_no)


def entry(store, bracket_id, round_no, slot_no):
    row = store.snapshot().first('final_round_entries', bracket_id=bracket_id, round_no=round_no, slot_no=slot_no)
    return row['player_id'] if row else None


@pytest.fixture
def three_finalists(admin_client, make_players, make_tournament, default_player_id):
    """Three nominees padded to a 4-slot bracket; seed 1 gets the bye."""
    players = make_players(3)
    tournament = make_tournament(best_of=1)
    response = create_finals(admin_client, tournament['id'], players)
    assert response.status_code == 201
    return response.get_json(), players, tournament


class TestCreateFinals:
    """Tests for building the finals bracket."""

    def test_three_nominees_padded_to_four(self, three_finalists, club_store, default_player_id):
        data, players, _ = three_finalists
        bracket_id = data['bracket']['id']
        assert data['bracket']['size'] == 4
        assert data['padded'] == 1
        assert data['byes'] == 1
        assert [entry(club_store, bracket_id, 1, s) for s in (1, 2, 3, 4)] == [
            players[0], default_player_id, players[1], players[2],
        ]

    def test_bye_resolved_without_rating(self, three_finalists, club_store, default_player_id):
        data, players, _ = three_finalists
        bracket_id = data['bracket']['id']
        bye = final_match(club_store, bracket_id, 1, 1)
        assert bye['status'] == 'finalized'
        assert bye['winner_id'] == players[0]
        assert bye['loser_id'] == default_player_id
        assert bye['end_reason'] == 'walkover'
        assert bye['affects_rating'] is False

        view = club_store.snapshot()
        assert view.get('players', players[0])['ranking_points'] == 1000
        assert view.get('players', players[0])['wins'] == 0

        assert entry(club_store, bracket_id, 2, 1) == players[0]
        final = final_match(club_store, bracket_id, 2, 1)
        assert final['player_a_id'] == players[0]
        assert final['player_b_id'] is None

    def test_default_round_labels(self, three_finalists, client):
        data, _, _ = three_finalists
        labels = client.get(f'/finals/{data["bracket"]["id"]}').get_json()['labels']
        assert labels == {'1': 'Semifinal', '2': 'Final'}

    def test_missing_default_player(self, admin_client, club_store, make_players, make_tournament):
        tournament = make_tournament()
        response = create_finals(admin_client, tournament['id'], make_players(3))
        assert response.status_code == 422
        assert 'default player' in response.get_json()['error']
        assert club_store.snapshot().rows('final_brackets') == []

    def test_power_of_two_needs_no_default(self, admin_client, make_players, make_tournament):
        tournament = make_tournament()
        response = create_finals(admin_client, tournament['id'], make_players(4))
        assert response.status_code == 201
        assert response.get_json()['padded'] == 0

    def test_second_bracket_conflicts(self, three_finalists, admin_client, make_players):
        _, _, tournament = three_finalists
        response = create_finals(admin_client, tournament['id'], make_players(2))
        assert response.status_code == 409

    def test_too_few_nominees(self, admin_client, make_players, make_tournament, default_player_id):
        tournament = make_tournament()
        response = create_finals(admin_client, tournament['id'], make_players(1))
        assert response.status_code == 400

    def test_unknown_nominee(self, admin_client, make_players, make_tournament, default_player_id):
        tournament = make_tournament()
        response = create_finals(admin_client, tournament['id'], make_players(2) + ['ghost'])
        assert response.status_code == 404

    def test_default_player_nominee_rejected(self, admin_client, club_store, make_players, make_tournament,
                                             default_player_id):
        tournament = make_tournament()
        response = create_finals(admin_client, tournament['id'], [default_player_id] + make_players(2))
        assert response.status_code == 400
        assert response.get_json()['error'] == 'the default player cannot be nominated'
        assert club_store.snapshot().rows('final_brackets') == []

    def test_requires_admin(self, member_client, make_tournament):
        tournament = make_tournament()
        assert create_finals(member_client, tournament['id'], ['a', 'b']).status_code == 403


class TestReportFinals:
    """Tests for reporting finals results."""

    def test_winner_advances_and_champion_is_set(self, three_finalists, admin_client, club_store):
        data, players, _ = three_finalists
        bracket_id = data['bracket']['id']

        response = admin_client.post('/finals/report', json={
            'bracket_id': bracket_id, 'round_no': 1, 'match_no': 2,
            'winner_id': players[1], 'loser_id': players[2], 'loser_score': 9,
        })
        body = response.get_json()
        assert body['success'] is True
        assert body['match']['winner_score'] == 15
        assert entry(club_store, bracket_id, 2, 2) == players[1]
        assert final_match(club_store, bracket_id, 2, 1)['player_b_id'] == players[1]

        response = admin_client.post('/finals/report', json={
            'bracket_id': bracket_id, 'round_no': '2', 'match_no': '1',
            'winner_id': players[0], 'loser_id': players[1], 'loser_score': 3,
        })
        assert response.get_json()['champion_player_id'] == players[0]
        bracket = admin_client.get(f'/finals/{bracket_id}').get_json()
        assert bracket['champion_player_id'] == players[0]
        assert len(bracket['matches']) == 3

    def test_rated_final_moves_points(self, three_finalists, admin_client, club_store):
        data, players, _ = three_finalists
        admin_client.post('/finals/report', json={
            'bracket_id': data['bracket']['id'], 'round_no': 1, 'match_no': 2,
            'winner_id': players[2], 'loser_id': players[1], 'loser_score': 7,
        })
        view = club_store.snapshot()
        assert view.get('players', players[2])['ranking_points'] == 1020
        assert view.get('players', players[1])['ranking_points'] == 980

    def test_bye_match_report_is_a_no_op(self, three_finalists, admin_client):
        data, players, _ = three_finalists
        response = admin_client.post('/finals/report', json={
            'bracket_id': data['bracket']['id'], 'round_no': 1, 'match_no': 1,
            'winner_id': players[0], 'loser_id': 'x',
        })
        assert response.get_json()['already_finalized'] is True

    def test_missing_side(self, three_finalists, admin_client):
        data, players, _ = three_finalists
        response = admin_client.post('/finals/report', json={
            'bracket_id': data['bracket']['id'], 'round_no': 2, 'match_no': 1,
            'winner_id': players[0], 'loser_id': players[1],
        })
        assert response.status_code == 400
        assert response.get_json()['error'] == 'missing sides'

    def test_unknown_bracket(self, admin_client):
        response = admin_client.post('/finals/report', json={'bracket_id': 'nope', 'round_no': 1, 'match_no': 1})
        assert response.status_code == 404

    def test_round_beyond_final(self, three_finalists, admin_client):
        data, _, _ = three_finalists
        response = admin_client.post('/finals/report', json={
            'bracket_id': data['bracket']['id'], 'round_no': 3, 'match_no': 1,
        })
        assert response.status_code == 400

    def test_best_of_three_advantage(self, admin_client, club_store, make_players, make_tournament,
                                     default_player_id):
        """The finalist who played round 1 is spotted game 1 against the bye winner."""
        players = make_players(3)
        tournament = make_tournament(best_of=3)
        bracket_id = create_finals(admin_client, tournament['id'], players).get_json()['bracket']['id']

        semi = admin_client.post('/finals/report', json={
            'bracket_id': bracket_id, 'round_no': 1, 'match_no': 2,
            'winner_id': players[2], 'loser_id': players[1],
            'sets': [{'a': 3, 'b': 15}, {'a': 5, 'b': 15}],
        }).get_json()
        assert (semi['match']['winner_score'], semi['match']['loser_score']) == (2, 0)
        assert semi['advantage'] is None

        final = admin_client.post('/finals/report', json={
            'bracket_id': bracket_id, 'round_no': 2, 'match_no': 1,
            'winner_id': players[2], 'loser_id': players[0],
            'sets': [None, {'a': 15, 'b': 10}, {'a': 4, 'b': 15}],
        }).get_json()
        assert final['advantage'] == {'normal_player_id': players[2], 'default_player_id': players[0]}
        assert (final['match']['winner_score'], final['match']['loser_score']) == (2, 1)
        assert final['match']['sets'][0]['win_type'] == 'def'
        assert final['champion_player_id'] == players[2]

    def test_series_must_match_winner(self, admin_client, make_players, make_tournament, default_player_id):
        players = make_players(4)
        tournament = make_tournament(best_of=3)
        bracket_id = create_finals(admin_client, tournament['id'], players).get_json()['bracket']['id']
        response = admin_client.post('/finals/report', json={
            'bracket_id': bracket_id, 'round_no': 1, 'match_no': 1,
            'winner_id': players[3], 'loser_id': players[0],
            'sets': [{'a': 15, 'b': 1}, {'a': 15, 'b': 2}],
        })
        assert response.status_code == 400

    def test_single_game_must_match_winner(self, admin_client, club_store, make_players, make_tournament,
                                           default_player_id):
        players = make_players(4)
        tournament = make_tournament(best_of=1)
        bracket_id = create_finals(admin_client, tournament['id'], players).get_json()['bracket']['id']
        response = admin_client.post('/finals/report', json={
            'bracket_id': bracket_id, 'round_no': 1, 'match_no': 1,
            'winner_id': players[3], 'loser_id': players[0],
            'sets': [{'a': 15, 'b': 1}],
        })
        assert response.status_code == 400
        assert response.get_json()['error'] == 'series result does not match winner'
        assert final_match(club_store, bracket_id, 1, 1)['status'] != 'finalized'
        assert entry(club_store, bracket_id, 2, 1) is None

        response = admin_client.post('/finals/report', json={
            'bracket_id': bracket_id, 'round_no': 1, 'match_no': 1,
            'winner_id': players[0], 'loser_id': players[3],
            'sets': [{'a': 15, 'b': 1}],
        })
        assert response.status_code == 200
        match = response.get_json()['match']
        assert (match['winner_score'], match['loser_score']) == (1, 0)
        assert entry(club_store, bracket_id, 2, 1) == players[0]

    def test_requires_admin(self, three_finalists, member_client):
        data, players, _ = three_finalists
        response = member_client.post('/finals/report', json={
            'bracket_id': data['bracket']['id'], 'round_no': 1, 'match_no': 2,
            'winner_id': players[1], 'loser_id': players[2],
        })
        assert response.status_code == 403


class TestFinalsAdmin:
    """Tests for slots, round labels and reset."""

    def test_slot_upsert(self, three_finalists, admin_client, club_store, make_players):
        data, _, _ = three_finalists
        bracket_id = data['bracket']['id']
        substitute = make_players(1, prefix='sub')[0]
        before = len(club_store.snapshot().rows('final_round_entries', bracket_id=bracket_id))
        response = admin_client.post('/finals/slot', json={
            'bracket_id': bracket_id, 'round_no': 1, 'slot_no': 4, 'player_id': substitute,
        })
        assert response.status_code == 200
        assert entry(club_store, bracket_id, 1, 4) == substitute
        assert len(club_store.snapshot().rows('final_round_entries', bracket_id=bracket_id)) == before

    def test_slot_requires_position(self, three_finalists, admin_client):
        data, _, _ = three_finalists
        response = admin_client.post('/finals/slot', json={'bracket_id': data['bracket']['id'], 'round_no': 0})
        assert response.status_code == 400

    def test_rename_rounds(self, three_finalists, admin_client, client):
        data, _, _ = three_finalists
        bracket_id = data['bracket']['id']
        response = admin_client.post(f'/finals/{bracket_id}/round-labels',
                                     json={'labels': {'1': 'Semis', '2': 'Grand Final'}})
        assert response.status_code == 200
        labels = client.get(f'/finals/{bracket_id}/round-labels').get_json()['labels']
        assert [(r['round_no'], r['label']) for r in labels] == [(1, 'Semis'), (2, 'Grand Final')]

    def test_rename_invalid_round(self, three_finalists, admin_client):
        data, _, _ = three_finalists
        response = admin_client.post(f'/finals/{data["bracket"]["id"]}/round-labels',
                                     json={'labels': {'5': 'Nope'}})
        assert response.status_code == 400

    def test_reset(self, three_finalists, admin_client, client):
        data, _, tournament = three_finalists
        response = admin_client.post(f'/tournaments/{tournament["id"]}/league/finals/reset')
        deleted = response.get_json()['deleted']
        assert deleted['brackets'] == 1
        assert deleted['entries'] == 6
        assert deleted['labels'] == 2
        assert deleted['matches'] == 3
        assert client.get(f'/finals/{data["bracket"]["id"]}').status_code == 404

import pytest

from ballotroom.catalog import get_catalog, nominee_id
from ballotroom.models import Prediction, Winner


def nid(category, primary):
    nominee = get_catalog().get_category(category).nominees
    for n in nominee:
        if (n.get('name') or n.get('film') or n.get('song')) == primary:
            return nominee_id(category, n)
    raise AssertionError(f"{primary} not nominated in {category}")


def create(client, host='Hal', code=None):
    body = {'host_name': host}
    if code:
        body['custom_code'] = code
    res = client.post('/api/rooms/create', json=body)
    assert res.status_code == 201
    return res.get_json()


def join(client, code, name, participant_id=None):
    body = {'room_code': code, 'participant_name': name}
    if participant_id is not None:
        body['participant_id'] = participant_id
    return client.post('/api/rooms/join', json=body)


def test_create_room(client):
    data = create(client)
    assert len(data['roomCode']) == 4
    room = client.get(f"/api/rooms/{data['roomId']}").get_json()
    assert room['host_id'] == data['hostId']
    assert room['phase'] == 'VOTING'
    assert room['current_category_id'] is None
    participants = client.get(f"/api/rooms/{data['roomId']}/participants").get_json()
    assert [(p['id'], p['is_host']) for p in participants] == [(data['hostId'], True)]


def test_create_room_with_custom_code(client):
    data = create(client, code='7f3k')
    assert data['roomCode'] == '7F3K'


@pytest.mark.parametrize('code', ['ABC', 'ABCDE', 'AB0D', 'OLIX', 'AB1D', 'AB-D'])
def test_create_room_rejects_bad_code(client, code):
    res = client.post('/api/rooms/create', json={'host_name': 'Hal', 'custom_code': code})
    assert res.status_code == 400
    assert res.get_json()['code'] == 'InvalidCodeFormat'


def test_create_room_code_taken(client):
    create(client, code='7F3K')
    res = client.post('/api/rooms/create', json={'host_name': 'Other', 'custom_code': '7f3k'})
    assert res.status_code == 409
    assert res.get_json()['code'] == 'CodeTaken'


def test_create_room_requires_host_name(client):
    assert client.post('/api/rooms/create', json={}).status_code == 400


def test_join_is_case_insensitive(client):
    room = create(client, code='7F3K')
    upper = join(client, '7F3K', 'Ava').get_json()
    lower = join(client, '7f3k', 'Ben').get_json()
    assert upper['roomId'] == lower['roomId'] == room['roomId']
    assert client.get('/api/rooms/code/7f3k').get_json()['id'] == room['roomId']


def test_join_unknown_room(client):
    res = join(client, 'ZZZZ', 'Ava')
    assert res.status_code == 404
    assert res.get_json()['code'] == 'RoomNotFound'


def test_rejoin_with_participant_id_reuses_record(client):
    room = create(client, code='7F3K')
    first = join(client, '7F3K', 'Ava')
    assert first.status_code == 201
    ava = first.get_json()
    assert ava['isRejoin'] is False
    again = join(client, '7f3k', 'Ava', participant_id=ava['participantId'])
    assert again.status_code == 200
    assert again.get_json()['participantId'] == ava['participantId']
    assert again.get_json()['isRejoin'] is True
    participants = client.get(f"/api/rooms/{room['roomId']}/participants").get_json()
    assert [p['name'] for p in participants] == ['Hal', 'Ava']


def test_rejoin_without_identity_creates_fresh_participant(client):
    create(client, code='7F3K')
    ava = join(client, '7F3K', 'Ava').get_json()
    fresh = join(client, '7F3K', 'Ava').get_json()
    assert fresh['isRejoin'] is False
    assert fresh['participantId'] != ava['participantId']


def test_participant_id_from_another_room_is_not_a_rejoin(client):
    create(client, code='AAAA')
    create(client, code='BBBB')
    ava = join(client, 'AAAA', 'Ava').get_json()
    other = join(client, 'BBBB', 'Ava', participant_id=ava['participantId']).get_json()
    assert other['isRejoin'] is False
    assert other['participantId'] != ava['participantId']


def test_revote_overwrites_prediction(client, flask_app):
    room = create(client, code='7F3K')
    ava = join(client, '7F3K', 'Ava').get_json()
    url = f"/api/rooms/{room['roomId']}/predictions"
    for pick in ('Hamnet', 'Sinners'):
        res = client.put(url, json={'participant_id': ava['participantId'], 'category_id': 'Best Picture',
                                    'nominee_id': nid('Best Picture', pick)})
        assert res.status_code == 200
    rows = client.get(url, query_string={'participant_id': ava['participantId']}).get_json()
    assert len(rows) == 1
    assert rows[0]['nominee_id'] == 'best-picture::sinners'
    assert Prediction.query.filter_by(participant_id=ava['participantId'], category_id='Best Picture').count() == 1


def test_host_cannot_vote(client):
    room = create(client)
    res = client.put(f"/api/rooms/{room['roomId']}/predictions", json={
        'participant_id': room['hostId'], 'category_id': 'Best Picture', 'nominee_id': 'best-picture::sinners'})
    assert res.status_code == 403
    assert res.get_json()['code'] == 'RoleViolation'


def test_vote_rejects_unknown_nominee(client):
    room = create(client, code='7F3K')
    ava = join(client, '7F3K', 'Ava').get_json()
    res = client.put(f"/api/rooms/{room['roomId']}/predictions", json={
        'participant_id': ava['participantId'], 'category_id': 'Best Picture', 'nominee_id': 'best-picture::cats'})
    assert res.status_code == 400
    assert res.get_json()['code'] == 'InvalidCategory'


def test_vote_after_voting_closed(client):
    room = create(client, code='7F3K')
    ava = join(client, '7F3K', 'Ava').get_json()
    client.post(f"/api/rooms/{room['roomId']}/phase", json={'participant_id': room['hostId'], 'phase': 'LIVE'})
    res = client.put(f"/api/rooms/{room['roomId']}/predictions", json={
        'participant_id': ava['participantId'], 'category_id': 'Best Picture', 'nominee_id': 'best-picture::sinners'})
    assert res.status_code == 409
    assert res.get_json()['code'] == 'PhaseClosed'


def test_redeclare_winner_overwrites(client):
    room = create(client)
    url = f"/api/rooms/{room['roomId']}/winners"
    for pick in ('Hamnet', 'Sinners'):
        res = client.put(url, json={'participant_id': room['hostId'], 'category_id': 'Best Picture',
                                    'nominee_id': nid('Best Picture', pick)})
        assert res.status_code == 200
    winners = client.get(url).get_json()
    assert [(w['category_id'], w['nominee_id']) for w in winners] == [('Best Picture', 'best-picture::sinners')]
    assert Winner.query.filter_by(room_id=room['roomId'], category_id='Best Picture').count() == 1


def test_guest_cannot_declare_winner(client):
    room = create(client, code='7F3K')
    ava = join(client, '7F3K', 'Ava').get_json()
    res = client.put(f"/api/rooms/{room['roomId']}/winners", json={
        'participant_id': ava['participantId'], 'category_id': 'Best Picture', 'nominee_id': 'best-picture::sinners'})
    assert res.status_code == 403


def test_phase_is_monotonic(client):
    room = create(client)
    url = f"/api/rooms/{room['roomId']}/phase"
    host = room['hostId']
    assert client.post(url, json={'participant_id': host, 'phase': 'CLOSED'}).status_code == 409
    assert client.post(url, json={'participant_id': host, 'phase': 'LIVE'}).get_json()['phase'] == 'LIVE'
    assert client.post(url, json={'participant_id': host, 'phase': 'VOTING'}).status_code == 409
    assert client.post(url, json={'participant_id': host, 'phase': 'CLOSED'}).get_json()['phase'] == 'CLOSED'
    res = client.post(url, json={'participant_id': host, 'phase': 'LIVE'})
    assert res.status_code == 409
    assert client.get(f"/api/rooms/{room['roomId']}").get_json()['phase'] == 'CLOSED'


def test_closed_room_is_read_only(client):
    room = create(client)
    url = f"/api/rooms/{room['roomId']}"
    host = room['hostId']
    client.post(f"{url}/phase", json={'participant_id': host, 'phase': 'LIVE'})
    client.post(f"{url}/phase", json={'participant_id': host, 'phase': 'CLOSED'})
    res = client.put(f"{url}/winners", json={'participant_id': host, 'category_id': 'Best Picture',
                                             'nominee_id': 'best-picture::sinners'})
    assert res.status_code == 409
    res = client.post(f"{url}/current-category", json={'participant_id': host, 'category_id': 'Best Sound'})
    assert res.status_code == 409


def test_set_current_category(client):
    room = create(client)
    url = f"/api/rooms/{room['roomId']}/current-category"
    res = client.post(url, json={'participant_id': room['hostId'], 'category_id': 'Best Sound'})
    assert res.get_json()['current_category_id'] == 'Best Sound'
    res = client.post(url, json={'participant_id': room['hostId'], 'category_id': 'Best Catering'})
    assert res.status_code == 400
    res = client.post(url, json={'participant_id': room['hostId'], 'category_id': None})
    assert res.get_json()['current_category_id'] is None


def test_leaderboard(client):
    room = create(client, code='7F3K')
    rid = room['roomId']
    ava = join(client, '7F3K', 'Ava').get_json()['participantId']
    ben = join(client, '7F3K', 'Ben').get_json()['participantId']
    client.put(f"/api/rooms/{rid}/predictions", json={'participant_id': ava, 'category_id': 'Best Picture', 'nominee_id': nid('Best Picture', 'Hamnet')})
    client.put(f"/api/rooms/{rid}/predictions", json={'participant_id': ben, 'category_id': 'Best Picture', 'nominee_id': nid('Best Picture', 'Sinners')})
    client.put(f"/api/rooms/{rid}/predictions", json={'participant_id': ben, 'category_id': 'Best Sound', 'nominee_id': nid('Best Sound', 'F1')})
    client.put(f"/api/rooms/{rid}/winners", json={'participant_id': room['hostId'], 'category_id': 'Best Picture', 'nominee_id': nid('Best Picture', 'Sinners')})

    board = client.get(f"/api/rooms/{rid}/leaderboard").get_json()
    assert [(e['name'], e['predictions_count'], e['score']) for e in board] == [
        ('Ben', 2, 1), ('Hal', 0, 0), ('Ava', 1, 0),
    ]


def test_unknown_room_reads(client):
    assert client.get('/api/rooms/999').status_code == 404
    assert client.get('/api/rooms/999/participants').status_code == 404
    assert client.get('/api/rooms/999/leaderboard').status_code == 404
    assert client.get('/api/rooms/code/ZZZZ').get_json()['code'] == 'RoomNotFound'

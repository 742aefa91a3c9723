def _connected(sio_client):
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')
    sio_client.get_received('/ws')


def test_socket_connect_and_subscribe(sio_client):
    _connected(sio_client)
    sio_client.emit('subscribe', {'room_id': 1, 'table': 'winners'}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] == 'subscribed' and pkt['args'][0]['topic'] == 'room:1:winners' for pkt in received)


def test_subscribe_rejects_unknown_table(sio_client):
    _connected(sio_client)
    sio_client.emit('subscribe', {'room_id': 1, 'table': 'ballots'}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] == 'error' for pkt in received)


def test_write_notifies_only_matching_topic(sio_client, client):
    room = client.post('/api/rooms/create', json={'host_name': 'Hal'}).get_json()
    _connected(sio_client)
    sio_client.emit('subscribe', {'room_id': room['roomId'], 'table': 'winners'}, namespace='/ws')
    sio_client.get_received('/ws')

    # A phase change touches the rooms table only
    client.post(f"/api/rooms/{room['roomId']}/phase", json={'participant_id': room['hostId'], 'phase': 'LIVE'})
    assert not [e for e in sio_client.get_received('/ws') if e['name'] == 'changed']

    client.put(f"/api/rooms/{room['roomId']}/winners", json={
        'participant_id': room['hostId'], 'category_id': 'Best Picture', 'nominee_id': 'best-picture::sinners'})
    changed = [e for e in sio_client.get_received('/ws') if e['name'] == 'changed']
    assert changed == [{'name': 'changed', 'args': [{'room_id': room['roomId'], 'table': 'winners'}], 'namespace': '/ws'}]


def test_unsubscribe_stops_notifications(sio_client, client):
    room = client.post('/api/rooms/create', json={'host_name': 'Hal', 'custom_code': '7F3K'}).get_json()
    _connected(sio_client)
    topic = {'room_id': room['roomId'], 'table': 'participants'}
    sio_client.emit('subscribe', topic, namespace='/ws')
    client.post('/api/rooms/join', json={'room_code': '7F3K', 'participant_name': 'Ava'})
    assert any(e['name'] == 'changed' for e in sio_client.get_received('/ws'))

    sio_client.emit('unsubscribe', topic, namespace='/ws')
    sio_client.get_received('/ws')
    client.post('/api/rooms/join', json={'room_code': '7F3K', 'participant_name': 'Ben'})
    assert not [e for e in sio_client.get_received('/ws') if e['name'] == 'changed']

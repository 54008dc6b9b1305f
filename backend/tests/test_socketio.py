from rendezvous import socketio
from rendezvous.services.locations import Fix
from rendezvous.services.selection import Selection


def envelopes(test_client):
    return [pkt['args'][0] for pkt in test_client.get_received('/ws') if pkt['name'] == 'envelope']


def connect(flask_app):
    test_client = socketio.test_client(flask_app, namespace='/ws')
    assert test_client.is_connected('/ws')
    return test_client


def test_connect_receives_selection_and_locations(flask_app, services):
    services.selection.replace(Selection(a='p1', b='p2', selected_at=42))
    services.locations.update('p2', Fix(latitude=5, longitude=6, timestamp=7))

    test_client = connect(flask_app)
    received = envelopes(test_client)

    assert [m['type'] for m in received] == ['selection_broadcast', 'location_update']
    assert received[0]['data'] == {'A': 'p1', 'B': 'p2', 'selected_at': 42}
    assert received[1]['data'][0]['participant_id'] == 'p2'
    assert received[1]['data'][0]['coordinates'] == {'latitude': 5, 'longitude': 6, 'timestamp': 7}
    assert len(services.registry) == 1

    test_client.disconnect(namespace='/ws')
    assert len(services.registry) == 0


def test_location_update_is_stored_and_fanned_out(flask_app, services, sio_client):
    other = connect(flask_app)
    sio_client.get_received('/ws')
    other.get_received('/ws')

    sio_client.emit('envelope', {
        'type': 'location_update',
        'participantId': 'p1',
        'data': {'latitude': 12.5, 'longitude': 7.25, 'accuracy': 3, 'timestamp': 1700000000000},
    }, namespace='/ws')

    stored = services.locations.get('p1')
    assert stored.fix == Fix(latitude=12.5, longitude=7.25, timestamp=1700000000000, accuracy=3)
    for test_client in (sio_client, other):
        received = envelopes(test_client)
        assert [m['type'] for m in received] == ['location_update']
        assert received[0]['participantId'] == 'p1'
        assert received[0]['data']['coordinates']['latitude'] == 12.5
    other.disconnect(namespace='/ws')


def test_target_location_update_adds_target_broadcast(flask_app, services, sio_client):
    services.selection.replace(Selection(a='p1', b='p2', selected_at=1))
    sio_client.get_received('/ws')

    sio_client.emit('envelope', {
        'type': 'location_update',
        'participantId': 'p2',
        'data': {'latitude': 1, 'longitude': 2},
    }, namespace='/ws')

    received = envelopes(sio_client)
    assert [m['type'] for m in received] == ['location_update', 'target_broadcast']
    assert received[1]['data']['category'] == 'B'


def test_bad_messages_are_ignored(flask_app, services, sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('envelope', {'type': 'teleport', 'participantId': 'p1'}, namespace='/ws')
    sio_client.emit('envelope', 'not json', namespace='/ws')
    sio_client.emit('envelope', {'type': 'location_update', 'participantId': 'p1',
                                 'data': {'latitude': 200, 'longitude': 0}}, namespace='/ws')
    sio_client.emit('envelope', {'type': 'location_update', 'data': {'latitude': 1, 'longitude': 0}},
                    namespace='/ws')
    sio_client.emit('envelope', '{"type": "location_update", "participantId": "p1", '
                                '"data": {"latitude": 1, "longitude": 2, "timestamp": NaN}}', namespace='/ws')

    assert sio_client.is_connected('/ws')
    assert services.locations.get('p1') is None
    assert envelopes(sio_client) == []
    assert len(services.registry) == 1


def test_liveness_ping_gets_pong(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('envelope', {'type': 'liveness_ping', 'data': {'seq': 3}}, namespace='/ws')
    received = envelopes(sio_client)
    assert received == [{'type': 'liveness_pong', 'data': {'seq': 3}}]


def test_heartbeat_reaches_live_clients(flask_app, services, sio_client):
    sio_client.get_received('/ws')
    report = services.liveness.ping_all()
    assert report.delivered == 1
    assert [m['type'] for m in envelopes(sio_client)] == ['liveness_ping']


def test_selection_request_confirmed_and_rejected(flask_app, services, sio_client):
    services.locations.update('p1', Fix(latitude=0, longitude=0, timestamp=1))
    services.locations.update('p2', Fix(latitude=0, longitude=0.0005, timestamp=1))
    services.locations.update('p3', Fix(latitude=0, longitude=0.01, timestamp=1))
    sio_client.get_received('/ws')

    sio_client.emit('envelope', {'type': 'selection_request', 'participantId': 'p1',
                                 'data': {'selected_id': 'p2'}}, namespace='/ws')
    confirmed = envelopes(sio_client)
    assert confirmed[0]['data']['confirmed'] is True

    sio_client.emit('envelope', {'type': 'selection_request', 'participantId': 'p1',
                                 'data': {'selected_id': 'p3'}}, namespace='/ws')
    rejected = envelopes(sio_client)
    assert rejected[0]['data']['confirmed'] is False
    assert rejected[0]['data']['reason'] == 'too_far'

    sio_client.emit('envelope', {'type': 'selection_request', 'participantId': 'p1',
                                 'data': {'selected_id': 'p9'}}, namespace='/ws')
    missing = envelopes(sio_client)
    assert missing[0]['data']['reason'] == 'location_not_found'


def test_manual_refresh_reaches_live_clients(flask_app, services, client, sio_client):
    services.profiles.save('p1', category='A')
    services.profiles.save('p2', category='B')
    services.locations.update('p1', Fix(latitude=1, longitude=1, timestamp=1))
    sio_client.get_received('/ws')

    assert client.post('/api/selection/refresh').status_code == 200

    received = envelopes(sio_client)
    assert [m['type'] for m in received] == ['selection_broadcast', 'target_broadcast']
    assert received[1]['participantId'] == 'p1'


def test_non_finite_fix_is_dropped_without_raising(services):
    for value in ('NaN', '1e400', 'Infinity'):
        services.live.handle(None, '{"type": "location_update", "participantId": "p1", '
                                   '"data": {"latitude": 1, "longitude": 2, "timestamp": %s}}' % value)
    assert services.locations.get('p1') is None

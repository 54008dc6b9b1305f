from rendezvous.services.locations import Fix
from rendezvous.services.selection import Selection


def put_profile(client, participant_id, **fields):
    res = client.put(f'/api/profiles/{participant_id}', json=fields)
    assert res.status_code == 200
    return res.get_json()


def test_index_and_health(client):
    assert client.get('/').status_code == 200
    assert client.get('/health').get_json() == {'status': 'ok'}


def test_status_reports_state(client, services):
    services.locations.update('p1', Fix(latitude=1, longitude=2, timestamp=3))
    data = client.get('/api/status').get_json()
    assert data['connections']['total'] == 0
    assert data['locations']['active'] == 1
    assert data['locations']['participants'] == ['p1']
    assert data['selection'] == {'A': None, 'B': None, 'selected_at': 0}
    assert data['proximity_threshold_m'] == 100
    assert data['server']['port'] == 5000
    assert data['scheduler']['state'] == 'idle'


def test_profile_crud_and_category(client):
    created = put_profile(client, 'p1', name='Avery')
    assert created['category'] is None

    res = client.post('/api/profiles/p1/category', json={'category': 'a', 'token': 'tok-1'})
    assert res.status_code == 200
    assert res.get_json()['category'] == 'A'

    # a later refresh without category keeps it
    refreshed = put_profile(client, 'p1', name='Avery B.')
    assert refreshed['category'] == 'A'
    assert refreshed['token'] == 'tok-1'

    assert client.get('/api/profiles/by-token/tok-1').get_json()['participant_id'] == 'p1'
    assert client.get('/api/profiles').get_json()['count'] == 1


def test_profile_errors(client):
    res = client.post('/api/profiles/ghost/category', json={'category': 'A'})
    assert res.status_code == 404
    assert res.get_json()['error'] == 'profile_not_found'

    put_profile(client, 'p1', name='Avery')
    res = client.post('/api/profiles/p1/category', json={'category': 'Z'})
    assert res.status_code == 400
    assert res.get_json()['error'] == 'invalid_category'

    put_profile(client, 'p2', token='shared')
    res = client.put('/api/profiles/p1', json={'token': 'shared'})
    assert res.status_code == 409
    assert res.get_json()['error'] == 'token_taken'


def test_manual_selection_refresh(client):
    put_profile(client, 'p1', category='A')
    put_profile(client, 'p2', category='B')
    res = client.post('/api/selection/refresh')
    assert res.status_code == 200
    selection = res.get_json()['selection']
    assert selection['A'] == 'p1'
    assert selection['B'] == 'p2'
    assert client.get('/api/selection').get_json()['A'] == 'p1'


def test_locations_listing(client, services):
    fix = Fix(latitude=48.8584, longitude=2.2945, timestamp=1700000000000, accuracy=5.0)
    services.locations.update('p1', fix)
    data = client.get('/api/locations').get_json()
    assert data['count'] == 1
    assert data['locations'][0]['coordinates'] == fix.to_dict()


def test_proximity_endpoint(client, services):
    res = client.get('/api/proximity/p1/p2')
    assert res.status_code == 404
    assert res.get_json()['verified'] is False

    services.locations.update('p1', Fix(latitude=0, longitude=0, timestamp=1))
    services.locations.update('p2', Fix(latitude=0, longitude=0.01, timestamp=1))
    data = client.get('/api/proximity/p1/p2').get_json()
    assert data['verified'] is False
    assert 1100 < data['distance'] < 1125
    assert data['threshold'] == 100


def test_target_endpoint(client, services):
    put_profile(client, 'p1', category='A')
    put_profile(client, 'p2', category='B', name='Blake')
    assert client.get('/api/target/p1').get_json()['error'] == 'no_target_selected'

    services.selection.replace(Selection(a='p1', b='p2', selected_at=10))
    services.locations.update('p2', Fix(latitude=5, longitude=6, timestamp=1))
    data = client.get('/api/target/p1').get_json()
    assert data['target_id'] == 'p2'
    assert data['coordinates']['longitude'] == 6
    assert data['selected_at'] == 10


def test_scan_flow_and_points(client, services):
    put_profile(client, 'p1', category='A', name='Avery')
    put_profile(client, 'p2', category='B')
    put_profile(client, 'p3', category='B')
    services.selection.replace(Selection(a='p1', b='p2', selected_at=1))

    res = client.post('/api/scan', json={'scanner': 'p1', 'scanned_token': 'p3'})
    assert res.status_code == 400
    body = res.get_json()
    assert body['error'] == 'wrong_target'
    assert body['expected_target_id'] == 'p2'

    res = client.post('/api/scan', json={'scanner': 'p1', 'scanned_token': 'p2'})
    assert res.status_code == 200
    body = res.get_json()
    assert body['success'] is True
    assert body['total_points'] == 1
    assert body['redeemed_targets'] == ['p2']

    res = client.post('/api/scan', json={'scanner': 'p1', 'scanned_token': 'p2'})
    assert res.status_code == 409
    assert res.get_json()['error'] == 'duplicate_redemption'

    points = client.get('/api/points/p1').get_json()
    assert points['points'] == 1
    assert points['redeemed_count'] == 1
    assert points['redeemed_targets'] == ['p2']
    assert points['name'] == 'Avery'


def test_scan_requires_fields(client):
    res = client.post('/api/scan', json={'scanner': 'p1'})
    assert res.status_code == 400
    assert res.get_json()['error'] == 'missing_field'
    res = client.post('/api/scan', data='nope', content_type='text/plain')
    assert res.status_code == 400


def test_points_for_unknown_participant(client):
    data = client.get('/api/points/ghost').get_json()
    assert data['points'] == 0
    assert data['redeemed_targets'] == []


def test_leaderboard_endpoint(client, services):
    for participant_id, total in (('alpha', 5), ('bravo', 10), ('charlie', 3)):
        for n in range(total):
            services.ledger.increment(participant_id, f'target-{n}')
    data = client.get('/api/leaderboard').get_json()
    assert [e['points'] for e in data['leaderboard']] == [10, 5, 3]
    assert [e['rank'] for e in data['leaderboard']] == [1, 2, 3]
    assert data['total_participants'] == 3

import pytest

from cheesehouse import db
from cheesehouse.models import Customer, Voucher


def _customer(phone='+5491123456789'):
    db.session.expire_all()
    return Customer.query.filter_by(phone=phone).first()


def test_winning_submission_issues_win_voucher(play):
    res = play(target=10.0, achieved=10.05)
    assert res.status_code == 200
    data = res.get_json()
    assert data['success'] is True
    assert data['won'] is True
    assert data['discount'] == 30
    assert data['code'].startswith('CH')
    assert data['is_new_customer'] is True
    assert 'needs_approval' in data

    customer = _customer()
    assert customer.total_games == 1
    assert customer.games_won == 1
    assert customer.last_played_at is not None
    voucher = Voucher.query.filter_by(code=data['code']).one()
    assert voucher.kind == Voucher.KIND_GAME_WON
    assert voucher.used is False
    assert data['expires_at'] == voucher.expires_at.strftime('%d/%m/%Y')


def test_losing_submission_issues_consolation_voucher(play):
    data = play(target=10.0, achieved=11.0).get_json()
    assert data['success'] is True
    assert data['won'] is False
    assert data['discount'] == 10
    customer = _customer()
    assert customer.games_lost == 1
    assert customer.games_won == 0


def test_returning_customer_is_not_new(play):
    play()
    data = play(achieved=12.0).get_json()
    assert data['is_new_customer'] is False
    assert _customer().total_games == 2
    assert Customer.query.count() == 1


def test_phone_formats_map_to_one_customer(play):
    play(phone='+54 9 11 2345-6789')
    play(phone='+5491123456789')
    assert Customer.query.count() == 1


def test_invalid_phone_is_rejected_without_side_effects(play):
    res = play(phone='+5490001234567')
    assert res.status_code == 400
    assert res.get_json()['success'] is False
    assert Customer.query.count() == 0
    assert Voucher.query.count() == 0


def test_out_of_range_target_is_rejected(play):
    res = play(target=25.0, achieved=25.0)
    assert res.status_code == 400
    assert 'Invalid game data' in res.get_json()['message']
    assert Customer.query.count() == 0


def test_malformed_payloads(client):
    assert client.post('/api/game/submit', json={}).status_code == 400
    assert client.post('/api/game/submit', data='nope', content_type='text/plain').status_code == 400
    res = client.post('/api/game/submit', json={
        'customer': {'first_name': 'A', 'last_name': 'Gomez', 'phone': '+5491123456789'},
        'result': {'target_time': 10.0, 'achieved_time': 10.0},
    })
    assert res.status_code == 400
    res = client.post('/api/game/submit', json={
        'customer': {'first_name': 'Ana', 'last_name': 'Gomez', 'phone': '+5491123456789'},
        'result': {'target_time': '10', 'achieved_time': 10.0},
    })
    assert res.status_code == 400


def test_name_is_updated_last_write_wins(play):
    play(first_name='Ana', last_name='Gomez')
    play(first_name='Anita', last_name='Gómez')
    customer = _customer()
    assert customer.first_name == 'Anita'
    assert customer.last_name == 'Gómez'


def test_approval_gate_blocks_extra_games(play):
    for _ in range(3):
        assert play().get_json()['success'] is True

    res = play(first_name='Other', last_name='Name')
    assert res.status_code == 200
    data = res.get_json()
    assert data['success'] is False
    assert data['needs_approval'] is True
    assert 'code' not in data

    customer = _customer()
    # A declined play leaves the record untouched
    assert customer.total_games == 3
    assert customer.first_name == 'Ana'
    assert Voucher.query.count() == 3


def test_staff_approval_grants_one_more_game(play, client, employee_headers):
    for _ in range(3):
        play()
    customer_id = _customer().id

    res = client.post(f'/api/admin/customers/{customer_id}/approve', headers=employee_headers)
    assert res.status_code == 200
    assert res.get_json()['customer']['approved_extra_games'] == 1

    assert play().get_json()['success'] is True
    assert play().get_json()['needs_approval'] is True


def test_approving_customer_under_threshold_fails(play, client, employee_headers):
    play()
    res = client.post(f'/api/admin/customers/{_customer().id}/approve', headers=employee_headers)
    assert res.status_code == 400
    assert res.get_json()['success'] is False


def test_blocked_customer_cannot_play(play):
    play()
    customer = _customer()
    customer.status = Customer.STATUS_BLOCKED
    db.session.commit()

    data = play().get_json()
    assert data['success'] is False
    assert Voucher.query.count() == 1


def test_public_config_and_target(client):
    config = client.get('/api/game/config').get_json()['config']
    assert config['win_discount'] == 30
    assert config['lose_discount'] == 10
    assert config['tolerance'] == 0.1
    assert config['restaurant'] == 'CheeseHouse'

    for _ in range(5):
        target = client.get('/api/game/target').get_json()['target_time']
        assert config['min_time'] <= target <= config['max_time']


def test_public_stats(play, client):
    play(achieved=10.0)
    play(phone='+5493512345678', achieved=15.0)
    stats = client.get('/api/game/stats').get_json()['stats']
    assert stats['total_customers'] == 2
    assert stats['total_games'] == 2
    assert stats['win_percentage'] == 50.0
    assert stats['played_today'] == 2


def test_canned_test_endpoint(client):
    data = client.post('/api/game/test').get_json()
    assert data['success'] is True
    assert data['won'] is True


def test_canned_test_endpoint_hidden_in_production(flask_app, client):
    from dataclasses import replace
    ctx = flask_app.extensions['cheesehouse']
    ctx.settings = replace(ctx.settings, environment='production')
    assert client.post('/api/game/test').status_code == 404


def test_client_lookup(play, client):
    assert client.get('/api/clients/+5491123456789').status_code == 404
    play()
    data = client.get('/api/clients/+5491123456789').get_json()
    assert data['success'] is True
    assert data['customer']['first_name'] == 'Ana'
    assert data['customer']['total_games'] == 1
    assert data['customer']['customer_type'] == 'new'
    assert 'phone' not in data['customer']


def test_health_and_info(client):
    res = client.get('/health')
    assert res.status_code == 200
    body = res.get_json()
    assert body['database'] == 'ok'
    assert body['whatsapp']['configured'] is False
    assert client.get('/info').get_json()['restaurant'] == 'CheeseHouse'


def test_unknown_route_is_json_404(client):
    res = client.get('/api/nope')
    assert res.status_code == 404
    assert res.get_json()['path'] == '/api/nope'


@pytest.mark.parametrize('result', [
    '{"target_time": NaN, "achieved_time": 10.0}',
    '{"target_time": 10.0, "achieved_time": NaN}',
    '{"target_time": Infinity, "achieved_time": 10.0}',
    '{"target_time": 10.0, "achieved_time": -Infinity}',
    '{"target_time": 10.0, "achieved_time": 1' + '0' * 400 + '}',
])
def test_non_finite_times_are_rejected_without_side_effects(client, result):
    body = '{"customer": {"first_name": "Ana", "last_name": "Gomez", "phone": "+5491123456789"}, "result": %s}' % result
    res = client.post('/api/game/submit', data=body, content_type='application/json')
    assert res.status_code == 400
    assert 'must be a number' in res.get_json()['message']
    assert Customer.query.count() == 0
    assert Voucher.query.count() == 0


def test_float_boundary_counts_as_win(play):
    data = play(target=19.9, achieved=20.0).get_json()
    assert data['won'] is True
    assert data['discount'] == 30

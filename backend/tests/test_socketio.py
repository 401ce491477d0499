def _connected(sio_client):
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')
    return sio_client


def test_socket_connect_and_join_dashboard(sio_client):
    _connected(sio_client)
    sio_client.get_received('/ws')

    sio_client.emit('join_dashboard', {}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] == 'joined' for pkt in received)


def test_ping_pong(sio_client):
    _connected(sio_client)
    sio_client.get_received('/ws')
    sio_client.emit('ping', {'n': 1}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert {'name': 'pong', 'args': [{'n': 1}], 'namespace': '/ws'} in received


def test_dashboard_receives_issued_and_redeemed_vouchers(sio_client, play, client, employee_headers):
    _connected(sio_client)
    sio_client.emit('join_dashboard', {}, namespace='/ws')
    sio_client.get_received('/ws')

    code = play().get_json()['code']
    events = sio_client.get_received('/ws')
    issued = [e for e in events if e['name'] == 'voucher_issued']
    assert issued and issued[0]['args'][0]['code'] == code

    client.post('/api/admin/vouchers/redeem', json={'code': code}, headers=employee_headers)
    events = sio_client.get_received('/ws')
    redeemed = [e for e in events if e['name'] == 'voucher_redeemed']
    assert redeemed and redeemed[0]['args'][0]['customer'] == 'Ana Gomez'


def test_feed_is_only_for_dashboard_members(sio_client, play):
    _connected(sio_client)
    sio_client.get_received('/ws')
    play()
    events = sio_client.get_received('/ws')
    assert not any(e['name'] == 'voucher_issued' for e in events)

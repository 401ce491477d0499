from datetime import timedelta

import pytest

from cheesehouse import db
from cheesehouse.models import Campaign, CampaignSend, Customer, Voucher, utcnow
from cheesehouse.services.notifier import NotificationError, WhatsAppClient


def _future(days=10):
    return (utcnow() + timedelta(days=days)).replace(microsecond=0).isoformat()


@pytest.fixture()
def campaign_id(client, admin_headers):
    res = client.post('/api/admin/campaigns', headers=admin_headers, json={
        'name': 'Winter cheese week',
        'discount': 25,
        'expires_at': _future(),
        'message': 'Fondue night is back!',
    })
    assert res.status_code == 201
    return res.get_json()['campaign']['id']


@pytest.fixture()
def customer_ids(play):
    play(phone='+5491123456789', first_name='Ana', last_name='Gomez')
    play(phone='+5493512345678', first_name='Bruno', last_name='Diaz')
    return [c.id for c in Customer.query.order_by(Customer.id).all()]


@pytest.mark.parametrize('payload', [
    {'discount': 25, 'expires_at': '2099-01-01'},
    {'name': 'No discount', 'expires_at': '2099-01-01'},
    {'name': 'Too much', 'discount': 150, 'expires_at': '2099-01-01'},
    {'name': 'Past', 'discount': 10, 'expires_at': '2000-01-01'},
    {'name': 'Bad date', 'discount': 10, 'expires_at': 'soon'},
    {'name': 'Zoned', 'discount': 10, 'expires_at': '2099-01-01T00:00:00+00:00'},
])
def test_campaign_validation(client, admin_headers, payload):
    res = client.post('/api/admin/campaigns', headers=admin_headers, json=payload)
    assert res.status_code == 400
    assert Campaign.query.count() == 0


def test_campaigns_need_permission(client, employee_headers):
    assert client.get('/api/admin/campaigns', headers=employee_headers).status_code == 403
    res = client.post('/api/admin/campaigns', headers=employee_headers, json={
        'name': 'Nope', 'discount': 10, 'expires_at': _future(),
    })
    assert res.status_code == 403


def test_send_campaign_issues_promotion_vouchers(client, admin_headers, campaign_id, customer_ids):
    res = client.post(f'/api/admin/campaigns/{campaign_id}/send', headers=admin_headers,
                      json={'customer_ids': customer_ids + [999]})
    assert res.status_code == 200
    result = res.get_json()['result']
    assert result['sent'] == 2
    assert result['failed'] == 0
    assert result['skipped'] == [999]

    promos = Voucher.query.filter_by(kind=Voucher.KIND_PROMOTION).all()
    assert len(promos) == 2
    assert all(v.discount == 25 and v.won is None for v in promos)
    assert CampaignSend.query.filter_by(status=CampaignSend.STATUS_SENT).count() == 2

    listed = client.get('/api/admin/campaigns', headers=admin_headers).get_json()['campaigns']
    assert listed[0]['sends']['sent'] == 2


def test_failed_message_is_recorded_per_customer(monkeypatch, client, admin_headers, campaign_id, customer_ids):
    calls = []

    def flaky(self, phone, message, voucher_code):
        calls.append(phone)
        if phone == '+5493512345678':
            raise NotificationError('messaging API error 500')
        return {'simulated': True}

    monkeypatch.setattr(WhatsAppClient, 'send_marketing', flaky)
    result = client.post(f'/api/admin/campaigns/{campaign_id}/send', headers=admin_headers,
                         json={'customer_ids': customer_ids}).get_json()['result']
    assert len(calls) == 2
    assert result['sent'] == 1
    assert result['failed'] == 1
    failed = CampaignSend.query.filter_by(status=CampaignSend.STATUS_FAILED).one()
    assert 'error 500' in failed.error_message
    # The voucher still exists for the failed send
    assert failed.voucher_code


def test_blocked_customers_are_skipped(client, admin_headers, campaign_id, customer_ids):
    blocked = db.session.get(Customer, customer_ids[0])
    blocked.status = Customer.STATUS_BLOCKED
    db.session.commit()
    result = client.post(f'/api/admin/campaigns/{campaign_id}/send', headers=admin_headers,
                         json={'customer_ids': customer_ids}).get_json()['result']
    assert result['sent'] == 1
    assert customer_ids[0] in result['skipped']


def test_send_validation(client, admin_headers, campaign_id):
    url = f'/api/admin/campaigns/{campaign_id}/send'
    assert client.post(url, headers=admin_headers, json={}).status_code == 400
    assert client.post(url, headers=admin_headers, json={'customer_ids': ['1']}).status_code == 400
    assert client.post('/api/admin/campaigns/999/send', headers=admin_headers,
                       json={'customer_ids': [1]}).status_code == 404


def test_inactive_campaign_cannot_be_sent(client, admin_headers, campaign_id, customer_ids):
    res = client.post(f'/api/admin/campaigns/{campaign_id}/deactivate', headers=admin_headers)
    assert res.get_json()['campaign']['active'] is False
    res = client.post(f'/api/admin/campaigns/{campaign_id}/send', headers=admin_headers,
                      json={'customer_ids': customer_ids})
    assert res.status_code == 400
    assert Voucher.query.filter_by(kind=Voucher.KIND_PROMOTION).count() == 0

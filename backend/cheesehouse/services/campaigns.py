from datetime import datetime
from typing import Any, Dict, Iterable

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from cheesehouse import db
from cheesehouse.models import Campaign, CampaignSend, Customer, StaffUser, utcnow
from cheesehouse.services.notifier import NotificationError, WhatsAppClient
from cheesehouse.services.vouchers import VoucherIssuer


class CampaignError(ValueError):
    pass


def _parse_expiry(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value:
        raise CampaignError('expires_at is required (YYYY-MM-DD or ISO timestamp)')
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise CampaignError('expires_at must be an ISO date') from exc


def create_campaign(data: Dict[str, Any], staff: StaffUser) -> Campaign:
    name = (data.get('name') or '').strip()
    if not name:
        raise CampaignError('Campaign name is required')
    discount = data.get('discount')
    if isinstance(discount, bool) or not isinstance(discount, int) or not 1 <= discount <= 100:
        raise CampaignError('Discount must be between 1 and 100')
    expires_at = _parse_expiry(data.get('expires_at'))
    if expires_at.tzinfo is not None:
        raise CampaignError('expires_at must not carry a timezone (UTC is assumed)')
    if expires_at <= utcnow():
        raise CampaignError('Expiry date must be in the future')

    campaign = Campaign(
        name=name,
        description=data.get('description'),
        discount=discount,
        expires_at=expires_at,
        message=data.get('message'),
        created_by_id=staff.id,
        active=True,
    )
    db.session.add(campaign)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    current_app.logger.info(f"[campaign-created] {campaign.name} ({campaign.discount}%) by {staff.email}")
    return campaign


def deactivate_campaign(campaign: Campaign) -> Campaign:
    campaign.active = False
    db.session.add(campaign)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return campaign


def send_campaign(
    campaign: Campaign,
    customer_ids: Iterable[int],
    issuer: VoucherIssuer,
    client: WhatsAppClient,
) -> Dict[str, Any]:
    """Issue one promotional voucher per customer and message it.

    Every customer is handled independently: a failed send is recorded on
    its ``CampaignSend`` row and the loop moves on.
    """
    if not campaign.active:
        raise CampaignError('Campaign is not active')
    if campaign.expires_at <= utcnow():
        raise CampaignError('Campaign has already expired')

    ids = sorted({int(i) for i in customer_ids})
    current_app.logger.info(f"[campaign-send] campaign={campaign.id} customers={len(ids)}")
    customers = Customer.query.filter(Customer.id.in_(ids)).all() if ids else []
    found = {c.id for c in customers}
    summary = {
        'campaign_id': campaign.id,
        'sent': 0,
        'failed': 0,
        'skipped': [i for i in ids if i not in found],
        'sends': [],
    }

    for customer in customers:
        if customer.status == Customer.STATUS_BLOCKED:
            summary['skipped'].append(customer.id)
            continue
        voucher = issuer.issue_promotion(
            customer, campaign.discount, campaign.expires_at, notes=f"campaign:{campaign.id}"
        )
        send = CampaignSend(
            campaign_id=campaign.id,
            customer_id=customer.id,
            voucher_id=voucher.id,
            voucher_code=voucher.code,
            sent_at=utcnow(),
            attempts=1,
        )
        try:
            client.send_marketing(customer.phone, campaign.message or campaign.name, voucher.code)
        except NotificationError as exc:
            send.status = CampaignSend.STATUS_FAILED
            send.error_message = str(exc)
            summary['failed'] += 1
            current_app.logger.error(f"[campaign-send-fail] campaign={campaign.id} customer={customer.phone}: {exc}")
        else:
            send.status = CampaignSend.STATUS_SENT
            summary['sent'] += 1
        db.session.add(send)
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
        summary['sends'].append(send.to_dict())
    return summary

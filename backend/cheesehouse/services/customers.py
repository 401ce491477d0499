from dataclasses import dataclass
from datetime import datetime, time as dtime
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from cheesehouse import db
from cheesehouse.models import Customer, StaffUser, utcnow
from cheesehouse.settings import GameSettings


def find_customer(phone: str) -> Optional[Customer]:
    return Customer.query.filter_by(phone=phone).first()


def create_customer(first_name: str, last_name: str, phone: str) -> Customer:
    customer = Customer(
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        registered_at=utcnow(),
        total_games=0,
        games_won=0,
        games_lost=0,
        status=Customer.STATUS_ACTIVE,
    )
    db.session.add(customer)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    current_app.logger.info(f"[customer-new] {customer.full_name} ({customer.phone})")
    return customer


def update_name(customer: Customer, first_name: str, last_name: str) -> None:
    """Last write wins. A failed save is logged and the game goes on."""
    if customer.first_name == first_name and customer.last_name == last_name:
        return
    customer.first_name = first_name
    customer.last_name = last_name
    db.session.add(customer)
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning(f"[customer-update] could not rename {customer.phone}: {exc}")
    else:
        current_app.logger.info(f"[customer-update] {customer.phone} is now {customer.full_name}")


def allowed_games(customer: Customer, settings: GameSettings) -> int:
    return settings.games_require_approval + (customer.approved_extra_games or 0)


def needs_approval(customer: Customer, settings: GameSettings) -> bool:
    return (customer.total_games or 0) >= allowed_games(customer, settings)


def customer_type(total_games: int) -> str:
    if total_games > 10:
        return 'frequent'
    if total_games > 3:
        return 'occasional'
    return 'new'


def win_percentage(won: int, total: int) -> float:
    return round(won / total * 100, 2) if total else 0.0


def customer_with_stats(customer: Customer) -> Dict[str, Any]:
    vouchers = list(customer.vouchers)
    used = sum(1 for v in vouchers if v.used)
    last_voucher = max(vouchers, key=lambda v: v.issued_at) if vouchers else None
    data = customer.to_dict()
    data.update({
        'vouchers_issued': len(vouchers),
        'vouchers_used': used,
        'vouchers_pending': len(vouchers) - used,
        'win_percentage': win_percentage(customer.games_won or 0, customer.total_games or 0),
        'customer_type': customer_type(customer.total_games or 0),
        'last_voucher': last_voucher.to_dict() if last_voucher else None,
    })
    return data


def start_of_today() -> datetime:
    return datetime.combine(utcnow().date(), dtime.min)


def list_customers(filters: Dict[str, Any]) -> List[Dict[str, Any]]:
    query = Customer.query
    if filters.get('min_games') is not None:
        query = query.filter(Customer.total_games >= int(filters['min_games']))
    if filters.get('status'):
        query = query.filter(Customer.status == filters['status'])
    if filters.get('played_today'):
        query = query.filter(Customer.last_played_at >= start_of_today())
    if filters.get('search'):
        term = f"%{filters['search']}%"
        query = query.filter(or_(
            Customer.first_name.ilike(term),
            Customer.last_name.ilike(term),
            Customer.phone.ilike(term),
        ))
    limit = int(filters.get('limit') or 100)
    customers = query.order_by(Customer.last_played_at.desc(), Customer.id.desc()).limit(limit).all()
    return [customer_with_stats(c) for c in customers]


def pending_approval(settings: GameSettings) -> List[Dict[str, Any]]:
    """Customers who played today and are at or over their allowed games."""
    customers = Customer.query.filter(
        Customer.last_played_at >= start_of_today(),
        Customer.total_games >= settings.games_require_approval,
    ).all()
    return [customer_with_stats(c) for c in customers if needs_approval(c, settings)]


def top_customers(limit: int = 10) -> List[Dict[str, Any]]:
    customers = Customer.query.order_by(Customer.total_games.desc(), Customer.games_won.desc()).limit(limit).all()
    return [customer_with_stats(c) for c in customers]


@dataclass
class ApprovalResult:
    success: bool
    message: str
    customer: Optional[Customer] = None


def approve_customer(customer_id: int, staff: StaffUser, settings: GameSettings) -> ApprovalResult:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        return ApprovalResult(False, 'Customer not found')
    if not needs_approval(customer, settings):
        return ApprovalResult(
            False, f'Customer does not need approval ({customer.total_games} games played)', customer
        )
    customer.approved_extra_games = (customer.approved_extra_games or 0) + 1
    db.session.add(customer)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    current_app.logger.info(
        f"[customer-approved] staff={staff.id} customer={customer.phone} total_games={customer.total_games}"
    )
    return ApprovalResult(True, 'Customer may play one more game', customer)


def set_blocked(customer_id: int, blocked: bool) -> Optional[Customer]:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        return None
    customer.status = Customer.STATUS_BLOCKED if blocked else Customer.STATUS_ACTIVE
    db.session.add(customer)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return customer


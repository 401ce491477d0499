from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List

from sqlalchemy import func

from cheesehouse import db
from cheesehouse.models import Customer, Voucher, utcnow
from cheesehouse.services.customers import (
    customer_type,
    customer_with_stats,
    pending_approval,
    start_of_today,
    top_customers,
    win_percentage,
)
from cheesehouse.settings import GameSettings

# More games than this makes a customer "frequent" on the dashboard
FREQUENT_CUSTOMER_GAMES = 3
# Alert window for vouchers about to lapse
ALERT_EXPIRY_DAYS = 3
EXPORT_TYPES = ('customers', 'vouchers', 'complete')


class ExportTypeInvalid(ValueError):
    pass


def general_stats() -> Dict[str, Any]:
    now = utcnow()
    today = start_of_today()
    total_games, total_wins, total_losses = db.session.query(
        func.coalesce(func.sum(Customer.total_games), 0),
        func.coalesce(func.sum(Customer.games_won), 0),
        func.coalesce(func.sum(Customer.games_lost), 0),
    ).one()
    total_games = int(total_games)
    total_wins = int(total_wins)
    return {
        'total_customers': Customer.query.count(),
        'total_games': total_games,
        'total_wins': total_wins,
        'total_losses': int(total_losses),
        'win_percentage': win_percentage(total_wins, total_games),
        'frequent_customers': Customer.query.filter(Customer.total_games > FREQUENT_CUSTOMER_GAMES).count(),
        'played_today': Customer.query.filter(Customer.last_played_at >= today).count(),
        'played_this_week': Customer.query.filter(Customer.last_played_at >= today - timedelta(days=7)).count(),
        'active_vouchers': Voucher.query.filter(Voucher.used.is_(False), Voucher.expires_at >= now).count(),
        'expired_vouchers': Voucher.query.filter(Voucher.expires_at < now).count(),
    }


def public_stats(restaurant_name: str) -> Dict[str, Any]:
    stats = general_stats()
    return {
        'total_customers': stats['total_customers'],
        'total_games': stats['total_games'],
        'win_percentage': stats['win_percentage'],
        'played_today': stats['played_today'],
        'restaurant': restaurant_name,
    }


def period_stats(days: int) -> List[Dict[str, Any]]:
    """Game vouchers per issue day over the last ``days`` days, newest first."""
    since = start_of_today() - timedelta(days=days)
    vouchers = Voucher.query.filter(
        Voucher.kind.in_(Voucher.GAME_KINDS),
        Voucher.issued_at >= since,
    ).all()
    per_day: Dict[str, Dict[str, int]] = defaultdict(lambda: {'wins': 0, 'losses': 0})
    for v in vouchers:
        bucket = per_day[v.issued_at.date().isoformat()]
        if v.won:
            bucket['wins'] += 1
        else:
            bucket['losses'] += 1
    rows = []
    for day in sorted(per_day, reverse=True):
        wins = per_day[day]['wins']
        losses = per_day[day]['losses']
        rows.append({
            'date': day,
            'wins': wins,
            'losses': losses,
            'total_games': wins + losses,
            'win_percentage': win_percentage(wins, wins + losses),
        })
    return rows


def vouchers_expiring(days: int) -> List[Voucher]:
    now = utcnow()
    return Voucher.query.filter(
        Voucher.used.is_(False),
        Voucher.expires_at >= now,
        Voucher.expires_at <= now + timedelta(days=days),
    ).order_by(Voucher.expires_at.asc()).all()


def dashboard(notifier_status: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'general_stats': general_stats(),
        'vouchers_expiring': [v.to_dict(include_customer=True) for v in vouchers_expiring(7)],
        'top_customers': top_customers(10),
        'period_stats': period_stats(7),
        'whatsapp_status': notifier_status,
    }


def redemption_report(start: datetime, end: datetime) -> Dict[str, Any]:
    """Vouchers redeemed in ``[start, end]``; ``end`` covers the whole day."""
    end_of_range = end + timedelta(days=1)
    redeemed = Voucher.query.filter(
        Voucher.used.is_(True),
        Voucher.used_at >= start,
        Voucher.used_at < end_of_range,
    ).order_by(Voucher.used_at.asc()).all()
    total_discount = sum(v.discount for v in redeemed)
    per_day: Dict[str, int] = defaultdict(int)
    for v in redeemed:
        per_day[v.used_at.date().isoformat()] += 1
    return {
        'start': start.date().isoformat(),
        'end': end.date().isoformat(),
        'total_redeemed': len(redeemed),
        'total_discount_points': total_discount,
        'average_discount': round(total_discount / len(redeemed), 2) if redeemed else 0.0,
        'redeemed_per_day': dict(sorted(per_day.items())),
        'vouchers': [v.to_dict(include_customer=True) for v in redeemed],
    }


def customer_type_counts() -> Dict[str, int]:
    counts = {'new': 0, 'occasional': 0, 'frequent': 0}
    for (total,) in db.session.query(Customer.total_games).all():
        counts[customer_type(total or 0)] += 1
    return counts


def voucher_counts() -> Dict[str, int]:
    now = utcnow()
    return {
        'active': Voucher.query.filter(Voucher.used.is_(False), Voucher.expires_at >= now).count(),
        'expired': Voucher.query.filter(Voucher.used.is_(False), Voucher.expires_at < now).count(),
        'redeemed': Voucher.query.filter(Voucher.used.is_(True)).count(),
    }


def detailed_stats(notifier_status: Dict[str, Any]) -> Dict[str, Any]:
    """Report view: summary, voucher states, customer mix and a 30 day trend."""
    return {
        'summary': general_stats(),
        'vouchers': voucher_counts(),
        'customers': customer_type_counts(),
        'trend_30_days': period_stats(30),
        'whatsapp': notifier_status,
        'generated_at': utcnow().isoformat(timespec='seconds'),
    }


def operational_alerts(notifier_status: Dict[str, Any], settings: GameSettings) -> List[Dict[str, str]]:
    alerts = []
    expiring = vouchers_expiring(ALERT_EXPIRY_DAYS)
    if expiring:
        alerts.append({
            'level': 'warning',
            'title': 'Vouchers about to expire',
            'description': f'{len(expiring)} vouchers expire in the next {ALERT_EXPIRY_DAYS} days',
            'action': 'review_vouchers',
        })
    if not notifier_status.get('configured'):
        alerts.append({
            'level': 'error',
            'title': 'WhatsApp not configured',
            'description': 'Vouchers are not being sent by WhatsApp',
            'action': 'configure_whatsapp',
        })
    pending = pending_approval(settings)
    if pending:
        alerts.append({
            'level': 'info',
            'title': 'Customers awaiting approval',
            'description': f'{len(pending)} frequent customers are waiting for approval',
            'action': 'review_approvals',
        })
    return alerts


def export_data(kind: str, notifier_status: Dict[str, Any]) -> Dict[str, Any]:
    if kind not in EXPORT_TYPES:
        raise ExportTypeInvalid(f'Unknown export type {kind!r}, expected one of {", ".join(EXPORT_TYPES)}')
    data: Dict[str, Any] = {'type': kind}
    if kind in ('customers', 'complete'):
        customers = Customer.query.order_by(Customer.id.asc()).all()
        data['customers'] = [customer_with_stats(c) for c in customers]
    if kind in ('vouchers', 'complete'):
        vouchers = Voucher.query.order_by(Voucher.id.asc()).all()
        data['vouchers'] = [v.to_dict() for v in vouchers]
    if kind == 'complete':
        data['stats'] = detailed_stats(notifier_status)
    else:
        data['total'] = len(data[kind])
    data['exported_at'] = utcnow().isoformat(timespec='seconds')
    return data

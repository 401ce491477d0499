import random
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from cheesehouse import db
from cheesehouse.models import Customer, StaffUser, Voucher, utcnow
from cheesehouse.settings import GameSettings


class VoucherIssuer:
    """Creates vouchers and records the play on the customer.

    The voucher insert and the counter update are two separate commits.
    A failure in the second one is logged and the voucher stands.
    """

    def __init__(self, settings: GameSettings, rng=random, clock=time.time):
        self.settings = settings
        self.rng = rng
        self.clock = clock

    def generate_code(self) -> str:
        # Uniqueness relies on the unique index; collisions are not retried
        stamp = int(self.clock()) % 100000
        suffix = self.rng.randint(0, 999)
        return f"{self.settings.voucher_prefix}{stamp:05d}{suffix:03d}"

    def discount_for(self, won: bool) -> int:
        return self.settings.win_discount if won else self.settings.lose_discount

    def issue_game_voucher(self, customer: Customer, won: bool) -> Voucher:
        now = utcnow()
        voucher = Voucher(
            code=self.generate_code(),
            customer_id=customer.id,
            kind=Voucher.KIND_GAME_WON if won else Voucher.KIND_GAME_LOST,
            discount=self.discount_for(won),
            won=won,
            issued_at=now,
            expires_at=now + timedelta(days=self.settings.voucher_validity_days),
            used=False,
        )
        self._insert(voucher)
        current_app.logger.info(
            f"[voucher-issued] code={voucher.code} discount={voucher.discount}% customer={customer.phone}"
        )
        return voucher

    def issue_promotion(self, customer: Customer, discount: int, expires_at, notes: Optional[str] = None) -> Voucher:
        voucher = Voucher(
            code=self.generate_code(),
            customer_id=customer.id,
            kind=Voucher.KIND_PROMOTION,
            discount=discount,
            won=None,
            issued_at=utcnow(),
            expires_at=expires_at,
            used=False,
            notes=notes,
        )
        self._insert(voucher)
        return voucher

    @staticmethod
    def _insert(voucher: Voucher) -> None:
        db.session.add(voucher)
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise

    @staticmethod
    def record_play(customer: Customer, won: bool) -> None:
        customer.total_games = (customer.total_games or 0) + 1
        if won:
            customer.games_won = (customer.games_won or 0) + 1
        else:
            customer.games_lost = (customer.games_lost or 0) + 1
        customer.last_played_at = utcnow()
        db.session.add(customer)
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.warning(f"[customer-stats] update failed for {customer.phone}: {exc}")


@dataclass
class RedemptionResult:
    success: bool
    message: str
    discount: Optional[int] = None
    customer: Optional[str] = None
    code: Optional[str] = None

    def to_dict(self):
        data = {'success': self.success, 'message': self.message}
        for key in ('discount', 'customer', 'code'):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


def redeem_voucher(code: str, staff: StaffUser) -> RedemptionResult:
    """Mark a voucher as used at the till.

    Rejections (unknown, already used, expired) leave the voucher untouched.
    Expiry is checked here, lazily; nothing transitions vouchers in the
    background.
    """
    code = (code or '').strip().upper()
    current_app.logger.info(f"[voucher-redeem] code={code} staff={staff.id}")
    voucher = Voucher.query.filter_by(code=code).first()
    if voucher is None:
        return RedemptionResult(False, 'Voucher code is not valid')
    if voucher.used:
        return RedemptionResult(False, 'This voucher has already been used', discount=voucher.discount, code=code)
    now = utcnow()
    if voucher.is_expired(now):
        return RedemptionResult(False, 'This voucher has expired', discount=voucher.discount, code=code)

    # Conditional update so two tills racing on one code cannot both win
    try:
        updated = Voucher.query.filter_by(id=voucher.id, used=False).update(
            {'used': True, 'used_at': now, 'redeemed_by_id': staff.id},
            synchronize_session=False,
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    if updated != 1:
        return RedemptionResult(False, 'This voucher has already been used', discount=voucher.discount, code=code)
    db.session.refresh(voucher)

    customer_name = voucher.customer.full_name if voucher.customer else 'Customer'
    current_app.logger.info(
        f"[voucher-redeemed] code={code} discount={voucher.discount}% customer={customer_name}"
    )
    return RedemptionResult(True, 'Voucher redeemed', discount=voucher.discount, customer=customer_name, code=code)

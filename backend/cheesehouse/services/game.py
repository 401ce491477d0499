"""Game result processing and voucher issuance.

submission -> validate phone -> validate timings -> win/lose ->
find-or-create customer -> approval gate -> voucher -> counters ->
background notification -> response.
"""

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from flask import current_app

from cheesehouse.models import Customer, Voucher
from cheesehouse.services import customers as customer_store
from cheesehouse.services.notifier import NotificationDispatcher, VoucherNotice
from cheesehouse.services.phone import InvalidPhone, PhoneValidator
from cheesehouse.services.rules import GameDataInvalid, GameRules
from cheesehouse.services.vouchers import VoucherIssuer
from cheesehouse.socketio_events import notify_dashboard
from cheesehouse.settings import GameSettings


NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 50


class SubmissionRejected(Exception):
    """Invalid input. Raised before any customer record is touched."""


@dataclass
class GameSubmission:
    first_name: str
    last_name: str
    phone: str
    target_time: float
    achieved_time: float

    @classmethod
    def from_payload(cls, data: Any) -> 'GameSubmission':
        if not isinstance(data, dict):
            raise SubmissionRejected('Invalid game data')
        customer = data.get('customer')
        result = data.get('result')
        if not isinstance(customer, dict) or not isinstance(result, dict):
            raise SubmissionRejected('Both customer and result are required')

        names = {}
        for key, label in (('first_name', 'First name'), ('last_name', 'Last name')):
            value = customer.get(key)
            value = value.strip() if isinstance(value, str) else ''
            if not NAME_MIN_LENGTH <= len(value) <= NAME_MAX_LENGTH:
                raise SubmissionRejected(
                    f'{label} must have between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters'
                )
            names[key] = value

        phone = customer.get('phone')
        if not isinstance(phone, str) or not phone.strip():
            raise SubmissionRejected('Phone number is required')

        times = {}
        for key in ('target_time', 'achieved_time'):
            value = result.get(key)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise SubmissionRejected(f'{key} must be a number')
            try:
                value = float(value)
            except OverflowError:
                value = math.inf
            # The JSON loader accepts NaN and Infinity literals
            if not math.isfinite(value):
                raise SubmissionRejected(f'{key} must be a number')
            times[key] = value

        return cls(phone=phone.strip(), **names, **times)


@dataclass
class SubmissionResponse:
    success: bool
    message: str
    code: Optional[str] = None
    discount: Optional[int] = None
    expires_at: Optional[str] = None
    won: Optional[bool] = None
    needs_approval: bool = False
    customer_id: Optional[int] = None
    is_new_customer: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


class GameService:
    def __init__(
        self,
        settings: GameSettings,
        phones: PhoneValidator,
        rules: GameRules,
        issuer: VoucherIssuer,
        dispatcher: NotificationDispatcher,
    ):
        self.settings = settings
        self.phones = phones
        self.rules = rules
        self.issuer = issuer
        self.dispatcher = dispatcher

    def process(self, submission: GameSubmission) -> SubmissionResponse:
        log = current_app.logger
        log.info(
            f"[game-submit] {submission.first_name} {submission.last_name} phone={submission.phone} "
            f"target={submission.target_time:.1f}s achieved={submission.achieved_time:.2f}s"
        )

        try:
            phone = self.phones.normalize_and_validate(submission.phone)
        except InvalidPhone as exc:
            raise SubmissionRejected(f'Invalid phone number: {exc}') from exc

        try:
            self.rules.validate(submission.target_time, submission.achieved_time)
        except GameDataInvalid as exc:
            raise SubmissionRejected(f'Invalid game data: {exc}') from exc
        if self.rules.is_suspicious(submission.target_time, submission.achieved_time):
            diff = self.rules.difference(submission.target_time, submission.achieved_time)
            log.warning(f"[game-suspicious] phone={phone} difference={diff:.3f}s")

        won = self.rules.is_win(submission.target_time, submission.achieved_time)
        log.info(f"[game-result] phone={phone} won={won}")

        customer = customer_store.find_customer(phone)
        is_new = customer is None
        if is_new:
            customer = customer_store.create_customer(submission.first_name, submission.last_name, phone)

        if customer.status == Customer.STATUS_BLOCKED:
            log.warning(f"[game-blocked] phone={phone}")
            return SubmissionResponse(
                success=False,
                message='This customer cannot take part in the promotion',
                customer_id=customer.id,
            )

        if customer_store.needs_approval(customer, self.settings):
            log.warning(f"[game-approval] phone={phone} needs approval for game #{customer.total_games + 1}")
            return SubmissionResponse(
                success=False,
                message='This customer needs a staff member\'s approval to keep playing',
                needs_approval=True,
                customer_id=customer.id,
            )

        if not is_new:
            customer_store.update_name(customer, submission.first_name, submission.last_name)

        voucher = self.issuer.issue_game_voucher(customer, won)
        self.issuer.record_play(customer, won)

        response = SubmissionResponse(
            success=True,
            message=self.success_message(won, voucher.discount),
            code=voucher.code,
            discount=voucher.discount,
            expires_at=voucher.expiry_display,
            won=won,
            customer_id=customer.id,
            is_new_customer=is_new,
        )

        self.dispatcher.dispatch(self._notice(customer, voucher, won))
        notify_dashboard('voucher_issued', {
            'code': voucher.code,
            'discount': voucher.discount,
            'won': won,
            'customer_id': customer.id,
        })
        return response

    @staticmethod
    def _notice(customer: Customer, voucher: Voucher, won: bool) -> VoucherNotice:
        return VoucherNotice(
            phone=customer.phone,
            first_name=customer.first_name,
            code=voucher.code,
            discount=voucher.discount,
            expires_on=voucher.expiry_display,
            won=won,
        )

    @staticmethod
    def success_message(won: bool, discount: int) -> str:
        if won:
            return f'Congratulations! You won a {discount}% discount. We sent the code to your WhatsApp.'
        return f'So close! Here is a {discount}% consolation discount. Check your WhatsApp.'

    def generate_target_time(self) -> float:
        return self.rules.generate_target()

    def public_config(self) -> Dict[str, Any]:
        return self.settings.public_dict()

    def find_by_phone(self, phone: str) -> Optional[Customer]:
        return customer_store.find_customer(self.phones.normalize(phone))

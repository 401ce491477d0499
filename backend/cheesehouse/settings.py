"""Immutable runtime settings.

The Flask config is read once in ``create_app`` and frozen into a
``GameSettings`` instance. Services receive that instance in their
constructors instead of reaching for ``current_app.config``.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple


DEFAULT_AREA_CODES: Tuple[str, ...] = (
    '11', '221', '261', '264', '266', '280', '290', '291', '292', '293', '294',
    '295', '296', '297', '298', '299', '336', '341', '342', '343', '344', '345',
    '346', '347', '348', '349', '351', '352', '353', '354', '356', '357', '358',
    '359', '370', '371', '372', '373', '374', '375', '376', '377', '378', '379',
    '380', '381', '382', '383', '384', '385', '386', '387', '388', '389',
)


@dataclass(frozen=True)
class PhoneRules:
    country_code: str = '54'
    min_length: int = 10
    max_length: int = 15
    allow_international: bool = True
    area_codes: Tuple[str, ...] = DEFAULT_AREA_CODES


@dataclass(frozen=True)
class GameSettings:
    restaurant_name: str = 'CheeseHouse'
    location: str = 'Centro'
    environment: str = 'development'

    min_target_time: float = 5.0
    max_target_time: float = 20.0
    max_achieved_time: float = 30.0
    tolerance: float = 0.1
    win_discount: int = 30
    lose_discount: int = 10
    voucher_validity_days: int = 30
    games_require_approval: int = 3
    voucher_prefix: str = 'CH'

    whatsapp_token: str = ''
    whatsapp_url: str = 'https://graph.facebook.com/v17.0'
    whatsapp_phone_number_id: str = ''
    whatsapp_timeout: float = 30.0

    phone: PhoneRules = field(default_factory=PhoneRules)

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any]) -> 'GameSettings':
        area_codes = cfg.get('PHONE_AREA_CODES') or ''
        if isinstance(area_codes, str):
            area_codes = tuple(c.strip() for c in area_codes.split(',') if c.strip())
        phone = PhoneRules(
            country_code=str(cfg.get('PHONE_COUNTRY_CODE', '54')),
            allow_international=bool(cfg.get('PHONE_ALLOW_INTL', True)),
            area_codes=tuple(area_codes) or DEFAULT_AREA_CODES,
        )
        return cls(
            restaurant_name=cfg.get('RESTAURANT_NAME', 'CheeseHouse'),
            location=cfg.get('LOCATION', 'Centro'),
            environment=cfg.get('ENV_NAME', 'development'),
            min_target_time=float(cfg.get('MIN_TARGET_TIME', 5.0)),
            max_target_time=float(cfg.get('MAX_TARGET_TIME', 20.0)),
            max_achieved_time=float(cfg.get('MAX_ACHIEVED_TIME', 30.0)),
            tolerance=float(cfg.get('TOLERANCE', 0.1)),
            win_discount=int(cfg.get('WIN_DISCOUNT', 30)),
            lose_discount=int(cfg.get('LOSE_DISCOUNT', 10)),
            voucher_validity_days=int(cfg.get('VOUCHER_VALIDITY_DAYS', 30)),
            games_require_approval=int(cfg.get('GAMES_REQUIRE_APPROVAL', 3)),
            voucher_prefix=cfg.get('VOUCHER_PREFIX', 'CH'),
            whatsapp_token=cfg.get('WHATSAPP_TOKEN', ''),
            whatsapp_url=cfg.get('WHATSAPP_URL', 'https://graph.facebook.com/v17.0'),
            whatsapp_phone_number_id=cfg.get('WHATSAPP_PHONE_NUMBER_ID', ''),
            whatsapp_timeout=float(cfg.get('WHATSAPP_TIMEOUT_SEC', 30.0)),
            phone=phone,
        )

    @property
    def is_production(self) -> bool:
        return self.environment == 'production'

    def validate(self) -> List[str]:
        """Return human readable warnings about a suspicious configuration."""
        warnings = []
        if not self.whatsapp_token:
            warnings.append('WHATSAPP_TOKEN is not set, messages will only be logged')
        if not self.whatsapp_phone_number_id:
            warnings.append('WHATSAPP_PHONE_NUMBER_ID is not set, messages will only be logged')
        if self.min_target_time >= self.max_target_time:
            warnings.append('MIN_TARGET_TIME should be lower than MAX_TARGET_TIME')
        for name, value in (('WIN_DISCOUNT', self.win_discount), ('LOSE_DISCOUNT', self.lose_discount)):
            if not 1 <= value <= 100:
                warnings.append(f'{name} should be between 1 and 100')
        if self.tolerance <= 0:
            warnings.append('TOLERANCE should be positive')
        return warnings

    def public_dict(self) -> Dict[str, Any]:
        return {
            'tolerance': self.tolerance,
            'win_discount': self.win_discount,
            'lose_discount': self.lose_discount,
            'min_time': self.min_target_time,
            'max_time': self.max_target_time,
            'voucher_validity_days': self.voucher_validity_days,
            'games_require_approval': self.games_require_approval,
            'restaurant': self.restaurant_name,
        }

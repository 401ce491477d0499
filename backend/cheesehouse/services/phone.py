import re

from cheesehouse.settings import PhoneRules


_FORMATTING = re.compile(r'[\s\-().]')
_DIGITS = re.compile(r'[0-9]+')
# Argentine mobiles are dialled as +54 9 <area> <number>
_MOBILE_MARKER = '9'


class InvalidPhone(ValueError):
    pass


class PhoneValidator:
    """Normalizes customer phone numbers and checks them against the allowlist.

    A normalized number is ``+<country code><national number>`` with every
    formatting character removed. It is the lookup key for customers.
    """

    def __init__(self, rules: PhoneRules):
        self.rules = rules

    @staticmethod
    def clean(phone: str) -> str:
        return _FORMATTING.sub('', phone or '')

    def normalize(self, phone: str) -> str:
        cleaned = self.clean(phone)
        if not cleaned.startswith('+') and len(cleaned) >= self.rules.min_length:
            # Assume a local number when no international prefix was given
            cleaned = f"+{self.rules.country_code}{cleaned}"
        return cleaned

    def validate(self, phone: str) -> None:
        rules = self.rules
        cleaned = self.clean(phone)
        has_plus = cleaned.startswith('+')
        digits = cleaned[1:] if has_plus else cleaned

        if not _DIGITS.fullmatch(digits):
            raise InvalidPhone('phone number may only contain digits')
        if not rules.min_length <= len(digits) <= rules.max_length:
            raise InvalidPhone(
                f'phone number must have between {rules.min_length} and {rules.max_length} digits'
            )

        if not digits.startswith(rules.country_code):
            if not rules.allow_international:
                raise InvalidPhone(f'phone number must be local (+{rules.country_code})')
            if not has_plus:
                raise InvalidPhone('international numbers must start with +')
            return

        national = digits[len(rules.country_code):]
        if national.startswith(_MOBILE_MARKER):
            national = national[len(_MOBILE_MARKER):]
        if not any(national.startswith(code) for code in rules.area_codes):
            raise InvalidPhone(f'area code is not valid for +{rules.country_code}')

    def normalize_and_validate(self, phone: str) -> str:
        normalized = self.normalize(phone)
        self.validate(normalized)
        return normalized

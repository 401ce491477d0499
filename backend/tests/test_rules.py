import random
import pytest

from cheesehouse.settings import GameSettings, PhoneRules
from cheesehouse.services.phone import InvalidPhone, PhoneValidator
from cheesehouse.services.rules import GameDataInvalid, GameRules


@pytest.fixture()
def rules():
    return GameRules(GameSettings())


@pytest.fixture()
def phones():
    return PhoneValidator(PhoneRules())


def test_win_within_tolerance(rules):
    assert rules.is_win(10.0, 10.05)
    assert rules.is_win(10.0, 9.95)
    assert rules.is_win(10.0, 10.1)
    assert not rules.is_win(10.0, 10.2)
    assert not rules.is_win(10.0, 9.8)


def test_exact_hit_is_a_win_but_not_suspicious(rules):
    assert rules.is_win(7.5, 7.5)
    assert not rules.is_suspicious(7.5, 7.5)
    assert rules.is_suspicious(7.5, 7.505)


@pytest.mark.parametrize('target, achieved', [
    (4.9, 5.0),
    (20.5, 20.0),
    (10.0, -0.1),
    (10.0, 30.5),
])
def test_out_of_range_times_rejected(rules, target, achieved):
    with pytest.raises(GameDataInvalid):
        rules.validate(target, achieved)


def test_range_limits_are_inclusive(rules):
    rules.validate(5.0, 0.0)
    rules.validate(20.0, 30.0)


def test_generated_target_in_range_with_one_decimal(rules):
    rng = random.Random(42)
    for _ in range(50):
        value = rules.generate_target(rng)
        assert 5.0 <= value <= 20.0
        assert round(value, 1) == value


def test_phone_formatting_is_removed(phones):
    assert phones.normalize('+54 9 (11) 2345-6789') == '+5491123456789'


def test_local_number_gets_country_code(phones):
    assert phones.normalize_and_validate('11 2345 6789') == '+541123456789'


def test_short_input_is_left_without_prefix(phones):
    assert phones.normalize('12345') == '12345'


def test_valid_mobile_with_marker(phones):
    phones.validate('+5491123456789')
    phones.validate('+5493512345678')


def test_unknown_area_code_rejected(phones):
    with pytest.raises(InvalidPhone):
        phones.validate('+5490001234567')


def test_international_needs_plus(phones):
    phones.validate('+14155552671')
    with pytest.raises(InvalidPhone):
        phones.validate('14155552671')


def test_international_disabled():
    strict = PhoneValidator(PhoneRules(allow_international=False))
    with pytest.raises(InvalidPhone):
        strict.validate('+14155552671')


@pytest.mark.parametrize('raw', ['+54911abc4567', '+54911', '+5491123456789012345', ''])
def test_malformed_numbers_rejected(phones, raw):
    with pytest.raises(InvalidPhone):
        phones.normalize_and_validate(raw)


def test_custom_area_codes_from_config():
    settings = GameSettings.from_config({'PHONE_AREA_CODES': '221, 223'})
    assert settings.phone.area_codes == ('221', '223')
    validator = PhoneValidator(settings.phone)
    validator.validate('+542231234567')
    with pytest.raises(InvalidPhone):
        validator.validate('+541123456789')


def test_settings_warn_about_missing_messaging_credentials():
    warnings = GameSettings().validate()
    assert any('WHATSAPP_TOKEN' in w for w in warnings)
    assert not GameSettings(whatsapp_token='t', whatsapp_phone_number_id='1').validate()


def test_tolerance_boundary_is_inclusive_across_the_range(rules):
    # abs(20.0 - 19.9) is 0.10000000000000142 in binary floating point
    assert rules.is_win(19.9, 20.0)
    assert rules.is_win(20.0, 19.9)
    assert rules.is_win(5.0, 5.1)
    assert not rules.is_win(19.9, 20.01)


@pytest.mark.parametrize('target, achieved', [
    (float('nan'), 10.0),
    (10.0, float('nan')),
    (float('inf'), 10.0),
    (10.0, float('-inf')),
])
def test_non_finite_times_rejected(rules, target, achieved):
    with pytest.raises(GameDataInvalid):
        rules.validate(target, achieved)


import pytest

from clinic.services.phone import format_for_display, format_for_sms, is_valid_phone, validation_error


@pytest.mark.parametrize('phone,valid', [
    ('9812345670', True),
    ('+91 9812345670', True),
    ('(123) 456-7890', True),
    ('123.456.7890', True),
    ('+14155550100', True),
    ('+441632960961', True),
    ('12345', False),
    ('', False),
    ('   ', False),
    (None, False),
])
def test_is_valid_phone(phone, valid):
    assert is_valid_phone(phone) is valid


@pytest.mark.parametrize('phone,expected', [
    ('9812345670', '+919812345670'),
    ('919812345670', '+919812345670'),
    ('4155550100', '+14155550100'),
    ('1-415-555-0100', '+14155550100'),
    ('+44 1632 960961', '+441632960961'),
])
def test_format_for_sms(phone, expected):
    assert format_for_sms(phone) == expected


def test_format_for_sms_rejects_empty():
    with pytest.raises(ValueError):
        format_for_sms('  ')


@pytest.mark.parametrize('phone,expected', [
    ('9812345670', '+91 98123 45670'),
    ('+919812345670', '+91 98123 45670'),
    ('4155550100', '(415) 555-0100'),
    ('14155550100', '+1 (415) 555-0100'),
    ('', ''),
])
def test_format_for_display(phone, expected):
    assert format_for_display(phone) == expected


def test_validation_error_messages():
    assert validation_error('') == 'Phone number is required'
    assert validation_error('abc').startswith('Please enter a valid phone number')
    assert validation_error('9812345670') is None

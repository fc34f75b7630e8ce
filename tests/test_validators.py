"""Tests for validation helpers and update schemas."""
import pytest

from gateflow.models.updates import ApiKeyUpdate, CouponUpdate, ProductUpdate, WebhookUpdate
from gateflow.services.base import ValidationError
from gateflow.utils import timeutil, validators


def test_validate_url_accepts_http():
    valid, error = validators.validate_url('https://example.com')
    assert valid is True
    assert error == ''


def test_validate_url_rejects_invalid():
    valid, error = validators.validate_url('not-a-url')
    assert valid is False
    assert 'Invalid URL format' in error


def test_validate_uuid():
    assert validators.validate_uuid('6f1c1f8e-2f6a-4d5e-9b1a-0c2d3e4f5a6b')[0] is True
    assert validators.validate_uuid('1')[0] is False
    assert validators.validate_uuid(None)[0] is False


@pytest.mark.parametrize('value,expected', [(1, True), (1000, True), (0, False), (1001, False),
                                            (True, False), ('60', False)])
def test_validate_rate_limit(value, expected):
    assert validators.validate_rate_limit(value)[0] is expected


@pytest.mark.parametrize('value,expected', [(0, True), (168, True), (169, False), (-1, False), (None, False)])
def test_validate_grace_period(value, expected):
    assert validators.validate_grace_period(value)[0] is expected


def test_validate_future_timestamp():
    assert validators.validate_future_timestamp('2999-01-01T00:00:00Z')[0] is True
    valid, error = validators.validate_future_timestamp('2000-01-01T00:00:00Z')
    assert valid is False
    assert 'future' in error
    assert validators.validate_future_timestamp(12345)[0] is False


def test_validate_future_timestamp_against_given_now():
    now = timeutil.parse_timestamp('2000-01-01T00:00:00Z')
    assert validators.validate_future_timestamp('2000-06-01T00:00:00Z', now=now)[0] is True
    assert validators.validate_future_timestamp('1999-12-31T23:59:59Z', now=now)[0] is False
    assert validators.validate_future_timestamp('2000-01-01T00:00:00Z', now=now)[0] is False


def test_validate_access_days():
    assert validators.validate_access_days(1)[0] is True
    assert validators.validate_access_days(3650)[0] is True
    for value in (0, 3651, 2.5, True, '30', None):
        assert validators.validate_access_days(value)[0] is False
    assert 'extend_days' in validators.validate_access_days(0, 'extend_days')[1]


def test_validate_amount():
    assert validators.validate_amount(0)[0] is True
    assert validators.validate_amount(0, allow_zero=False)[0] is False
    assert validators.validate_amount(validators.MAX_AMOUNT + 1)[0] is False
    assert validators.validate_amount(False)[0] is False


def test_validate_slug_and_currency():
    assert validators.validate_slug('my-course-2')[0] is True
    assert validators.validate_slug('my--course')[0] is False
    assert validators.validate_currency('PLN')[0] is True
    assert validators.validate_currency('pln')[0] is False


def test_validate_events():
    assert validators.validate_events(['payment.completed', 'product.created'])[0] is True
    valid, error = validators.validate_events(['payment.completed', 'oops'])
    assert valid is False
    assert 'oops' in error


def test_sanitize_string_strips_control_characters():
    assert validators.sanitize_string('ab\x00c\x1f ', max_length=10) == 'abc'
    assert validators.sanitize_string('abcdef', max_length=3) == 'abc'


class TestTimestamps:
    """Tests for timestamp normalization"""

    def test_z_suffix(self):
        assert timeutil.normalize_timestamp('2026-05-01T10:00:00Z') == '2026-05-01T10:00:00.000000+00:00'

    def test_offset_converted_to_utc(self):
        assert timeutil.normalize_timestamp('2026-05-01T12:00:00+02:00') == '2026-05-01T10:00:00.000000+00:00'

    def test_naive_is_utc(self):
        assert timeutil.normalize_timestamp('2026-05-01T10:00:00') == '2026-05-01T10:00:00.000000+00:00'

    def test_invalid(self):
        with pytest.raises(ValueError):
            timeutil.parse_timestamp('next tuesday')


class TestUpdateSchemas:
    """Tests for the explicit PATCH schemas"""

    def test_only_provided_fields_are_returned(self):
        assert ProductUpdate.parse({'price': 100}) == {'price': 100}

    def test_unknown_fields(self):
        with pytest.raises(ValidationError) as exc_info:
            ProductUpdate.parse({'price': 100, 'id': 'x'})
        assert exc_info.value.details['unknown_fields'] == ['id']
        assert 'price' in exc_info.value.details['allowed_fields']

    def test_empty(self):
        with pytest.raises(ValidationError, match='No valid update fields'):
            WebhookUpdate.parse({})

    def test_non_object(self):
        with pytest.raises(ValidationError):
            CouponUpdate.parse(['name'])

    def test_api_key_scopes_deduplicated(self):
        assert ApiKeyUpdate.parse({'scopes': ['users:read', 'users:read']}) == {'scopes': ['users:read']}

    def test_api_key_name_stripped(self):
        assert ApiKeyUpdate.parse({'name': '  CI  '}) == {'name': 'CI'}

    def test_coupon_expiry_normalized(self):
        changes = CouponUpdate.parse({'expires_at': '2999-01-01T00:00:00Z', 'currency': 'eur'})
        assert changes == {'expires_at': '2999-01-01T00:00:00.000000+00:00', 'currency': 'EUR'}

    def test_nullable_fields(self):
        assert CouponUpdate.parse({'expires_at': None, 'usage_limit_global': None}) == {
            'expires_at': None,
            'usage_limit_global': None,
        }

    def test_all_field_errors_reported(self):
        with pytest.raises(ValidationError) as exc_info:
            ApiKeyUpdate.parse({'name': '', 'rate_limit_per_minute': 5000, 'is_active': 'no'})
        assert set(exc_info.value.details['fields']) == {'name', 'rate_limit_per_minute', 'is_active'}

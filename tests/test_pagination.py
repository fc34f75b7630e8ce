"""Tests for cursor pagination helpers and paginated listings."""
import base64
import json

import pytest

from gateflow.repositories import ProductRepository
from gateflow.utils.pagination import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    InvalidCursorError,
    ListQuery,
    PageRequest,
    SortSpec,
    build_page,
    decode_cursor,
    encode_cursor,
    parse_limit,
    parse_sort,
)
from gateflow.services.base import InvalidInputError


def _raw_token(payload) -> str:
    return base64.urlsafe_b64encode(json.dumps(payload).encode()).decode().rstrip('=')


class TestCursorCodec:
    """Tests for cursor encoding"""

    def test_round_trip(self):
        token = encode_cursor('2026-01-01T00:00:00.000000+00:00', 'abc')
        cursor = decode_cursor(token, str)
        assert cursor.value == '2026-01-01T00:00:00.000000+00:00'
        assert cursor.id == 'abc'

    def test_token_is_url_safe_and_unpadded(self):
        token = encode_cursor('x' * 37, 'id-1')
        assert '=' not in token
        assert '+' not in token and '/' not in token

    def test_integer_sort_value(self):
        cursor = decode_cursor(encode_cursor(1500, 'p1'), int)
        assert cursor.value == 1500

    @pytest.mark.parametrize('token', [
        'not base64!',
        'AAAA',
        _raw_token(['v', 'id']),
        _raw_token({'v': 'x'}),
        _raw_token({'v': 'x', 'id': ''}),
        _raw_token({'v': 'x', 'id': 'a', 'extra': 1}),
        'a' * 3000,
    ])
    def test_malformed_tokens_rejected(self, token):
        with pytest.raises(InvalidCursorError):
            decode_cursor(token)

    def test_type_mismatch_rejected(self):
        with pytest.raises(InvalidCursorError):
            decode_cursor(encode_cursor('100', 'p1'), int)
        with pytest.raises(InvalidCursorError):
            decode_cursor(_raw_token({'v': True, 'id': 'p1'}), int)

    def test_invalid_cursor_maps_to_invalid_input(self):
        assert issubclass(InvalidCursorError, InvalidInputError)
        assert InvalidCursorError().code == 'INVALID_INPUT'


class TestParseHelpers:
    """Tests for limit and sort parsing"""

    @pytest.mark.parametrize('raw,expected', [
        (None, DEFAULT_LIMIT),
        ('', DEFAULT_LIMIT),
        ('abc', DEFAULT_LIMIT),
        ('0', 1),
        ('-5', 1),
        ('20', 20),
        ('1000', MAX_LIMIT),
    ])
    def test_parse_limit(self, raw, expected):
        assert parse_limit(raw) == expected

    def test_sort_prefix_syntax(self):
        spec = parse_sort({'sort': '-name'}, {'created_at': str, 'name': str})
        assert spec.field == 'name'
        assert spec.descending

    def test_sort_by_and_order(self):
        spec = parse_sort({'sort_by': 'price', 'sort_order': 'ASC'}, {'created_at': str, 'price': int})
        assert spec.field == 'price'
        assert spec.direction == 'asc'
        assert spec.value_type is int

    def test_default_sort(self):
        spec = parse_sort({}, {'created_at': str})
        assert (spec.field, spec.direction) == ('created_at', 'desc')

    def test_unknown_field_rejected(self):
        with pytest.raises(InvalidInputError):
            parse_sort({'sort_by': 'password_hash'}, {'created_at': str})

    def test_unknown_order_rejected(self):
        with pytest.raises(InvalidInputError):
            parse_sort({'sort_order': 'sideways'}, {'created_at': str})


def test_list_query_keyset_predicate():
    query = ListQuery('SELECT * FROM products').where('is_active = 1')
    query.apply_cursor(decode_cursor(encode_cursor('b', 'id-2')), SortSpec('name', 'asc'))
    sql, params = query.build(11)
    assert 'WHERE is_active = 1 AND (name > ? OR (name = ? AND id > ?))' in sql
    assert sql.endswith('ORDER BY name ASC, id ASC LIMIT ?')
    assert params == ['b', 'b', 'id-2', 11]


def test_build_page_trims_extra_row():
    rows = [{'id': str(i), 'created_at': f'2026-01-0{i}'} for i in range(1, 5)]
    result = build_page(rows, 3, SortSpec('created_at'))
    assert len(result['data']) == 3
    assert result['pagination']['has_more'] is True
    assert decode_cursor(result['pagination']['next_cursor']).id == '3'

    last = build_page(rows[:2], 3, SortSpec('created_at'), cursor='tok')
    assert last['pagination'] == {'cursor': 'tok', 'next_cursor': None, 'has_more': False, 'limit': 3}


def _seed_products(db_factory, count, shared_timestamp=False):
    repo = ProductRepository(db_factory)
    ids = []
    for i in range(count):
        created_at = '2026-03-01T00:00:00.000000+00:00' if shared_timestamp else f'2026-03-01T00:00:{i:02d}.000000+00:00'
        product = repo.create({
            'id': repo.new_id(),
            'name': f'Product {i:03d}',
            'slug': f'product-{i}',
            'price': (i % 4) * 100,
            'currency': 'USD',
            'created_at': created_at,
            'updated_at': created_at,
        })
        ids.append(product.id)
    return ids


def _walk(client, limit, **params):
    seen = []
    pages = 0
    query = dict(params, limit=limit)
    while True:
        response = client.get('/api/v1/products', query_string=query)
        assert response.status_code == 200
        body = response.get_json()
        seen.extend(item['id'] for item in body['data'])
        pages += 1
        pagination = body['pagination']
        if not pagination['has_more']:
            assert pagination['next_cursor'] is None
            return seen, pages
        query['cursor'] = pagination['next_cursor']


class TestPaginatedListing:
    """Walking a listing with cursors visits every row exactly once"""

    @pytest.mark.parametrize('count', [0, 1, 4, 5, 23])
    def test_completeness(self, authenticated_client, db_factory, count):
        ids = _seed_products(db_factory, count)
        seen, _ = _walk(authenticated_client, 4)
        assert sorted(seen) == sorted(ids)
        assert len(seen) == len(set(seen))

    def test_ties_on_sort_value_are_not_skipped(self, authenticated_client, db_factory):
        ids = _seed_products(db_factory, 9, shared_timestamp=True)
        seen, pages = _walk(authenticated_client, 2)
        assert sorted(seen) == sorted(ids)
        assert pages == 5

    def test_integer_sort_field(self, authenticated_client, db_factory):
        ids = _seed_products(db_factory, 10)
        seen, _ = _walk(authenticated_client, 3, sort='price')
        assert sorted(seen) == sorted(ids)

    def test_exact_page_has_no_more(self, authenticated_client, db_factory):
        _seed_products(db_factory, 4)
        response = authenticated_client.get('/api/v1/products?limit=4')
        body = response.get_json()
        assert len(body['data']) == 4
        assert body['pagination']['has_more'] is False

    def test_tampered_cursor_rejected(self, authenticated_client):
        response = authenticated_client.get('/api/v1/products?cursor=%%%')
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_INPUT'

    def test_mutated_cursor_never_errors(self, authenticated_client, db_factory):
        _seed_products(db_factory, 3)
        token = authenticated_client.get('/api/v1/products?limit=1').get_json()['pagination']['next_cursor']
        for index, char in enumerate(token):
            replacement = 'A' if char != 'A' else 'z'
            mutated = token[:index] + replacement + token[index + 1:]
            response = authenticated_client.get(f'/api/v1/products?limit=1&cursor={mutated}')
            assert response.status_code in (200, 400), mutated
            if response.status_code == 400:
                assert response.get_json()['error']['code'] == 'INVALID_INPUT'

    def test_unknown_sort_field_rejected(self, authenticated_client):
        response = authenticated_client.get('/api/v1/products?sort_by=secret')
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_INPUT'


def test_page_request_from_args():
    token = encode_cursor(250, 'p9')
    page = PageRequest.from_args({'cursor': token, 'limit': '10', 'sort': 'price'}, {'created_at': str, 'price': int})
    assert page.limit == 10
    assert page.cursor.value == 250
    assert page.cursor_token == token
    assert page.sort.direction == 'asc'


_URLSAFE_ALPHABET = 'ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_'


@pytest.mark.parametrize('value_type,sort_value', [
    (str, '2024-03-01T12:00:00.000000+00:00'),
    (int, 4999),
])
def test_single_character_mutations_decode_or_reject(value_type, sort_value):
    token = encode_cursor(sort_value, 'a1b2c3d4-0000-4000-8000-000000000001')
    for index, original in enumerate(token):
        for char in _URLSAFE_ALPHABET:
            if char == original:
                continue
            mutated = token[:index] + char + token[index + 1:]
            try:
                cursor = decode_cursor(mutated, value_type)
            except InvalidCursorError:
                continue
            assert isinstance(cursor.id, str) and cursor.id
            assert isinstance(cursor.value, value_type) and not isinstance(cursor.value, bool)

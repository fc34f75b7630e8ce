from __future__ import annotations

import calendar
import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from gateflow.repositories import CustomerRepository, PaymentRepository, ProductRepository, RefundRequestRepository
from gateflow.services.base import ExchangeRateError, InvalidInputError
from gateflow.services.exchange_rates import ExchangeRateService
from gateflow.utils import validators
from gateflow.utils.timeutil import isoformat, parse_timestamp, utcnow

logger = logging.getLogger(__name__)

PERIODS = ('day', 'week', 'month', 'quarter', 'year', 'all')
GROUPINGS = ('day', 'week', 'month')
DEFAULT_GROUPING = {
    'day': 'day',
    'week': 'day',
    'month': 'day',
    'quarter': 'week',
    'year': 'month',
    'all': 'month',
}
TOP_PRODUCT_SORTS = ('revenue', 'sales')
DEFAULT_TOP_PRODUCTS = 10
MAX_TOP_PRODUCTS = 50
MAX_BREAKDOWN_POINTS = 3700
ALL_TIME_START = datetime(2020, 1, 1, tzinfo=timezone.utc)


def _add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def period_start(period: str, now: datetime) -> datetime:
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == 'day':
        return start_of_day
    if period == 'week':
        return now - timedelta(days=7)
    if period == 'month':
        return start_of_day.replace(day=1)
    if period == 'quarter':
        return _add_months(now, -3)
    if period == 'year':
        return start_of_day.replace(month=1, day=1)
    return ALL_TIME_START


def _bucket_start(value: datetime, group_by: str) -> datetime:
    day = value.replace(hour=0, minute=0, second=0, microsecond=0)
    if group_by == 'week':
        return day - timedelta(days=day.weekday())
    if group_by == 'month':
        return day.replace(day=1)
    return day


def _bucket_key(bucket: datetime, group_by: str) -> str:
    if group_by == 'month':
        return bucket.strftime('%Y-%m')
    return bucket.date().isoformat()


def _next_bucket(bucket: datetime, group_by: str) -> datetime:
    if group_by == 'month':
        return _add_months(bucket, 1)
    return bucket + timedelta(days=7 if group_by == 'week' else 1)


def _percent_change(current: int, previous: int) -> float:
    if previous > 0:
        return round((current - previous) / previous * 100, 2)
    return 100.0 if current > 0 else 0.0


def _share(part: int, total: int) -> float:
    return round(part / total * 100, 2) if total > 0 else 0.0


class AnalyticsService:
    """Aggregates for the admin dashboard and revenue reports.

    Amounts are minor units. Report totals add up raw amounts across
    currencies; ``by_currency`` carries the per-currency split.
    """

    def __init__(
        self,
        payment_repo: PaymentRepository,
        product_repo: ProductRepository,
        customer_repo: CustomerRepository,
        refund_repo: RefundRequestRepository,
        exchange_rates: ExchangeRateService,
        display_currency: str = 'USD',
        clock: Callable[[], datetime] = utcnow,
    ):
        self._payments = payment_repo
        self._products = product_repo
        self._customers = customer_repo
        self._refunds = refund_repo
        self._exchange_rates = exchange_rates
        self._display_currency = display_currency
        self._clock = clock

    def dashboard(self, display_currency: Optional[str] = None) -> Dict[str, Any]:
        now = self._clock()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        start_of_week = start_of_day - timedelta(days=start_of_day.weekday())
        start_of_month = start_of_day.replace(day=1)

        total = self._payments.revenue_by_currency()
        revenue = {
            'today': self._payments.revenue_by_currency(isoformat(start_of_day)),
            'this_week': self._payments.revenue_by_currency(isoformat(start_of_week)),
            'this_month': self._payments.revenue_by_currency(isoformat(start_of_month)),
            'total': total,
            'by_currency': total,
            'converted': self._converted(total, display_currency or self._display_currency),
        }
        refund_counts = self._refunds.count_by_status()
        return {
            'revenue': revenue,
            'transactions': {
                'total': self._payments.count(),
                'today': self._payments.count(isoformat(start_of_day)),
            },
            'products': self._products.count(),
            'users': {'total': self._customers.count()},
            'refunds': {
                'pending': refund_counts.get('pending', 0),
                'total': sum(refund_counts.values()),
            },
            'generated_at': isoformat(now),
        }

    def _converted(self, totals: Dict[str, int], currency: str) -> Optional[Dict[str, Any]]:
        try:
            amount = self._exchange_rates.convert_totals(totals, currency)
        except ExchangeRateError as exc:
            logger.warning(f"Revenue conversion to {currency} unavailable: {exc.message}")
            return None
        return {'currency': currency, 'total': amount, 'source': self._exchange_rates.provider_name}

    @staticmethod
    def _period(period: Optional[str]) -> str:
        period = period or 'month'
        if period not in PERIODS:
            raise InvalidInputError(f"period must be one of: {', '.join(PERIODS)}")
        return period

    def _date_range(self, period: str, start_date: Optional[str],
                    end_date: Optional[str], now: datetime) -> Tuple[datetime, datetime]:
        try:
            start = parse_timestamp(start_date) if start_date else period_start(period, now)
        except ValueError:
            raise InvalidInputError('Invalid start_date format')
        try:
            end = parse_timestamp(end_date) if end_date else now
        except ValueError:
            raise InvalidInputError('Invalid end_date format')
        if start > end:
            raise InvalidInputError('start_date must not be after end_date')
        return start, end

    def revenue(self, period: Optional[str] = None, start_date: Optional[str] = None,
                end_date: Optional[str] = None, product_id: Optional[str] = None,
                group_by: Optional[str] = None) -> Dict[str, Any]:
        """Revenue summary, a gap-filled time series and the change against the previous period."""
        period = self._period(period)
        if group_by is None or group_by == '':
            group_by = 'day' if start_date else DEFAULT_GROUPING[period]
        if group_by not in GROUPINGS:
            raise InvalidInputError(f"group_by must be one of: {', '.join(GROUPINGS)}")
        if product_id:
            valid, _ = validators.validate_uuid(product_id)
            if not valid:
                raise InvalidInputError('Invalid product ID format')

        now = self._clock()
        start, end = self._date_range(period, start_date, end_date, now)
        buckets = self._buckets(start, end, group_by)
        transactions = self._payments.paid_between(isoformat(start), isoformat(end), product_id or None)

        by_currency: Dict[str, Dict[str, int]] = {}
        series: Dict[str, Dict[str, Any]] = {
            key: {'date': key, 'revenue': 0, 'transactions': 0, 'by_currency': {}} for key in buckets
        }
        total_revenue = total_refunded = 0
        for tx in transactions:
            total_revenue += tx.amount
            total_refunded += tx.refunded_amount or 0
            currency_totals = by_currency.setdefault(tx.currency, {'revenue': 0, 'transactions': 0, 'refunded': 0})
            currency_totals['revenue'] += tx.amount
            currency_totals['transactions'] += 1
            currency_totals['refunded'] += tx.refunded_amount or 0

            point = series[_bucket_key(_bucket_start(parse_timestamp(tx.created_at), group_by), group_by)]
            point['revenue'] += tx.amount
            point['transactions'] += 1
            point['by_currency'][tx.currency] = point['by_currency'].get(tx.currency, 0) + tx.amount

        count = len(transactions)
        previous_end = start - timedelta(microseconds=1)
        previous_start = previous_end - (end - start)
        previous = self._payments.paid_totals(isoformat(previous_start), isoformat(previous_end), product_id or None)

        return {
            'summary': {
                'total_revenue': total_revenue,
                'total_refunded': total_refunded,
                'net_revenue': total_revenue - total_refunded,
                'total_transactions': count,
                'average_order_value': round(total_revenue / count, 2) if count else 0,
                'by_currency': by_currency,
            },
            'breakdown': [series[key] for key in buckets],
            'comparison': {
                'previous_period': {
                    'start': isoformat(previous_start),
                    'end': isoformat(previous_end),
                    'revenue': previous['revenue'],
                    'transactions': previous['transactions'],
                },
                'revenue_change_percent': _percent_change(total_revenue, previous['revenue']),
                'transaction_change_percent': _percent_change(count, previous['transactions']),
            },
            'filters': {
                'period': period,
                'start_date': isoformat(start),
                'end_date': isoformat(end),
                'product_id': product_id or None,
                'group_by': group_by,
            },
            'generated_at': isoformat(now),
        }

    @staticmethod
    def _buckets(start: datetime, end: datetime, group_by: str) -> List[str]:
        keys = []
        bucket = _bucket_start(start, group_by)
        while bucket <= end:
            keys.append(_bucket_key(bucket, group_by))
            if len(keys) > MAX_BREAKDOWN_POINTS:
                raise InvalidInputError(f'Date range is too long for group_by={group_by}')
            bucket = _next_bucket(bucket, group_by)
        return keys

    def top_products(self, period: Optional[str] = None, limit: Any = None,
                     sort_by: Optional[str] = None) -> Dict[str, Any]:
        """Best sellers ranked by revenue or sales count, with each one's share of the ranked total."""
        period = self._period(period)
        sort_by = sort_by or 'revenue'
        if sort_by not in TOP_PRODUCT_SORTS:
            raise InvalidInputError('sort_by must be "revenue" or "sales"')
        if limit is None or limit == '':
            limit = DEFAULT_TOP_PRODUCTS
        try:
            limit = int(limit)
        except (TypeError, ValueError):
            raise InvalidInputError('limit must be an integer')
        limit = max(1, min(limit, MAX_TOP_PRODUCTS))

        now = self._clock()
        start = period_start(period, now)
        stats: Dict[str, Dict[str, Any]] = defaultdict(lambda: {'revenue': 0, 'sales_count': 0, 'by_currency': {}})
        for row in self._payments.sales_by_product(isoformat(start)):
            entry = stats[row['product_id']]
            entry['revenue'] += row['revenue']
            entry['sales_count'] += row['sales_count']
            entry['by_currency'][row['currency']] = {'revenue': row['revenue'], 'count': row['sales_count']}

        metric = 'revenue' if sort_by == 'revenue' else 'sales_count'
        ranked = sorted(stats.items(), key=lambda item: (-item[1][metric], item[0]))[:limit]
        total_revenue = sum(entry['revenue'] for _, entry in ranked)
        total_sales = sum(entry['sales_count'] for _, entry in ranked)

        products = []
        for rank, (product_id, entry) in enumerate(ranked, start=1):
            product = self._products.get(product_id)
            products.append({
                'product_id': product_id,
                'name': product.name if product else 'Unknown Product',
                'slug': product.slug if product else '',
                'is_active': product.is_active if product else False,
                'current_price': product.price if product else 0,
                'current_currency': product.currency if product else None,
                'revenue': entry['revenue'],
                'sales_count': entry['sales_count'],
                'average_price': round(entry['revenue'] / entry['sales_count'], 2),
                'by_currency': entry['by_currency'],
                'rank': rank,
                'revenue_share': _share(entry['revenue'], total_revenue),
                'sales_share': _share(entry['sales_count'], total_sales),
            })

        return {
            'products': products,
            'summary': {
                'total_products': len(products),
                'total_revenue': total_revenue,
                'total_sales': total_sales,
            },
            'filters': {
                'period': period,
                'start_date': isoformat(start),
                'limit': limit,
                'sort_by': sort_by,
            },
            'generated_at': isoformat(now),
        }

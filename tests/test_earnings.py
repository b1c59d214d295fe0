from datetime import date, datetime

from conftest import make_raw_order
from services.earnings import Wallet, calculate_earnings, parse_created_at, week_start
from services.order_mapper import map_api_order

# Суббота
NOW = datetime(2026, 10, 17, 18, 0)


def _delivered(order_id, day, fee=10.0, status_id=58):
    return map_api_order(make_raw_order(order_id, status_id, orderDate=day, deliveryFee=fee))


def test_week_starts_on_sunday():
    assert week_start(date(2026, 10, 17)) == date(2026, 10, 11)
    assert week_start(date(2026, 10, 11)) == date(2026, 10, 11)
    assert week_start(date(2026, 10, 12)) == date(2026, 10, 11)


def test_calculate_earnings_buckets():
    orders = [
        _delivered(1, "2026-10-17", 10),
        _delivered(2, "2026-10-11", 20),
        _delivered(3, "2026-10-10", 40),
        _delivered(4, "2026-09-30", 80),
        _delivered(5, "2026-10-17", 1000, status_id=53),
    ]

    earnings = calculate_earnings(orders, now=NOW)

    assert earnings.today == 10
    assert earnings.delivered_today == 1
    assert earnings.week == 30
    assert earnings.month == 70


def test_default_fee_counts():
    order = map_api_order(make_raw_order(1, 58, orderDate="2026-10-17"))
    assert calculate_earnings([order], now=NOW).today == 5.0


def test_unparsable_dates_are_skipped():
    order = _delivered(1, "someday")
    assert calculate_earnings([order], now=NOW).month == 0


def test_parse_created_at_formats():
    assert parse_created_at("2026-10-17T12:30:00") == datetime(2026, 10, 17, 12, 30)
    assert parse_created_at("2026-10-17T12:30") == datetime(2026, 10, 17, 12, 30)
    assert parse_created_at("2026-10-17T01:05 PM") == datetime(2026, 10, 17, 13, 5)
    assert parse_created_at("") is None


def test_wallet_from_dict():
    wallet = Wallet.from_dict({"balance": "12.5", "pendingAmount": None, "totalEarnings": 300, "cashInHand": 40})

    assert wallet == Wallet(balance=12.5, pending_amount=0.0, total_earnings=300.0, cash_in_hand=40.0)

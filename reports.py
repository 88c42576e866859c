"""
Financial reporting over sales and expenses.

Date ranges are inclusive and date-only: a range [D1, D2] covers
D1 00:00:00 through D2 23:59:59.999999.
"""
from datetime import date, datetime, time

from errors import ValidationError
from repositories import LedgerRepository


def _parse_day(value, label):
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value)).date()
    except ValueError:
        raise ValidationError(f'Invalid {label} date format') from None


def parse_date_range(start_date=None, end_date=None):
    """
    Turn optional start/end dates (``date`` objects or ISO strings) into
    datetime bounds. Either bound may be None, meaning open-ended.
    """
    start_day = _parse_day(start_date, 'start')
    end_day = _parse_day(end_date, 'end')

    if start_day and end_day and start_day > end_day:
        raise ValidationError('Start date cannot be after end date')

    start = datetime.combine(start_day, time.min) if start_day else None
    end = datetime.combine(end_day, time.max) if end_day else None
    return start, end


def generate_report(session, start_date=None, end_date=None):
    start, end = parse_date_range(start_date, end_date)
    ledger = LedgerRepository(session)

    sales = ledger.sales(start, end)
    expenses = ledger.expenses(start, end)

    total_sales = sum(s.amount for s in sales)
    total_cost_of_goods = sum(s.cost_of_goods for s in sales)
    total_expenses = sum(e.amount for e in expenses)

    return {
        'start_date': start.date().isoformat() if start else None,
        'end_date': end.date().isoformat() if end else None,
        'total_sales': total_sales,
        'total_cost_of_goods': total_cost_of_goods,
        'total_expenses': total_expenses,
        'gross_profit': total_sales - total_cost_of_goods,
        'net_balance': total_sales - total_cost_of_goods - total_expenses,
        'sales': sales,
        'expenses': expenses,
    }

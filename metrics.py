"""Derived metrics.

Pure functions over already-loaded entities. Anything that depends on the
current time takes ``now`` as an argument; nothing here reads the clock.
"""
import logging
import math
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from normalizer import is_all, parse_id
from relations import records_for_farm
from schemas import (
    HARVESTED, Crop, DashboardStats, Farm, FinancialRollup, FinancialSummary,
    InventoryItem, MonthlyBucket, StockStatus, Task, Transaction,
)
from utils import as_utc, day_label, month_key, month_label, parse_when

_LOGGER = logging.getLogger(__name__)

CRITICAL = "critical"
LOW = "low"
MEDIUM = "medium"
GOOD = "good"

OUT_OF_STOCK = "out of stock"
REORDER_NEEDED = "reorder needed"
IN_STOCK = "in stock"

INCOME = "income"
EXPENSE = "expense"

NO_DUE_DATE = "No due date"
TASK_FILTERS = ("all", "pending", "completed", "overdue")


# ---------- Inventory ----------

def stock_percentage(current: float, maximum: float) -> float:
    if not maximum or maximum <= 0:
        return 0.0
    return current * 100 / maximum


def stock_level(current: float, maximum: float) -> str:
    if not maximum or maximum <= 0:
        return CRITICAL
    pct = stock_percentage(current, maximum)
    if pct <= 0:
        return CRITICAL
    if pct <= 25:
        return LOW
    if pct <= 60:
        return MEDIUM
    return GOOD


def reorder_status(current: float, minimum: float) -> str:
    if current <= 0:
        return OUT_OF_STOCK
    if current <= minimum:
        return REORDER_NEEDED
    return IN_STOCK


def stock_status(item: InventoryItem) -> StockStatus:
    pct = stock_percentage(item.current_stock, item.max_capacity)
    return StockStatus(
        item_id=item.id,
        name=item.name,
        percentage=math.floor(pct + 0.5),
        level=stock_level(item.current_stock, item.max_capacity),
        reorder=reorder_status(item.current_stock, item.minimum_threshold),
    )


def filter_by_category(items: Iterable[InventoryItem], category) -> List[InventoryItem]:
    if is_all(category):
        return list(items)
    return [i for i in items if i.category == category]


# ---------- Tasks ----------

def is_overdue(task: Task, now: datetime) -> bool:
    if task.completed:
        return False
    due = parse_when(task.due_date)
    return due is not None and due < as_utc(now)


def overdue_tasks(tasks: Iterable[Task], now: datetime) -> List[Task]:
    return [t for t in tasks if is_overdue(t, now)]


def sort_by_due(tasks: Iterable[Task]) -> List[Task]:
    """Earliest due date first; tasks without a usable date go last."""
    def key(task):
        due = parse_when(task.due_date)
        return (due is None, due.timestamp() if due else 0.0)
    return sorted(tasks, key=key)


def upcoming_tasks(tasks: Iterable[Task], limit: int = 5) -> List[Task]:
    pending = [t for t in tasks if not t.completed and parse_when(t.due_date) is not None]
    return sort_by_due(pending)[:max(limit, 0)]


def due_label(task: Task) -> str:
    due = parse_when(task.due_date)
    return day_label(due) if due else NO_DUE_DATE


def filter_tasks(tasks: Iterable[Task], status: Optional[str], now: datetime) -> List[Task]:
    if is_all(status):
        return list(tasks)
    if status == "pending":
        return [t for t in tasks if not t.completed]
    if status == "completed":
        return [t for t in tasks if t.completed]
    if status == "overdue":
        return overdue_tasks(tasks, now)
    raise ValueError(f"unknown task filter: {status}")


def week_days(now: datetime) -> List[date]:
    # weeks start on Sunday
    today = as_utc(now).date()
    start = today - timedelta(days=(today.weekday() + 1) % 7)
    return [start + timedelta(days=i) for i in range(7)]


def tasks_due_on(tasks: Iterable[Task], day: date) -> List[Task]:
    out = []
    for task in tasks:
        due = parse_when(task.due_date)
        if due is not None and due.date() == day:
            out.append(task)
    return out


# ---------- Finances ----------

def _signed(transaction: Transaction) -> float:
    if transaction.type == INCOME:
        return transaction.amount
    if transaction.type == EXPENSE:
        return -transaction.amount
    return 0.0


def monthly_profit(transactions: Iterable[Transaction], now: datetime) -> float:
    """Income minus expenses for the calendar month (and year) of ``now``."""
    ref = as_utc(now)
    total = 0.0
    for t in transactions:
        when = parse_when(t.date)
        if when is not None and (when.year, when.month) == (ref.year, ref.month):
            total += _signed(t)
    return total


def filter_by_farm(records: Iterable, farm_id) -> List:
    if is_all(farm_id):
        return list(records)
    return records_for_farm(farm_id, records)


def filter_transactions(transactions: Iterable[Transaction], farm_id="all", kind="all") -> List[Transaction]:
    """Farm/type view of the ledger, newest first; undated entries last."""
    view = filter_by_farm(transactions, farm_id)
    if not is_all(kind):
        view = [t for t in view if t.type == kind]

    def key(t):
        when = parse_when(t.date)
        return (when is None, -when.timestamp() if when else 0.0)
    return sorted(view, key=key)


def monthly_rollup(transactions: Iterable[Transaction], farm_id="all") -> FinancialRollup:
    """Monthly income/expense buckets, oldest month first.

    ``farm_id`` narrows the buckets only. ``total_income``, ``total_expense``
    and ``net`` always cover the whole ledger. Rows without a usable date or
    with an unknown type fit no bucket; they are left out of every sum and
    counted in ``skipped``.
    """
    fid = None if is_all(farm_id) else parse_id(farm_id, "farm_id")
    buckets = {}
    total_income = total_expense = 0.0
    skipped = 0
    for t in transactions:
        when = parse_when(t.date)
        if when is None or t.type not in (INCOME, EXPENSE):
            skipped += 1
            continue
        if t.type == INCOME:
            total_income += t.amount
        else:
            total_expense += t.amount
        if fid is not None and t.farm_id != fid:
            continue

        key = month_key(when)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = MonthlyBucket(month=key, label=month_label(when))
        if t.type == INCOME:
            bucket.income += t.amount
        else:
            bucket.expense += t.amount

    if skipped:
        _LOGGER.warning("Monthly rollup skipped %s transaction(s) without a usable date or type", skipped)
    return FinancialRollup(
        buckets=[buckets[k] for k in sorted(buckets)],
        total_income=total_income,
        total_expense=total_expense,
        net=total_income - total_expense,
        skipped=skipped,
    )


def financial_summary(transactions: Sequence[Transaction]) -> FinancialSummary:
    income = sum(t.amount for t in transactions if t.type == INCOME)
    expenses = sum(t.amount for t in transactions if t.type == EXPENSE)
    return FinancialSummary(
        total_income=income,
        total_expenses=expenses,
        net_profit=income - expenses,
        transaction_count=len(transactions),
    )


# ---------- Dashboard ----------

def dashboard_stats(
    farms: Sequence[Farm],
    crops: Iterable[Crop],
    tasks: Sequence[Task],
    transactions: Iterable[Transaction],
    now: datetime,
) -> DashboardStats:
    return DashboardStats(
        total_farms=len(farms),
        active_crops=sum(1 for c in crops if c.status != HARVESTED),
        pending_tasks=sum(1 for t in tasks if not t.completed),
        overdue_tasks=len(overdue_tasks(tasks, now)),
        monthly_profit=monthly_profit(transactions, now),
    )

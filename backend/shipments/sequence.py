"""
Outbound order id allocation.

Order ids look like ``OS101726-0007``: ``OS``, the order day as MMDDYY, then a
per-day counter padded to four digits. The counter lives in one
``DailyOrderCounter`` row per day and is advanced under a row lock, so two
allocators for the same day serialize on that row and days never contend.
"""
import logging

from django.db import DEFAULT_DB_ALIAS, transaction
from django.utils import timezone

from .models import DailyOrderCounter

logger = logging.getLogger(__name__)

ORDER_ID_PREFIX = 'OS'


def format_order_id(order_date, counter):
    """Render an order id for ``order_date`` and its 1-based daily counter."""
    return f"{ORDER_ID_PREFIX}{order_date.strftime('%m%d%y')}-{counter:04d}"


def allocate_order_id(current_date=None, using=None):
    """
    Return the next order id for ``current_date`` (default: today, local time).

    Runs in the caller's transaction when there is one, so a rolled-back order
    gives its number back.
    """
    using = using or DEFAULT_DB_ALIAS
    if current_date is None:
        current_date = timezone.localdate()

    with transaction.atomic(using=using):
        counters = DailyOrderCounter.objects.using(using).select_for_update()
        row = counters.filter(date=current_date).first()
        if row is None:
            # First order of the day; a concurrent allocator may insert the same row
            DailyOrderCounter.objects.using(using).bulk_create(
                [DailyOrderCounter(date=current_date, counter=0)], ignore_conflicts=True
            )
            row = counters.get(date=current_date)

        row.counter += 1
        row.save(using=using, update_fields=['counter', 'updated_at'])

    order_id = format_order_id(current_date, row.counter)
    logger.debug(f"Allocated order id {order_id}")
    return order_id

"""Financial analytics aggregation over in-memory collections."""
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from .models import (
    FinancialAnalytics, Invoice, InvoiceStatus, PaymentRecord, ZERO,
)


def build_financial_analytics(
    invoices: List[Invoice],
    payments: List[PaymentRecord],
    now: Optional[datetime] = None
) -> FinancialAnalytics:
    """
    Summarise invoices and payments.

    Every metric is a full rescan of the inputs; nothing is cached or
    maintained incrementally. Money stays in ``Decimal`` throughout.

    Args:
        invoices: All invoices
        payments: All payment records
        now: Reference time for overdue checks

    Returns:
        FinancialAnalytics
    """
    now = now or datetime.now()

    paid = [inv for inv in invoices if inv.status == InvoiceStatus.PAID]
    open_invoices = [
        inv for inv in invoices
        if inv.status not in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED)
    ]
    overdue = [inv for inv in invoices if inv.is_overdue(now)]

    total_revenue = sum((inv.total_amount for inv in paid), ZERO)
    outstanding = sum((inv.remaining_amount for inv in open_invoices), ZERO)
    overdue_amount = sum((inv.remaining_amount for inv in overdue), ZERO)

    if invoices:
        average_amount = sum((inv.total_amount for inv in invoices), ZERO) / Decimal(len(invoices))
    else:
        average_amount = ZERO

    settled = [inv for inv in paid if inv.payment_history]
    total_days = sum(
        (max(p.payment_date for p in inv.payment_history) - inv.issue_date).days
        for inv in settled
    )
    average_days = total_days / len(settled) if settled else 0.0

    monthly_revenue = defaultdict(lambda: ZERO)
    revenue_by_client = defaultdict(lambda: ZERO)
    for inv in paid:
        monthly_revenue[inv.issue_date.strftime("%Y-%m")] += inv.total_amount
        revenue_by_client[inv.client_name] += inv.total_amount

    method_breakdown = defaultdict(int)
    for payment in payments:
        if payment.is_completed():
            method_breakdown[payment.payment_method.display_name] += 1

    status_counts = {status.value: 0 for status in InvoiceStatus}
    for inv in invoices:
        status_counts[inv.status.value] += 1

    return FinancialAnalytics(
        total_revenue=total_revenue,
        outstanding_amount=outstanding,
        overdue_amount=overdue_amount,
        total_invoices=len(invoices),
        paid_invoices=len(paid),
        overdue_invoices=len(overdue),
        average_invoice_amount=average_amount,
        average_days_to_payment=average_days,
        monthly_revenue=dict(sorted(monthly_revenue.items())),
        revenue_by_client=dict(revenue_by_client),
        payment_method_breakdown=dict(method_breakdown),
        status_counts=status_counts,
        generated_at=now,
    )

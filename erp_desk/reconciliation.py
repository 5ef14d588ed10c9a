"""
Invoice/payment reconciliation.

Pure functions that derive an invoice's settlement status from the
payments referencing it. Only completed payments count toward the
amount paid; refunds recorded on a payment are not netted.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from .models import Invoice, InvoiceStatus, PaymentRecord, ZERO


@dataclass
class ReconciliationOutcome:
    """Result of reconciling one invoice against its payments."""
    invoice_id: str
    old_status: InvoiceStatus
    new_status: InvoiceStatus
    total_paid: Decimal
    remaining_amount: Decimal
    completed_payments: List[PaymentRecord] = field(default_factory=list)
    history_changed: bool = False

    @property
    def status_changed(self) -> bool:
        return self.old_status != self.new_status

    @property
    def needs_update(self) -> bool:
        return self.status_changed or self.history_changed


def completed_payments(invoice_id: str, payments: Iterable[PaymentRecord]) -> List[PaymentRecord]:
    """Completed payments referencing the invoice, in input order."""
    return [p for p in payments if p.invoice_id == invoice_id and p.is_completed()]


def calculate_total_paid(payments: Iterable[PaymentRecord]) -> Decimal:
    return sum((p.amount for p in payments if p.is_completed()), ZERO)


def derive_invoice_status(invoice: Invoice, total_paid: Decimal, now: Optional[datetime] = None) -> InvoiceStatus:
    """Status implied by the amount paid.

    paid when the total is covered, partially paid when something but not
    everything has been paid, overdue when nothing is paid past the due
    date, otherwise whatever the invoice already says.
    """
    now = now or datetime.now()
    if total_paid >= invoice.total_amount:
        return InvoiceStatus.PAID
    if total_paid > ZERO:
        return InvoiceStatus.PARTIALLY_PAID
    if invoice.is_overdue(now):
        return InvoiceStatus.OVERDUE
    return invoice.status


def _history_ids(payments: Iterable[PaymentRecord]) -> List[tuple]:
    return sorted((p.id, p.amount, p.status.value) for p in payments)


def reconcile_invoice(
    invoice: Invoice,
    payments: Iterable[PaymentRecord],
    now: Optional[datetime] = None
) -> ReconciliationOutcome:
    """Reconcile an invoice against the full payment collection."""
    related = completed_payments(invoice.id, payments)
    total_paid = calculate_total_paid(related)
    new_status = derive_invoice_status(invoice, total_paid, now)
    history_changed = _history_ids(related) != _history_ids(
        p for p in invoice.payment_history if p.is_completed()
    ) or len(invoice.payment_history) != len(related)

    return ReconciliationOutcome(
        invoice_id=invoice.id,
        old_status=invoice.status,
        new_status=new_status,
        total_paid=total_paid,
        remaining_amount=invoice.total_amount - total_paid,
        completed_payments=related,
        history_changed=history_changed,
    )


def apply_outcome(invoice: Invoice, outcome: ReconciliationOutcome, modified_by: str = None) -> Invoice:
    """Invoice copy carrying the derived status and completed payment history."""
    return invoice.with_changes(
        modified_by=modified_by,
        status=outcome.new_status,
        payment_history=list(outcome.completed_payments),
    )

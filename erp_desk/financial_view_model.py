"""Presentation state for the financial screens."""
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Set

from .config import config
from .exceptions import ErpDeskError
from .financial_service import FinancialService
from .logging_config import get_logger
from .models import (
    BankAccount, FinancialAnalytics, Invoice, InvoiceFilter, InvoiceStatus,
    PaymentRecord, PaymentStatus, ZERO,
)
from .observable import Debouncer, Observable

logger = get_logger("financial_view_model")


class FinancialTab(Enum):
    INVOICES = "invoices"
    PAYMENTS = "payments"
    ACCOUNTS = "accounts"
    ANALYTICS = "analytics"

    @property
    def display_name(self) -> str:
        return self.value.title()


class BulkActionType(Enum):
    MARK_AS_SENT = "mark_as_sent"
    MARK_AS_PAID = "mark_as_paid"
    DELETE = "delete"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title().replace(" As ", " as ")

    @property
    def is_destructive(self) -> bool:
        return self is BulkActionType.DELETE


class FinancialViewModel:
    """
    Binds a FinancialService to screen state.

    Search text and the invoice filter re-filter the collections after a
    quiet period; ``debounce_seconds=0`` re-filters immediately. Errors
    from operations are published on ``error`` instead of raised.
    """

    def __init__(self, service: FinancialService, debounce_seconds: Optional[float] = None):
        self.service = service

        self.selected_tab = Observable(FinancialTab.INVOICES, "selected_tab")
        self.search_text = Observable("", "search_text")
        self.invoice_filter = Observable(InvoiceFilter(), "invoice_filter")
        self.selected_invoice: Observable[Optional[Invoice]] = Observable(None, "selected_invoice")
        self.selected_payment: Observable[Optional[PaymentRecord]] = Observable(None, "selected_payment")
        self.selected_bank_account: Observable[Optional[BankAccount]] = Observable(None, "selected_bank_account")
        self.selected_invoice_ids: Observable[Set[str]] = Observable(set(), "selected_invoice_ids")
        self.filtered_invoices: Observable[List[Invoice]] = Observable([], "filtered_invoices")
        self.filtered_payments: Observable[List[PaymentRecord]] = Observable([], "filtered_payments")
        self.analytics: Observable[Optional[FinancialAnalytics]] = Observable(None, "analytics")
        self.is_loading = Observable(False, "is_loading")
        self.error: Observable[Optional[ErpDeskError]] = Observable(None, "error")
        self.last_export: Optional[Path] = None

        if debounce_seconds is None:
            debounce_seconds = config.ui.search_debounce_seconds
        self._debouncer = Debouncer(debounce_seconds, self._refilter)
        self._setup_bindings()
        self._refilter()

    def _setup_bindings(self):
        schedule = lambda new, old: self._debouncer.trigger()
        self._unsubscribers = [
            self.service.invoices.subscribe(schedule),
            self.service.payments.subscribe(schedule),
            self.search_text.subscribe(schedule),
            self.invoice_filter.subscribe(schedule),
            self.service.is_loading.subscribe(lambda new, old: self.is_loading.set(new)),
            self.service.analytics.subscribe(lambda new, old: self.analytics.set(new)),
            self.service.error.subscribe(self._on_service_error),
        ]

    def _on_service_error(self, new, old):
        if new is not None:
            self.error.value = new

    def close(self):
        self._debouncer.cancel()
        for unsubscribe in self._unsubscribers:
            unsubscribe()

    def _refilter(self):
        search = self.search_text.value
        invoices = self.service.search_invoices(search)
        invoice_filter = self.invoice_filter.value
        if not invoice_filter.is_empty():
            invoices = self.service.filter_invoices(invoice_filter, invoices)
        self.filtered_invoices.value = invoices
        self.filtered_payments.value = self.service.search_payments(search)

    def flush(self):
        """Apply a pending re-filter now."""
        self._debouncer.flush()

    # ============== Loading ==============

    def load_data(self):
        self.service.load_all()
        self.load_analytics()

    def refresh_data(self):
        self.load_data()

    def load_analytics(self):
        try:
            self.service.generate_financial_analytics()
        except ErpDeskError as e:
            self.error.value = e

    def _run(self, operation, *args):
        try:
            return operation(*args)
        except ErpDeskError as e:
            self.error.value = e
            return None

    # ============== Invoices ==============

    def create_invoice(self, invoice: Invoice) -> Optional[Invoice]:
        return self._run(self.service.create_invoice, invoice)

    def update_invoice(self, invoice: Invoice) -> Optional[Invoice]:
        return self._run(self.service.update_invoice, invoice)

    def delete_invoice(self, invoice: Invoice):
        self._run(self.service.delete_invoice, invoice.id)
        if self.selected_invoice.value is not None and self.selected_invoice.value.id == invoice.id:
            self.selected_invoice.value = None

    def duplicate_invoice(self, invoice: Invoice) -> Optional[Invoice]:
        return self._run(self.service.duplicate_invoice, invoice)

    def send_invoice(self, invoice: Invoice) -> Optional[Invoice]:
        return self._run(self.service.send_invoice, invoice)

    def select_invoice(self, invoice: Optional[Invoice]):
        self.selected_invoice.value = invoice

    # ============== Payments ==============

    def create_payment(self, payment: PaymentRecord) -> Optional[PaymentRecord]:
        return self._run(self.service.create_payment, payment)

    def update_payment(self, payment: PaymentRecord) -> Optional[PaymentRecord]:
        return self._run(self.service.update_payment, payment)

    def delete_payment(self, payment: PaymentRecord):
        self._run(self.service.delete_payment, payment.id)

    def select_payment(self, payment: Optional[PaymentRecord]):
        self.selected_payment.value = payment

    # ============== Bank accounts ==============

    def create_bank_account(self, account: BankAccount) -> Optional[BankAccount]:
        return self._run(self.service.create_bank_account, account)

    def update_bank_account(self, account: BankAccount) -> Optional[BankAccount]:
        return self._run(self.service.update_bank_account, account)

    def delete_bank_account(self, account: BankAccount):
        self._run(self.service.delete_bank_account, account.id)

    def select_bank_account(self, account: Optional[BankAccount]):
        self.selected_bank_account.value = account

    # ============== Selection & bulk actions ==============

    def toggle_invoice_selection(self, invoice_id: str):
        selected = set(self.selected_invoice_ids.value)
        if invoice_id in selected:
            selected.remove(invoice_id)
        else:
            selected.add(invoice_id)
        self.selected_invoice_ids.value = selected

    def select_all_invoices(self):
        self.selected_invoice_ids.value = {i.id for i in self.filtered_invoices.value}

    def deselect_all_invoices(self):
        self.selected_invoice_ids.value = set()

    def perform_bulk_action(self, action: BulkActionType):
        """Apply an action to the selected invoices and clear the selection on success."""
        ids = sorted(self.selected_invoice_ids.value)
        if not ids:
            return
        try:
            if action is BulkActionType.MARK_AS_SENT:
                self.service.bulk_update_invoice_status(ids, InvoiceStatus.SENT)
            elif action is BulkActionType.MARK_AS_PAID:
                self.service.bulk_update_invoice_status(ids, InvoiceStatus.PAID)
            elif action is BulkActionType.DELETE:
                self.service.bulk_delete_invoices(ids)
        except ErpDeskError as e:
            self.error.value = e
            return
        self.selected_invoice_ids.value = set()

    # ============== Filters & export ==============

    def update_invoice_filter(self, invoice_filter: InvoiceFilter):
        self.invoice_filter.value = invoice_filter

    def clear_invoice_filter(self):
        self.invoice_filter.value = InvoiceFilter()

    def export_invoices(self) -> Optional[Path]:
        path = self._run(self.service.export_invoices_csv, None, self.filtered_invoices.value)
        if path is not None:
            self.last_export = path
            logger.info(f"Invoices exported to: {path}")
        return path

    def export_payments(self) -> Optional[Path]:
        path = self._run(self.service.export_payments_csv, None, self.filtered_payments.value)
        if path is not None:
            self.last_export = path
            logger.info(f"Payments exported to: {path}")
        return path

    def generate_invoice_number(self) -> str:
        return self.service.generate_invoice_number()

    def generate_payment_number(self) -> str:
        return self.service.generate_payment_number()

    def clear_error(self):
        self.error.value = None

    # ============== Computed ==============

    @property
    def total_revenue(self):
        return self.analytics.value.total_revenue if self.analytics.value else ZERO

    @property
    def outstanding_amount(self):
        return self.analytics.value.outstanding_amount if self.analytics.value else ZERO

    @property
    def overdue_amount(self):
        return self.analytics.value.overdue_amount if self.analytics.value else ZERO

    @property
    def invoice_status_counts(self) -> Dict[InvoiceStatus, int]:
        counts: Dict[InvoiceStatus, int] = {}
        for invoice in self.service.invoices.value:
            counts[invoice.status] = counts.get(invoice.status, 0) + 1
        return counts

    @property
    def payment_status_counts(self) -> Dict[PaymentStatus, int]:
        counts: Dict[PaymentStatus, int] = {}
        for payment in self.service.payments.value:
            counts[payment.status] = counts.get(payment.status, 0) + 1
        return counts

    @property
    def recent_invoices(self) -> List[Invoice]:
        return self.service.invoices.value[:config.financial.recent_items]

    @property
    def recent_payments(self) -> List[PaymentRecord]:
        return self.service.payments.value[:config.financial.recent_items]

    def overdue_invoices(self, now: Optional[datetime] = None) -> List[Invoice]:
        now = now or self.service.clock()
        return [i for i in self.service.invoices.value if i.is_overdue(now)]

    def upcoming_invoices(self, now: Optional[datetime] = None) -> List[Invoice]:
        """Sent invoices falling due within the upcoming window."""
        now = now or self.service.clock()
        horizon = now + timedelta(days=config.financial.upcoming_days)
        return [
            i for i in self.service.invoices.value
            if i.status == InvoiceStatus.SENT and i.due_date <= horizon and not i.is_overdue(now)
        ]

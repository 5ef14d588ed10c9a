"""
Financial service.

Owns the invoice, payment and bank account collections:
1. Fetch/persist records through the document store
2. Reconcile invoices after every payment mutation
3. Search, filter and bulk operations over the loaded collections
4. Analytics and CSV export
"""
import copy
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Callable, List, Optional, Dict

from .analytics import build_financial_analytics
from .config import config
from .exceptions import (
    DuplicateIdentifierError, EntityNotFoundError, ErpDeskError, ExportFailedError,
    InvalidAmountError, InvalidDataError, InvoiceNotFoundError, PaymentNotFoundError,
)
from .exports import export_filename, invoices_to_csv, payments_to_csv, write_csv
from .logging_config import get_logger, log_error, log_export, log_reconciliation
from .models import (
    BankAccount, FinancialAnalytics, Invoice, InvoiceFilter, InvoiceStatus,
    PaymentRecord, ZERO, new_id,
)
from .observable import Observable
from .reconciliation import ReconciliationOutcome, apply_outcome, reconcile_invoice
from .record_mapper import (
    BANK_ACCOUNT, INVOICE, PAYMENT,
    bank_account_from_record, bank_account_to_record,
    invoice_from_record, invoice_to_record,
    payment_from_record, payment_to_record,
)
from .store_client import DocumentStoreClient, create_store_client

logger = get_logger("financial")


class FinancialService:
    """
    Invoice, payment and bank account operations against the document store.

    Usage:
        service = FinancialService(InMemoryDocumentStore())
        service.load_all()
        invoice = service.create_invoice(invoice)
        service.create_payment(PaymentRecord(invoice_id=invoice.id, amount=Decimal("400")))

    Every remote failure is logged, published on ``error`` and re-raised.
    """

    def __init__(
        self,
        store: Optional[DocumentStoreClient] = None,
        clock: Callable[[], datetime] = None,
        user: str = "system",
        exports_dir: Optional[Path] = None
    ):
        self.store = store or create_store_client()
        self.clock = clock or datetime.now
        self.user = user
        self.exports_dir = Path(exports_dir) if exports_dir else config.exports_dir

        self.invoices: Observable[List[Invoice]] = Observable([], "invoices")
        self.payments: Observable[List[PaymentRecord]] = Observable([], "payments")
        self.bank_accounts: Observable[List[BankAccount]] = Observable([], "bank_accounts")
        self.is_loading: Observable[bool] = Observable(False, "is_loading")
        self.error: Observable[Optional[ErpDeskError]] = Observable(None, "error")
        self.analytics: Observable[Optional[FinancialAnalytics]] = Observable(None, "analytics")

    def _fail(self, error: ErpDeskError, context: str):
        log_error(logger, error, context=context)
        self.error.value = error

    def _decode_all(self, records, decoder) -> list:
        items = []
        for record in records:
            try:
                items.append(decoder(record))
            except InvalidDataError as e:
                logger.warning(
                    f"Skipping undecodable {record.record_type} {record.record_name}: {e}",
                    extra={"extra_data": {"record_name": record.record_name, **e.details}}
                )
        return items

    # ============== Invoices ==============

    def fetch_invoices(self) -> List[Invoice]:
        """Load every invoice, newest issue date first."""
        try:
            records = self.store.query(INVOICE, sort_by="issue_date", ascending=False)
        except ErpDeskError as e:
            self._fail(e, "fetch_invoices")
            raise

        invoices = self._decode_all(records, invoice_from_record)
        invoices.sort(key=lambda i: i.issue_date, reverse=True)
        self.invoices.value = invoices
        logger.info(f"Loaded {len(invoices)} invoices")
        return invoices

    def _find_invoice(self, invoice_id: str) -> Optional[Invoice]:
        for invoice in self.invoices.value:
            if invoice.id == invoice_id:
                return invoice
        return None

    def _replace_invoice(self, invoice: Invoice):
        invoices = [i for i in self.invoices.value if i.id != invoice.id]
        invoices.append(invoice)
        invoices.sort(key=lambda i: i.issue_date, reverse=True)
        self.invoices.value = invoices

    def get_invoice(self, invoice_id: str) -> Invoice:
        """Invoice from the loaded collection, falling back to the store."""
        invoice = self._find_invoice(invoice_id)
        if invoice is not None:
            return invoice
        try:
            return invoice_from_record(self.store.fetch(INVOICE, invoice_id))
        except EntityNotFoundError as e:
            raise InvoiceNotFoundError(invoice_id) from e

    def find_invoice_by_number(self, invoice_number: str) -> Invoice:
        for invoice in self.invoices.value:
            if invoice.invoice_number == invoice_number:
                return invoice
        raise InvoiceNotFoundError(invoice_number)

    def create_invoice(self, invoice: Invoice) -> Invoice:
        """Persist a new invoice. Numbers must be unique."""
        if not invoice.invoice_number:
            invoice.invoice_number = self.generate_invoice_number()
        if not invoice.created_by:
            invoice.created_by = self.user

        try:
            if any(
                i.invoice_number == invoice.invoice_number and i.id != invoice.id
                for i in self.invoices.value
            ):
                raise DuplicateIdentifierError(invoice.invoice_number)
            saved = invoice_from_record(self.store.save(invoice_to_record(invoice)))
        except ErpDeskError as e:
            self._fail(e, "create_invoice")
            raise

        self._replace_invoice(saved)
        logger.info(f"Created invoice {saved.invoice_number} for {saved.client_name}")
        return saved

    def update_invoice(self, invoice: Invoice) -> Invoice:
        invoice.last_modified = self.clock()
        invoice.last_modified_by = self.user
        try:
            saved = invoice_from_record(self.store.save(invoice_to_record(invoice)))
        except ErpDeskError as e:
            self._fail(e, "update_invoice")
            raise

        self._replace_invoice(saved)
        return saved

    def delete_invoice(self, invoice_id: str):
        try:
            try:
                self.store.delete(INVOICE, invoice_id)
            except EntityNotFoundError as e:
                raise InvoiceNotFoundError(invoice_id) from e
        except ErpDeskError as e:
            self._fail(e, "delete_invoice")
            raise

        self.invoices.value = [i for i in self.invoices.value if i.id != invoice_id]
        logger.info(f"Deleted invoice {invoice_id}")

    def search_invoices(self, query: str, invoices: Optional[List[Invoice]] = None) -> List[Invoice]:
        """Case-insensitive match on number, client, status and notes."""
        invoices = self.invoices.value if invoices is None else invoices
        query = (query or "").strip().lower()
        if not query:
            return list(invoices)
        return [
            i for i in invoices
            if query in i.invoice_number.lower()
            or query in i.client_name.lower()
            or query in i.status.display_name.lower()
            or query in (i.notes or "").lower()
        ]

    def filter_invoices(self, invoice_filter: InvoiceFilter, invoices: Optional[List[Invoice]] = None) -> List[Invoice]:
        invoices = self.invoices.value if invoices is None else invoices
        return [i for i in invoices if invoice_filter.matches(i)]

    def _next_number(self, prefix: str, used: List[str], today: Optional[datetime]) -> str:
        year = (today or self.clock()).year
        stem = f"{prefix}-{year}-"
        used = set(used)
        sequence = sum(1 for n in used if n.startswith(stem)) + 1
        while f"{stem}{sequence:04d}" in used:
            sequence += 1
        return f"{stem}{sequence:04d}"

    def generate_invoice_number(self, today: Optional[datetime] = None) -> str:
        """Next ``INV-YYYY-NNNN`` not already in use."""
        return self._next_number("INV", [i.invoice_number for i in self.invoices.value], today)

    def duplicate_invoice(self, invoice: Invoice) -> Invoice:
        """Draft copy with a fresh number, due in the default term."""
        now = self.clock()
        line_items = copy.deepcopy(invoice.line_items)
        for item in line_items:
            item.id = new_id()

        copy_ = copy.deepcopy(invoice)
        copy_.id = new_id()
        copy_.invoice_number = self.generate_invoice_number(now)
        copy_.issue_date = now
        copy_.due_date = now + timedelta(days=config.financial.default_due_days)
        copy_.status = InvoiceStatus.DRAFT
        copy_.line_items = line_items
        copy_.payment_history = []
        copy_.created_by = self.user
        copy_.created_at = now
        copy_.last_modified = now
        copy_.last_modified_by = self.user
        return self.create_invoice(copy_)

    def send_invoice(self, invoice: Invoice) -> Invoice:
        # Delivery is out of scope; sending only moves the status
        return self.update_invoice(invoice.with_changes(modified_by=self.user, status=InvoiceStatus.SENT))

    def bulk_update_invoice_status(self, invoice_ids: List[str], status: InvoiceStatus) -> List[Invoice]:
        """Set a status on each loaded invoice. Unknown ids are skipped."""
        updated = []
        for invoice_id in invoice_ids:
            invoice = self._find_invoice(invoice_id)
            if invoice is None:
                logger.warning(f"Bulk status update skipped unknown invoice {invoice_id}")
                continue
            updated.append(self.update_invoice(invoice.with_changes(modified_by=self.user, status=status)))
        return updated

    def bulk_delete_invoices(self, invoice_ids: List[str]) -> int:
        deleted = 0
        for invoice_id in invoice_ids:
            if self._find_invoice(invoice_id) is None:
                logger.warning(f"Bulk delete skipped unknown invoice {invoice_id}")
                continue
            self.delete_invoice(invoice_id)
            deleted += 1
        return deleted

    def mark_overdue_invoices(self, now: Optional[datetime] = None) -> List[Invoice]:
        """Move sent or viewed invoices with nothing paid past their due date to overdue."""
        now = now or self.clock()
        stale = [
            i for i in self.invoices.value
            if i.status in (InvoiceStatus.SENT, InvoiceStatus.VIEWED)
            and i.total_paid == ZERO
            and i.is_overdue(now)
        ]
        return self.bulk_update_invoice_status([i.id for i in stale], InvoiceStatus.OVERDUE)

    # ============== Payments ==============

    def fetch_payments(self) -> List[PaymentRecord]:
        """Load every payment, newest payment date first."""
        try:
            records = self.store.query(PAYMENT, sort_by="payment_date", ascending=False)
        except ErpDeskError as e:
            self._fail(e, "fetch_payments")
            raise

        payments = self._decode_all(records, payment_from_record)
        payments.sort(key=lambda p: p.payment_date, reverse=True)
        self.payments.value = payments
        logger.info(f"Loaded {len(payments)} payments")
        return payments

    def _find_payment(self, payment_id: str) -> Optional[PaymentRecord]:
        for payment in self.payments.value:
            if payment.id == payment_id:
                return payment
        return None

    def _replace_payment(self, payment: PaymentRecord):
        payments = [p for p in self.payments.value if p.id != payment.id]
        payments.append(payment)
        payments.sort(key=lambda p: p.payment_date, reverse=True)
        self.payments.value = payments

    def get_payment(self, payment_id: str) -> PaymentRecord:
        payment = self._find_payment(payment_id)
        if payment is not None:
            return payment
        try:
            return payment_from_record(self.store.fetch(PAYMENT, payment_id))
        except EntityNotFoundError as e:
            raise PaymentNotFoundError(payment_id) from e

    def payments_for_invoice(self, invoice_id: str) -> List[PaymentRecord]:
        return [p for p in self.payments.value if p.invoice_id == invoice_id]

    def generate_payment_number(self, today: Optional[datetime] = None) -> str:
        """Next ``PAY-YYYY-NNNN`` not already in use."""
        return self._next_number("PAY", [p.payment_number for p in self.payments.value], today)

    def _save_payment(self, payment: PaymentRecord, context: str) -> PaymentRecord:
        try:
            if payment.amount <= ZERO:
                raise InvalidAmountError(payment.amount)
            saved = payment_from_record(self.store.save(payment_to_record(payment)))
        except ErpDeskError as e:
            self._fail(e, context)
            raise
        self._replace_payment(saved)
        return saved

    def create_payment(self, payment: PaymentRecord) -> PaymentRecord:
        """Persist a payment, then reconcile its invoice."""
        if not payment.payment_number:
            payment.payment_number = self.generate_payment_number()
        if payment.processed_by is None:
            payment.processed_by = self.user

        saved = self._save_payment(payment, "create_payment")
        logger.info(f"Recorded payment {saved.payment_number} of {saved.amount} against {saved.invoice_id}")
        self.reconcile(saved.invoice_id)
        return saved

    def update_payment(self, payment: PaymentRecord) -> PaymentRecord:
        """Persist changes and reconcile the old and new invoice."""
        previous = self._find_payment(payment.id)
        saved = self._save_payment(payment, "update_payment")

        self.reconcile(saved.invoice_id)
        if previous is not None and previous.invoice_id != saved.invoice_id:
            self.reconcile(previous.invoice_id)
        return saved

    def delete_payment(self, payment_id: str):
        payment = self._find_payment(payment_id)
        try:
            try:
                self.store.delete(PAYMENT, payment_id)
            except EntityNotFoundError as e:
                raise PaymentNotFoundError(payment_id) from e
        except ErpDeskError as e:
            self._fail(e, "delete_payment")
            raise

        self.payments.value = [p for p in self.payments.value if p.id != payment_id]
        logger.info(f"Deleted payment {payment_id}")
        if payment is not None:
            self.reconcile(payment.invoice_id)

    def search_payments(self, query: str, payments: Optional[List[PaymentRecord]] = None) -> List[PaymentRecord]:
        payments = self.payments.value if payments is None else payments
        query = (query or "").strip().lower()
        if not query:
            return list(payments)
        return [
            p for p in payments
            if query in p.payment_number.lower()
            or query in (p.transaction_id or "").lower()
            or query in p.payment_method.display_name.lower()
            or query in p.status.display_name.lower()
            or query in (p.notes or "").lower()
        ]

    # ============== Reconciliation ==============

    def reconcile(self, invoice_id: str) -> Optional[ReconciliationOutcome]:
        """
        Bring an invoice's status and payment history in line with its payments.

        A failed invoice write is logged and published on ``error`` but not
        raised; the payment change that triggered it stands.

        Returns:
            The outcome, or None when the invoice is not loaded
        """
        invoice = self._find_invoice(invoice_id)
        if invoice is None:
            logger.warning(f"Cannot reconcile unknown invoice {invoice_id}")
            return None

        outcome = reconcile_invoice(invoice, self.payments.value, self.clock())
        if not outcome.needs_update:
            return outcome

        try:
            self.update_invoice(apply_outcome(invoice, outcome, self.user))
        except ErpDeskError:
            # update_invoice has already logged and published the failure
            return outcome

        if outcome.status_changed:
            log_reconciliation(
                logger, invoice.invoice_number,
                outcome.old_status.value, outcome.new_status.value,
                outcome.total_paid, outcome.remaining_amount
            )
        return outcome

    # ============== Bank accounts ==============

    def fetch_bank_accounts(self) -> List[BankAccount]:
        try:
            records = self.store.query(BANK_ACCOUNT)
        except ErpDeskError as e:
            self._fail(e, "fetch_bank_accounts")
            raise

        accounts = self._decode_all(records, bank_account_from_record)
        accounts.sort(key=lambda a: (not a.is_primary, a.account_name))
        self.bank_accounts.value = accounts
        return accounts

    def create_bank_account(self, account: BankAccount) -> BankAccount:
        return self._save_bank_account(account, "create_bank_account")

    def update_bank_account(self, account: BankAccount) -> BankAccount:
        return self._save_bank_account(account, "update_bank_account")

    def _save_bank_account(self, account: BankAccount, context: str) -> BankAccount:
        try:
            saved = bank_account_from_record(self.store.save(bank_account_to_record(account)))
        except ErpDeskError as e:
            self._fail(e, context)
            raise

        accounts = [a for a in self.bank_accounts.value if a.id != saved.id] + [saved]
        accounts.sort(key=lambda a: (not a.is_primary, a.account_name))
        self.bank_accounts.value = accounts
        return saved

    def delete_bank_account(self, account_id: str):
        try:
            self.store.delete(BANK_ACCOUNT, account_id)
        except ErpDeskError as e:
            self._fail(e, "delete_bank_account")
            raise
        self.bank_accounts.value = [a for a in self.bank_accounts.value if a.id != account_id]

    # ============== Loading ==============

    def load_all(self) -> Dict[str, bool]:
        """
        Fetch invoices, payments and bank accounts concurrently.

        A failing fetch does not stop the others; its error is left on
        ``error``.

        Returns:
            Success flag per collection
        """
        fetches = {
            "invoices": self.fetch_invoices,
            "payments": self.fetch_payments,
            "bank_accounts": self.fetch_bank_accounts,
        }
        results = {}

        self.is_loading.value = True
        try:
            with ThreadPoolExecutor(max_workers=3) as executor:
                futures = {executor.submit(fetch): name for name, fetch in fetches.items()}
                for future in as_completed(futures):
                    name = futures[future]
                    try:
                        future.result()
                        results[name] = True
                    except ErpDeskError:
                        results[name] = False
        finally:
            self.is_loading.value = False

        return results

    # ============== Analytics & export ==============

    def generate_financial_analytics(self, now: Optional[datetime] = None) -> FinancialAnalytics:
        analytics = build_financial_analytics(self.invoices.value, self.payments.value, now or self.clock())
        self.analytics.value = analytics
        return analytics

    def invoices_csv(self, invoices: Optional[List[Invoice]] = None) -> str:
        return invoices_to_csv(self.invoices.value if invoices is None else invoices)

    def payments_csv(self, payments: Optional[List[PaymentRecord]] = None) -> str:
        return payments_to_csv(self.payments.value if payments is None else payments)

    def _write_export(self, content: str, prefix: str, rows: int, path: Optional[Path]) -> Path:
        if path is None:
            path = self.exports_dir / export_filename(prefix, self.clock())
        path = Path(path)
        try:
            write_csv(content, path)
        except OSError as e:
            error = ExportFailedError("csv", str(e))
            self._fail(error, f"export_{prefix}")
            raise error from e

        log_export(logger, prefix, "csv", rows, str(path))
        return path

    def export_invoices_csv(self, path: Optional[Path] = None, invoices: Optional[List[Invoice]] = None) -> Path:
        invoices = self.invoices.value if invoices is None else invoices
        return self._write_export(invoices_to_csv(invoices), "invoices", len(invoices), path)

    def export_payments_csv(self, path: Optional[Path] = None,
                            payments: Optional[List[PaymentRecord]] = None) -> Path:
        payments = self.payments.value if payments is None else payments
        return self._write_export(payments_to_csv(payments), "payments", len(payments), path)

    def outstanding_total(self) -> Decimal:
        return sum(
            (i.remaining_amount for i in self.invoices.value
             if i.status not in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED)),
            ZERO
        )

"""
Versioned mapping between domain entities and document store records.

Each entity has an explicit ``*_to_record`` / ``*_from_record`` pair.
Scalars are stored directly (decimals as strings, datetimes as ISO-8601
strings, enums by value); nested structures are stored as UTF-8 JSON blobs.
Decoding never substitutes defaults for malformed data: it raises
``InvalidDataError`` naming the record type and field.
"""
import json
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from dateutil.parser import isoparse

from .exceptions import InvalidDataError
from .models import (
    Address, BankAccount, BankAccountType, BankingProvider, Currency, DateRange,
    Invoice, InvoiceLineItem, InvoiceStatus, PaymentFees, PaymentMethod,
    PaymentRecord, PaymentStatus, PaymentTerms, PaymentTermsType,
    RecurringFrequency, RecurringSettings, RefundRecord, RefundStatus, TaxDetails, local_naive,
)
from .project_models import (
    BoardViewType, ChecklistItem, ProjectBoard, ProjectTask, TaskPriority, TaskStatus,
)
from .reporting_models import (
    AmountRange, CustomFilter, Dashboard, DashboardWidget, DataSource,
    ExecutionLogEntry, ExecutionStatus, ExportFormat, FilterLogic, FilterOperator, Report,
    ReportCategory, ReportFilters, ReportFormatting, ReportMetadata, ReportSchedule,
    ReportType, ReportVisualization, ScheduleFrequency, SortCriteria, SortDirection,
    VisualizationType, WidgetType,
)


SCHEMA_VERSION = 1
SCHEMA_FIELD = "schema_version"

INVOICE = "Invoice"
PAYMENT = "PaymentRecord"
BANK_ACCOUNT = "BankAccount"
REPORT = "Report"
DASHBOARD = "Dashboard"
PROJECT_TASK = "ProjectTask"
PROJECT_BOARD = "ProjectBoard"


@dataclass
class StoreRecord:
    """A document as held by the remote store."""
    record_type: str
    record_name: str
    fields: Dict[str, Any] = field(default_factory=dict)


# ============== Encoding helpers ==============

def _dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _dec(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def _enum(value: Optional[Enum]):
    return value.value if value is not None else None


def _blob(value) -> bytes:
    return json.dumps(value, sort_keys=True).encode("utf-8")


def _record(record_type: str, record_name: str, values: Dict[str, Any]) -> StoreRecord:
    fields_ = {k: v for k, v in values.items() if v is not None}
    fields_[SCHEMA_FIELD] = SCHEMA_VERSION
    return StoreRecord(record_type=record_type, record_name=record_name, fields=fields_)


# ============== Decoding helpers ==============

class _Reader:
    """Typed accessors over a record's fields or a decoded JSON object."""

    def __init__(self, data: Mapping, record_type: str, path: str = ""):
        if not isinstance(data, Mapping):
            raise InvalidDataError(record_type, path.rstrip(".") or "<root>", "expected an object")
        self.data = data
        self.record_type = record_type
        self.path = path

    def fail(self, name: str, reason: str):
        raise InvalidDataError(self.record_type, f"{self.path}{name}", reason)

    def raw(self, name: str, required: bool = True):
        value = self.data.get(name)
        if value is None and required:
            self.fail(name, "missing required field")
        return value

    def string(self, name: str, required: bool = True) -> Optional[str]:
        value = self.raw(name, required)
        if value is not None and not isinstance(value, str):
            self.fail(name, "expected a string")
        return value

    def decimal(self, name: str, required: bool = True) -> Optional[Decimal]:
        value = self.raw(name, required)
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (str, int)):
            self.fail(name, "expected a decimal string")
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            self.fail(name, f"malformed decimal {value!r}")
        if not result.is_finite():
            self.fail(name, f"non-finite decimal {value!r}")
        return result

    def datetime(self, name: str, required: bool = True) -> Optional[datetime]:
        value = self.string(name, required)
        if value is None:
            return None
        try:
            return local_naive(isoparse(value))
        except ValueError:
            self.fail(name, f"malformed timestamp {value!r}")

    def enum(self, name: str, enum_cls, required: bool = True):
        value = self.raw(name, required)
        if value is None:
            return None
        try:
            return enum_cls(value)
        except ValueError:
            self.fail(name, f"unknown {enum_cls.__name__} value {value!r}")

    def boolean(self, name: str, required: bool = True) -> Optional[bool]:
        value = self.raw(name, required)
        if value is None:
            return None
        # Stores without a boolean type hand back 0/1
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        self.fail(name, "expected a boolean")

    def integer(self, name: str, required: bool = True) -> Optional[int]:
        value = self.raw(name, required)
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            self.fail(name, "expected an integer")
        return value

    def number(self, name: str, required: bool = True) -> Optional[float]:
        value = self.raw(name, required)
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            self.fail(name, "expected a number")
        return float(value)

    def string_list(self, name: str) -> List[str]:
        value = self.raw(name, required=False)
        if value is None:
            return []
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            self.fail(name, "expected a list of strings")
        return list(value)

    def blob(self, name: str, required: bool = False):
        value = self.raw(name, required)
        if value is None:
            return None
        if not isinstance(value, (bytes, bytearray)):
            self.fail(name, "expected an encoded blob")
        try:
            return json.loads(bytes(value).decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            self.fail(name, f"undecodable blob: {e}")

    def child(self, name: str, value) -> "_Reader":
        return _Reader(value, self.record_type, f"{self.path}{name}.")

    def children(self, name: str, value) -> List["_Reader"]:
        if value is None:
            return []
        if not isinstance(value, list):
            self.fail(name, "expected a list")
        return [self.child(f"{name}[{i}]", item) for i, item in enumerate(value)]


def _open(record: StoreRecord, expected_type: str) -> _Reader:
    if record.record_type != expected_type:
        raise InvalidDataError(expected_type, "record_type", f"got {record.record_type!r}")
    reader = _Reader(record.fields, expected_type)
    version = reader.integer(SCHEMA_FIELD)
    if version > SCHEMA_VERSION:
        reader.fail(SCHEMA_FIELD, f"unsupported schema version {version}")
    reader.string("id")
    if reader.data["id"] != record.record_name:
        reader.fail("id", "does not match record name")
    return reader


# ============== Invoice components ==============

def _line_item_to_dict(item: InvoiceLineItem) -> dict:
    return {
        "id": item.id,
        "description": item.description,
        "quantity": _dec(item.quantity),
        "unit_price": _dec(item.unit_price),
        "discount_percentage": _dec(item.discount_percentage),
        "tax_rate": _dec(item.tax_rate),
        "total_amount": _dec(item.total_amount),
        "category": item.category,
        "notes": item.notes,
    }


def _line_item_from(r: _Reader) -> InvoiceLineItem:
    return InvoiceLineItem(
        id=r.string("id"),
        description=r.string("description"),
        quantity=r.decimal("quantity"),
        unit_price=r.decimal("unit_price"),
        discount_percentage=r.decimal("discount_percentage"),
        tax_rate=r.decimal("tax_rate"),
        total_amount=r.decimal("total_amount"),
        category=r.string("category"),
        notes=r.string("notes", required=False),
    )


def _address_to_dict(address: Optional[Address]) -> Optional[dict]:
    if address is None:
        return None
    return {
        "street": address.street,
        "city": address.city,
        "state": address.state,
        "postal_code": address.postal_code,
        "country": address.country,
    }


def _address_from(r: _Reader) -> Address:
    return Address(
        street=r.string("street"),
        city=r.string("city"),
        state=r.string("state"),
        postal_code=r.string("postal_code"),
        country=r.string("country"),
    )


def _terms_to_dict(terms: PaymentTerms) -> dict:
    return {
        "terms": terms.terms.value,
        "due_days": terms.due_days,
        "late_fee_percentage": _dec(terms.late_fee_percentage),
        "late_fee_amount": _dec(terms.late_fee_amount),
        "early_payment_discount_percentage": _dec(terms.early_payment_discount_percentage),
        "early_payment_discount_days": terms.early_payment_discount_days,
    }


def _terms_from(r: _Reader) -> PaymentTerms:
    return PaymentTerms(
        terms=r.enum("terms", PaymentTermsType),
        due_days=r.integer("due_days"),
        late_fee_percentage=r.decimal("late_fee_percentage"),
        late_fee_amount=r.decimal("late_fee_amount", required=False),
        early_payment_discount_percentage=r.decimal("early_payment_discount_percentage", required=False),
        early_payment_discount_days=r.integer("early_payment_discount_days", required=False),
    )


def _tax_to_dict(tax: Optional[TaxDetails]) -> Optional[dict]:
    if tax is None:
        return None
    return {
        "tax_region": tax.tax_region,
        "total_tax_amount": _dec(tax.total_tax_amount),
        "is_tax_inclusive": tax.is_tax_inclusive,
        "tax_number": tax.tax_number,
    }


def _tax_from(r: _Reader) -> TaxDetails:
    return TaxDetails(
        tax_region=r.string("tax_region"),
        total_tax_amount=r.decimal("total_tax_amount"),
        is_tax_inclusive=r.boolean("is_tax_inclusive"),
        tax_number=r.string("tax_number", required=False),
    )


def _recurring_to_dict(settings: Optional[RecurringSettings]) -> Optional[dict]:
    if settings is None:
        return None
    return {
        "frequency": settings.frequency.value,
        "interval_count": settings.interval_count,
        "next_invoice_date": _dt(settings.next_invoice_date),
        "end_date": _dt(settings.end_date),
        "auto_send": settings.auto_send,
    }


def _recurring_from(r: _Reader) -> RecurringSettings:
    return RecurringSettings(
        frequency=r.enum("frequency", RecurringFrequency),
        interval_count=r.integer("interval_count"),
        next_invoice_date=r.datetime("next_invoice_date", required=False),
        end_date=r.datetime("end_date", required=False),
        auto_send=r.boolean("auto_send"),
    )


# ============== Payments ==============

def _fees_to_dict(fees: Optional[PaymentFees]) -> Optional[dict]:
    if fees is None:
        return None
    return {
        "processing_fee": _dec(fees.processing_fee),
        "transaction_fee": _dec(fees.transaction_fee),
        "gateway_fee": _dec(fees.gateway_fee),
        "other_fees": _dec(fees.other_fees),
    }


def _fees_from(r: _Reader) -> PaymentFees:
    return PaymentFees(
        processing_fee=r.decimal("processing_fee"),
        transaction_fee=r.decimal("transaction_fee"),
        gateway_fee=r.decimal("gateway_fee"),
        other_fees=r.decimal("other_fees"),
    )


def _refund_to_dict(refund: RefundRecord) -> dict:
    return {
        "id": refund.id,
        "amount": _dec(refund.amount),
        "reason": refund.reason,
        "status": refund.status.value,
        "refund_date": _dt(refund.refund_date),
        "transaction_id": refund.transaction_id,
        "processed_by": refund.processed_by,
    }


def _refund_from(r: _Reader) -> RefundRecord:
    return RefundRecord(
        id=r.string("id"),
        amount=r.decimal("amount"),
        reason=r.string("reason"),
        status=r.enum("status", RefundStatus),
        refund_date=r.datetime("refund_date"),
        transaction_id=r.string("transaction_id", required=False),
        processed_by=r.string("processed_by", required=False),
    )


def _payment_scalars(payment: PaymentRecord) -> dict:
    return {
        "id": payment.id,
        "invoice_id": payment.invoice_id,
        "payment_number": payment.payment_number,
        "amount": _dec(payment.amount),
        "currency": payment.currency.value,
        "payment_date": _dt(payment.payment_date),
        "payment_method": payment.payment_method.value,
        "status": payment.status.value,
        "transaction_id": payment.transaction_id,
        "notes": payment.notes,
        "processed_by": payment.processed_by,
        "processed_at": _dt(payment.processed_at),
        "created_at": _dt(payment.created_at),
    }


def _payment_from(r: _Reader, fees, refunds) -> PaymentRecord:
    return PaymentRecord(
        id=r.string("id"),
        invoice_id=r.string("invoice_id"),
        payment_number=r.string("payment_number"),
        amount=r.decimal("amount"),
        currency=r.enum("currency", Currency),
        payment_date=r.datetime("payment_date"),
        payment_method=r.enum("payment_method", PaymentMethod),
        status=r.enum("status", PaymentStatus),
        transaction_id=r.string("transaction_id", required=False),
        notes=r.string("notes", required=False),
        fees=_fees_from(r.child("fees", fees)) if fees is not None else None,
        refunds=[_refund_from(c) for c in r.children("refunds", refunds)],
        processed_by=r.string("processed_by", required=False),
        processed_at=r.datetime("processed_at", required=False),
        created_at=r.datetime("created_at"),
    )


def _payment_to_dict(payment: PaymentRecord) -> dict:
    data = _payment_scalars(payment)
    data["fees"] = _fees_to_dict(payment.fees)
    data["refunds"] = [_refund_to_dict(r) for r in payment.refunds]
    return data


def payment_to_record(payment: PaymentRecord) -> StoreRecord:
    values = _payment_scalars(payment)
    if payment.fees is not None:
        values["fees"] = _blob(_fees_to_dict(payment.fees))
    values["refunds"] = _blob([_refund_to_dict(r) for r in payment.refunds])
    return _record(PAYMENT, payment.id, values)


def payment_from_record(record: StoreRecord) -> PaymentRecord:
    r = _open(record, PAYMENT)
    return _payment_from(r, r.blob("fees"), r.blob("refunds"))


# ============== Invoice ==============

def invoice_to_record(invoice: Invoice) -> StoreRecord:
    values = {
        "id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "client_id": invoice.client_id,
        "client_name": invoice.client_name,
        "issue_date": _dt(invoice.issue_date),
        "due_date": _dt(invoice.due_date),
        "status": invoice.status.value,
        "subtotal": _dec(invoice.subtotal),
        "tax_amount": _dec(invoice.tax_amount),
        "discount_amount": _dec(invoice.discount_amount),
        "total_amount": _dec(invoice.total_amount),
        "currency": invoice.currency.value,
        "notes": invoice.notes,
        "created_by": invoice.created_by,
        "created_at": _dt(invoice.created_at),
        "last_modified": _dt(invoice.last_modified),
        "last_modified_by": invoice.last_modified_by,
        "line_items": _blob([_line_item_to_dict(i) for i in invoice.line_items]),
        "payment_terms": _blob(_terms_to_dict(invoice.payment_terms)),
        "payment_history": _blob([_payment_to_dict(p) for p in invoice.payment_history]),
    }
    if invoice.billing_address is not None:
        values["billing_address"] = _blob(_address_to_dict(invoice.billing_address))
    if invoice.shipping_address is not None:
        values["shipping_address"] = _blob(_address_to_dict(invoice.shipping_address))
    if invoice.tax_details is not None:
        values["tax_details"] = _blob(_tax_to_dict(invoice.tax_details))
    if invoice.recurring_settings is not None:
        values["recurring_settings"] = _blob(_recurring_to_dict(invoice.recurring_settings))
    return _record(INVOICE, invoice.id, values)


def invoice_from_record(record: StoreRecord) -> Invoice:
    r = _open(record, INVOICE)

    history = []
    for child in r.children("payment_history", r.blob("payment_history")):
        history.append(_payment_from(child, child.raw("fees", required=False),
                                     child.raw("refunds", required=False)))

    billing = r.blob("billing_address")
    shipping = r.blob("shipping_address")
    tax = r.blob("tax_details")
    recurring = r.blob("recurring_settings")

    return Invoice(
        id=r.string("id"),
        invoice_number=r.string("invoice_number"),
        client_id=r.string("client_id"),
        client_name=r.string("client_name"),
        issue_date=r.datetime("issue_date"),
        due_date=r.datetime("due_date"),
        status=r.enum("status", InvoiceStatus),
        subtotal=r.decimal("subtotal"),
        tax_amount=r.decimal("tax_amount"),
        discount_amount=r.decimal("discount_amount"),
        total_amount=r.decimal("total_amount"),
        currency=r.enum("currency", Currency),
        line_items=[_line_item_from(c) for c in r.children("line_items", r.blob("line_items", required=True))],
        payment_terms=_terms_from(r.child("payment_terms", r.blob("payment_terms", required=True))),
        notes=r.string("notes", required=False),
        billing_address=_address_from(r.child("billing_address", billing)) if billing is not None else None,
        shipping_address=_address_from(r.child("shipping_address", shipping)) if shipping is not None else None,
        tax_details=_tax_from(r.child("tax_details", tax)) if tax is not None else None,
        payment_history=history,
        recurring_settings=_recurring_from(r.child("recurring_settings", recurring)) if recurring is not None else None,
        created_by=r.string("created_by"),
        created_at=r.datetime("created_at"),
        last_modified=r.datetime("last_modified"),
        last_modified_by=r.string("last_modified_by", required=False),
    )


# ============== Bank account ==============

def bank_account_to_record(account: BankAccount) -> StoreRecord:
    return _record(BANK_ACCOUNT, account.id, {
        "id": account.id,
        "account_name": account.account_name,
        "account_number": account.account_number,
        "routing_number": account.routing_number,
        "bank_name": account.bank_name,
        "account_type": account.account_type.value,
        "currency": account.currency.value,
        "is_active": account.is_active,
        "is_primary": account.is_primary,
        "balance": _dec(account.balance),
        "last_sync_date": _dt(account.last_sync_date),
        "banking_provider": _enum(account.banking_provider),
    })


def bank_account_from_record(record: StoreRecord) -> BankAccount:
    r = _open(record, BANK_ACCOUNT)
    return BankAccount(
        id=r.string("id"),
        account_name=r.string("account_name"),
        account_number=r.string("account_number"),
        routing_number=r.string("routing_number"),
        bank_name=r.string("bank_name"),
        account_type=r.enum("account_type", BankAccountType),
        currency=r.enum("currency", Currency),
        is_active=r.boolean("is_active"),
        is_primary=r.boolean("is_primary"),
        balance=r.decimal("balance", required=False),
        last_sync_date=r.datetime("last_sync_date", required=False),
        banking_provider=r.enum("banking_provider", BankingProvider, required=False),
    )


# ============== Report ==============

def _filters_to_dict(filters: ReportFilters) -> dict:
    return {
        "date_range": {
            "start": _dt(filters.date_range.start),
            "end": _dt(filters.date_range.end),
        } if filters.date_range else None,
        "status_filters": list(filters.status_filters),
        "category_filters": list(filters.category_filters),
        "amount_range": {
            "min": _dec(filters.amount_range.min),
            "max": _dec(filters.amount_range.max),
        } if filters.amount_range else None,
        "custom_filters": [
            {"id": f.id, "field": f.field, "operator": f.operator.value, "value": f.value}
            for f in filters.custom_filters
        ],
        "filter_logic": filters.filter_logic.value,
        "group_by": list(filters.group_by),
        "sort_by": [
            {"id": s.id, "field": s.field, "direction": s.direction.value}
            for s in filters.sort_by
        ],
    }


def _filters_from(r: _Reader) -> ReportFilters:
    date_range = r.raw("date_range", required=False)
    amount_range = r.raw("amount_range", required=False)
    dr = r.child("date_range", date_range) if date_range is not None else None
    ar = r.child("amount_range", amount_range) if amount_range is not None else None
    return ReportFilters(
        date_range=DateRange(dr.datetime("start"), dr.datetime("end")) if dr else None,
        status_filters=r.string_list("status_filters"),
        category_filters=r.string_list("category_filters"),
        amount_range=AmountRange(ar.decimal("min", required=False), ar.decimal("max", required=False)) if ar else None,
        custom_filters=[
            CustomFilter(
                id=c.string("id"),
                field=c.string("field"),
                operator=c.enum("operator", FilterOperator),
                value=c.string("value"),
            )
            for c in r.children("custom_filters", r.raw("custom_filters", required=False))
        ],
        filter_logic=r.enum("filter_logic", FilterLogic, required=False) or FilterLogic.AND,
        group_by=r.string_list("group_by"),
        sort_by=[
            SortCriteria(id=c.string("id"), field=c.string("field"),
                         direction=c.enum("direction", SortDirection))
            for c in r.children("sort_by", r.raw("sort_by", required=False))
        ],
    )


def _visualization_to_dict(v: ReportVisualization) -> dict:
    return {"id": v.id, "type": v.type.value, "title": v.title,
            "x_axis": v.x_axis, "y_axis": v.y_axis, "group_by": v.group_by}


def _visualization_from(r: _Reader) -> ReportVisualization:
    return ReportVisualization(
        id=r.string("id"),
        type=r.enum("type", VisualizationType),
        title=r.string("title"),
        x_axis=r.string("x_axis", required=False),
        y_axis=r.string("y_axis", required=False),
        group_by=r.string("group_by", required=False),
    )


def _schedule_to_dict(s: Optional[ReportSchedule]) -> Optional[dict]:
    if s is None:
        return None
    return {
        "frequency": s.frequency.value,
        "start_date": _dt(s.start_date),
        "recipients": list(s.recipients),
        "export_format": s.export_format.value,
        "is_active": s.is_active,
    }


def _schedule_from(r: _Reader) -> ReportSchedule:
    return ReportSchedule(
        frequency=r.enum("frequency", ScheduleFrequency),
        start_date=r.datetime("start_date"),
        recipients=r.string_list("recipients"),
        export_format=r.enum("export_format", ExportFormat),
        is_active=r.boolean("is_active"),
    )


def _metadata_to_dict(m: ReportMetadata) -> dict:
    return {
        "tags": list(m.tags),
        "version": m.version,
        "last_generated": _dt(m.last_generated),
        "generation_time": m.generation_time,
        "data_row_count": m.data_row_count,
        "execution_log": [
            {
                "id": e.id,
                "action": e.action,
                "status": e.status.value,
                "message": e.message,
                "duration": e.duration,
                "timestamp": _dt(e.timestamp),
            }
            for e in m.execution_log
        ],
    }


def _metadata_from(r: _Reader) -> ReportMetadata:
    return ReportMetadata(
        tags=r.string_list("tags"),
        version=r.string("version"),
        last_generated=r.datetime("last_generated", required=False),
        generation_time=r.number("generation_time", required=False),
        data_row_count=r.integer("data_row_count", required=False),
        execution_log=[
            ExecutionLogEntry(
                id=c.string("id"),
                action=c.string("action"),
                status=c.enum("status", ExecutionStatus),
                message=c.string("message", required=False),
                duration=c.number("duration", required=False),
                timestamp=c.datetime("timestamp"),
            )
            for c in r.children("execution_log", r.raw("execution_log", required=False))
        ],
    )


def report_to_record(report: Report) -> StoreRecord:
    values = {
        "id": report.id,
        "report_name": report.report_name,
        "report_description": report.report_description,
        "report_type": report.report_type.value,
        "category": report.category.value,
        "data_source": report.data_source.value,
        "created_by": report.created_by,
        "is_public": report.is_public,
        "is_active": report.is_active,
        "created_at": _dt(report.created_at),
        "updated_at": _dt(report.updated_at),
        "selected_fields": _blob(list(report.selected_fields)),
        "shared_with": _blob(list(report.shared_with)),
        "filters": _blob(_filters_to_dict(report.filters)),
        "visualizations": _blob([_visualization_to_dict(v) for v in report.visualizations]),
        "formatting": _blob({
            "page_orientation": report.formatting.page_orientation,
            "include_header": report.formatting.include_header,
            "include_footer": report.formatting.include_footer,
            "number_format": report.formatting.number_format,
        }),
        "metadata": _blob(_metadata_to_dict(report.metadata)),
    }
    if report.schedule is not None:
        values["schedule"] = _blob(_schedule_to_dict(report.schedule))
    return _record(REPORT, report.id, values)


def _string_list_blob(r: _Reader, name: str) -> List[str]:
    value = r.blob(name)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        r.fail(name, "expected a list of strings")
    return value


def report_from_record(record: StoreRecord) -> Report:
    r = _open(record, REPORT)
    fmt = r.child("formatting", r.blob("formatting", required=True))
    schedule = r.blob("schedule")
    return Report(
        id=r.string("id"),
        report_name=r.string("report_name"),
        report_description=r.string("report_description", required=False),
        report_type=r.enum("report_type", ReportType),
        category=r.enum("category", ReportCategory),
        data_source=r.enum("data_source", DataSource),
        selected_fields=_string_list_blob(r, "selected_fields"),
        filters=_filters_from(r.child("filters", r.blob("filters", required=True))),
        visualizations=[_visualization_from(c) for c in r.children("visualizations", r.blob("visualizations"))],
        formatting=ReportFormatting(
            page_orientation=fmt.string("page_orientation"),
            include_header=fmt.boolean("include_header"),
            include_footer=fmt.boolean("include_footer"),
            number_format=fmt.string("number_format"),
        ),
        schedule=_schedule_from(r.child("schedule", schedule)) if schedule is not None else None,
        metadata=_metadata_from(r.child("metadata", r.blob("metadata", required=True))),
        created_by=r.string("created_by"),
        shared_with=_string_list_blob(r, "shared_with"),
        is_public=r.boolean("is_public"),
        is_active=r.boolean("is_active"),
        created_at=r.datetime("created_at"),
        updated_at=r.datetime("updated_at"),
    )


# ============== Dashboard ==============

def dashboard_to_record(dashboard: Dashboard) -> StoreRecord:
    return _record(DASHBOARD, dashboard.id, {
        "id": dashboard.id,
        "name": dashboard.name,
        "description": dashboard.description,
        "refresh_interval": dashboard.refresh_interval,
        "is_default": dashboard.is_default,
        "created_by": dashboard.created_by,
        "created_at": _dt(dashboard.created_at),
        "updated_at": _dt(dashboard.updated_at),
        "widgets": _blob([
            {
                "id": w.id,
                "title": w.title,
                "widget_type": w.widget_type.value,
                "report_id": w.report_id,
                "row": w.row,
                "column": w.column,
                "width": w.width,
                "height": w.height,
            }
            for w in dashboard.widgets
        ]),
    })


def dashboard_from_record(record: StoreRecord) -> Dashboard:
    r = _open(record, DASHBOARD)
    return Dashboard(
        id=r.string("id"),
        name=r.string("name"),
        description=r.string("description", required=False),
        widgets=[
            DashboardWidget(
                id=c.string("id"),
                title=c.string("title"),
                widget_type=c.enum("widget_type", WidgetType),
                report_id=c.string("report_id", required=False),
                row=c.integer("row"),
                column=c.integer("column"),
                width=c.integer("width"),
                height=c.integer("height"),
            )
            for c in r.children("widgets", r.blob("widgets"))
        ],
        refresh_interval=r.number("refresh_interval", required=False),
        is_default=r.boolean("is_default"),
        created_by=r.string("created_by"),
        created_at=r.datetime("created_at"),
        updated_at=r.datetime("updated_at"),
    )


# ============== Projects ==============

def task_to_record(task: ProjectTask) -> StoreRecord:
    return _record(PROJECT_TASK, task.id, {
        "id": task.id,
        "board_id": task.board_id,
        "title": task.title,
        "description": task.description,
        "status": task.status.value,
        "priority": task.priority.value,
        "due_date": _dt(task.due_date),
        "start_date": _dt(task.start_date),
        "estimated_hours": task.estimated_hours,
        "actual_hours": task.actual_hours,
        "position": task.position,
        "parent_task_id": task.parent_task_id,
        "created_by": task.created_by,
        "created_at": _dt(task.created_at),
        "updated_at": _dt(task.updated_at),
        "assigned_to": _blob(list(task.assigned_to)),
        "tags": _blob(list(task.tags)),
        "custom_fields": _blob(dict(task.custom_fields)),
        "checklist": _blob([
            {"id": c.id, "title": c.title, "is_completed": c.is_completed}
            for c in task.checklist
        ]),
    })


def task_from_record(record: StoreRecord) -> ProjectTask:
    r = _open(record, PROJECT_TASK)
    custom = r.blob("custom_fields")
    if custom is not None and (
        not isinstance(custom, dict) or not all(isinstance(v, str) for v in custom.values())
    ):
        r.fail("custom_fields", "expected a mapping of strings")
    return ProjectTask(
        id=r.string("id"),
        board_id=r.string("board_id"),
        title=r.string("title"),
        description=r.string("description", required=False),
        status=r.enum("status", TaskStatus),
        priority=r.enum("priority", TaskPriority),
        assigned_to=_string_list_blob(r, "assigned_to"),
        due_date=r.datetime("due_date", required=False),
        start_date=r.datetime("start_date", required=False),
        estimated_hours=r.number("estimated_hours", required=False),
        actual_hours=r.number("actual_hours", required=False),
        tags=_string_list_blob(r, "tags"),
        checklist=[
            ChecklistItem(id=c.string("id"), title=c.string("title"), is_completed=c.boolean("is_completed"))
            for c in r.children("checklist", r.blob("checklist"))
        ],
        custom_fields=dict(custom or {}),
        position=r.integer("position"),
        parent_task_id=r.string("parent_task_id", required=False),
        created_by=r.string("created_by"),
        created_at=r.datetime("created_at"),
        updated_at=r.datetime("updated_at"),
    )


def board_to_record(board: ProjectBoard) -> StoreRecord:
    return _record(PROJECT_BOARD, board.id, {
        "id": board.id,
        "name": board.name,
        "owner_id": board.owner_id,
        "description": board.description,
        "view_type": board.view_type.value,
        "is_archived": board.is_archived,
        "created_at": _dt(board.created_at),
        "updated_at": _dt(board.updated_at),
        "members": _blob(list(board.members)),
    })


def board_from_record(record: StoreRecord) -> ProjectBoard:
    r = _open(record, PROJECT_BOARD)
    return ProjectBoard(
        id=r.string("id"),
        name=r.string("name"),
        owner_id=r.string("owner_id"),
        description=r.string("description", required=False),
        view_type=r.enum("view_type", BoardViewType),
        members=_string_list_blob(r, "members"),
        is_archived=r.boolean("is_archived"),
        created_at=r.datetime("created_at"),
        updated_at=r.datetime("updated_at"),
    )

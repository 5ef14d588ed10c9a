"""
FastAPI backend for ERP Desk.

Provides REST API endpoints for:
- Invoices and payments (with reconciliation on every payment change)
- Financial analytics and CSV exports
- Reports: definitions, generation and file exports

Features:
- Rate limiting
- Structured request logging
- Domain errors mapped to HTTP status codes
"""
from fastapi import FastAPI, HTTPException, Query, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from pydantic import BaseModel, Field, field_validator
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
import os
import time

from .config import config
from .exceptions import (
    BuilderValidationError, DuplicateIdentifierError, EntityNotFoundError, ErpDeskError,
    InvalidAmountError, InvalidDataError, ReportNotFoundError, UnauthorizedError,
)
from .financial_service import FinancialService
from .logging_config import setup_logging, get_logger, log_api_request, log_error
from .models import (
    Currency, Invoice, InvoiceFilter, InvoiceLineItem, InvoiceStatus, PaymentMethod,
    PaymentRecord, PaymentStatus, local_naive,
)
from .project_service import ProjectService
from .report_builder import ReportBuilder
from .reporting_models import DataSource, ExportFormat, Report, ReportCategory, ReportType
from .reporting_service import ReportingService
from .sample_data import seed_financial_data, seed_project_data, seed_reports
from .store_client import DocumentStoreClient, InMemoryDocumentStore, create_store_client

# Setup logging
setup_logging(level=config.log_level, log_file=config.log_file, json_format=config.log_json)
logger = get_logger("api")

app = FastAPI(
    title="ERP Desk API",
    description="Invoices, payments, reconciliation and reporting over the remote document store",
    version="1.0.0"
)

# CORS for frontend
ALLOWED_ORIGINS = os.environ.get(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173,http://127.0.0.1:5173"
).split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============== Rate Limiting ==============

class RateLimiter:
    """Sliding one-minute request window per client."""

    def __init__(self, requests_per_minute: int = 60, clock: Callable[[], float] = time.time):
        self.requests_per_minute = requests_per_minute
        self.clock = clock
        self.requests: Dict[str, List[float]] = {}

    def is_allowed(self, client_id: str) -> bool:
        now = self.clock()
        minute_ago = now - 60

        for client in [c for c, times in self.requests.items() if not times or times[-1] <= minute_ago]:
            del self.requests[client]

        recent = [t for t in self.requests.get(client_id, []) if t > minute_ago]
        if len(recent) >= self.requests_per_minute:
            self.requests[client_id] = recent
            return False

        recent.append(now)
        self.requests[client_id] = recent
        return True


rate_limiter = RateLimiter(requests_per_minute=int(os.environ.get("ERP_API_RATE_LIMIT", "300")))


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    """Rate limiting and request timing."""
    client_ip = request.client.host if request.client else "unknown"

    if not rate_limiter.is_allowed(client_ip):
        logger.warning(f"Rate limit exceeded for {client_ip}")
        return JSONResponse(
            status_code=429,
            content={"detail": "Too many requests. Please try again later."}
        )

    start_time = time.time()
    response = await call_next(request)
    duration_ms = (time.time() - start_time) * 1000

    log_api_request(
        logger,
        request.method,
        str(request.url.path),
        response.status_code,
        duration_ms,
        client_ip
    )

    return response


# ============== Error mapping ==============

def status_for_error(error: ErpDeskError) -> int:
    if isinstance(error, (EntityNotFoundError, ReportNotFoundError)):
        return 404
    if isinstance(error, BuilderValidationError):
        return 422
    if isinstance(error, (InvalidAmountError, DuplicateIdentifierError, InvalidDataError)):
        return 400
    if isinstance(error, UnauthorizedError):
        return 401
    return 500


@app.exception_handler(ErpDeskError)
async def erp_error_handler(request: Request, error: ErpDeskError):
    status_code = status_for_error(error)
    if status_code >= 500:
        log_error(logger, error, context=f"{request.method} {request.url.path}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": error.message, "code": error.code, "details": error.details}
    )


# ============== Services ==============

@dataclass
class Services:
    store: DocumentStoreClient
    financial: FinancialService
    projects: ProjectService
    reporting: ReportingService


_services: Optional[Services] = None


def configure_services(store: Optional[DocumentStoreClient] = None, seed: Optional[bool] = None) -> Services:
    """
    (Re)build the service graph.

    Args:
        store: Store to use; defaults to the configured one
        seed: Load sample data; defaults to True for the in-memory store
    """
    global _services
    store = store or create_store_client()
    financial = FinancialService(store)
    projects = ProjectService(store)
    reporting = ReportingService(store, financial=financial, projects=projects)

    if seed is None:
        seed = isinstance(store, InMemoryDocumentStore)
    if seed:
        seed_financial_data(financial)
        seed_project_data(projects)
        seed_reports(reporting)
    else:
        financial.load_all()
        projects.fetch_boards()
        projects.fetch_tasks()
        reporting.load_all()

    _services = Services(store=store, financial=financial, projects=projects, reporting=reporting)
    return _services


def get_services() -> Services:
    if _services is None:
        return configure_services()
    return _services


def get_financial() -> FinancialService:
    return get_services().financial


def get_reporting() -> ReportingService:
    return get_services().reporting


def _parse_enum(enum_cls, value: str, record_type: str, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidDataError(record_type, field, f"unknown value {value!r}")


# ============== Pydantic Models ==============

class LineItemIn(BaseModel):
    description: str
    quantity: Decimal = Decimal("1")
    unit_price: Decimal
    discount_percentage: Decimal = Decimal("0")
    tax_rate: Decimal = Decimal("0")
    category: str = ""


class InvoiceCreate(BaseModel):
    client_name: str = Field(..., min_length=1)
    client_id: str = ""
    invoice_number: Optional[str] = None
    issue_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    currency: str = "USD"
    line_items: List[LineItemIn] = Field(..., min_length=1)
    discount_amount: Decimal = Decimal("0")
    notes: Optional[str] = None

    @field_validator("issue_date", "due_date")
    @classmethod
    def to_local_time(cls, value):
        return local_naive(value)


class InvoiceUpdate(BaseModel):
    client_name: Optional[str] = None
    due_date: Optional[datetime] = None
    status: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("due_date")
    @classmethod
    def to_local_time(cls, value):
        return local_naive(value)


class PaymentCreate(BaseModel):
    invoice_id: str
    amount: Decimal
    currency: str = "USD"
    payment_method: str = "bank_transfer"
    status: str = "completed"
    payment_date: Optional[datetime] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("payment_date")
    @classmethod
    def to_local_time(cls, value):
        return local_naive(value)


class PaymentUpdate(BaseModel):
    invoice_id: Optional[str] = None
    amount: Optional[Decimal] = None
    status: Optional[str] = None
    notes: Optional[str] = None


class ReportCreate(BaseModel):
    report_name: str
    report_description: Optional[str] = None
    report_type: str = "tabular"
    category: str = "financial"
    data_source: str = "invoices"
    selected_fields: List[str] = []
    status_filters: List[str] = []
    tags: List[str] = []
    is_public: bool = False


class ConfigStatus(BaseModel):
    store_configured: bool
    container: str
    database: str
    default_currency: str
    default_due_days: int
    search_debounce_ms: int


def invoice_out(invoice: Invoice) -> Dict[str, Any]:
    return {
        "id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "client_id": invoice.client_id,
        "client_name": invoice.client_name,
        "issue_date": invoice.issue_date.isoformat(),
        "due_date": invoice.due_date.isoformat(),
        "status": invoice.status.value,
        "currency": invoice.currency.value,
        "subtotal": str(invoice.subtotal),
        "tax_amount": str(invoice.tax_amount),
        "discount_amount": str(invoice.discount_amount),
        "total_amount": str(invoice.total_amount),
        "total_paid": str(invoice.total_paid),
        "remaining_amount": str(invoice.remaining_amount),
        "line_items": [
            {
                "description": item.description,
                "quantity": str(item.quantity),
                "unit_price": str(item.unit_price),
                "total_amount": str(item.total_amount),
            }
            for item in invoice.line_items
        ],
        "payment_count": len(invoice.payment_history),
        "notes": invoice.notes,
    }


def payment_out(payment: PaymentRecord) -> Dict[str, Any]:
    return {
        "id": payment.id,
        "payment_number": payment.payment_number,
        "invoice_id": payment.invoice_id,
        "amount": str(payment.amount),
        "currency": payment.currency.value,
        "payment_date": payment.payment_date.isoformat(),
        "payment_method": payment.payment_method.value,
        "status": payment.status.value,
        "transaction_id": payment.transaction_id,
        "notes": payment.notes,
    }


def report_out(report: Report) -> Dict[str, Any]:
    return {
        "id": report.id,
        "report_name": report.report_name,
        "report_description": report.report_description,
        "report_type": report.report_type.value,
        "category": report.category.value,
        "data_source": report.data_source.value,
        "selected_fields": report.selected_fields,
        "is_public": report.is_public,
        "status": report.status_description,
        "tags": report.metadata.tags,
        "last_generated": report.metadata.last_generated.isoformat() if report.metadata.last_generated else None,
        "data_row_count": report.metadata.data_row_count,
        "created_at": report.created_at.isoformat(),
    }


# ============== API Endpoints ==============

@app.get("/")
def root():
    return {
        "name": "ERP Desk API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs"
    }


@app.get("/api/status", response_model=ConfigStatus)
def get_status():
    """Get current configuration status."""
    return ConfigStatus(
        store_configured=config.store.is_configured(),
        container=config.store.container,
        database=config.store.database,
        default_currency=config.financial.default_currency,
        default_due_days=config.financial.default_due_days,
        search_debounce_ms=config.ui.search_debounce_ms
    )


# ------------ Invoice Endpoints ------------

@app.get("/api/invoices")
def list_invoices(
    status: Optional[str] = Query(None, description="Filter by status"),
    search: str = Query("", description="Search number, client, status or notes"),
    financial: FinancialService = Depends(get_financial)
):
    invoices = financial.search_invoices(search)
    if status:
        invoice_filter = InvoiceFilter(statuses=[_parse_enum(InvoiceStatus, status, "Invoice", "status")])
        invoices = financial.filter_invoices(invoice_filter, invoices)
    return {"items": [invoice_out(i) for i in invoices], "total": len(invoices)}


@app.post("/api/invoices", status_code=201)
def create_invoice(request: InvoiceCreate, financial: FinancialService = Depends(get_financial)):
    now = financial.clock()
    issue_date = request.issue_date or now
    line_items = [
        InvoiceLineItem.create(
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            discount_percentage=item.discount_percentage,
            tax_rate=item.tax_rate,
            category=item.category,
        )
        for item in request.line_items
    ]
    invoice = Invoice.from_line_items(
        line_items,
        discount_amount=request.discount_amount,
        invoice_number=request.invoice_number or "",
        client_id=request.client_id,
        client_name=request.client_name,
        issue_date=issue_date,
        due_date=request.due_date or issue_date + timedelta(days=config.financial.default_due_days),
        currency=_parse_enum(Currency, request.currency, "Invoice", "currency"),
        notes=request.notes,
    )
    return invoice_out(financial.create_invoice(invoice))


@app.get("/api/invoices/{invoice_id}")
def get_invoice(invoice_id: str, financial: FinancialService = Depends(get_financial)):
    invoice = financial.get_invoice(invoice_id)
    result = invoice_out(invoice)
    result["payments"] = [payment_out(p) for p in financial.payments_for_invoice(invoice.id)]
    return result


@app.put("/api/invoices/{invoice_id}")
def update_invoice(invoice_id: str, request: InvoiceUpdate, financial: FinancialService = Depends(get_financial)):
    changes: Dict[str, Any] = {}
    if request.client_name is not None:
        changes["client_name"] = request.client_name
    if request.due_date is not None:
        changes["due_date"] = request.due_date
    if request.status is not None:
        changes["status"] = _parse_enum(InvoiceStatus, request.status, "Invoice", "status")
    if request.notes is not None:
        changes["notes"] = request.notes

    invoice = financial.get_invoice(invoice_id)
    return invoice_out(financial.update_invoice(invoice.with_changes(modified_by=financial.user, **changes)))


@app.delete("/api/invoices/{invoice_id}")
def delete_invoice(invoice_id: str, financial: FinancialService = Depends(get_financial)):
    financial.delete_invoice(invoice_id)
    return {"deleted": invoice_id}


@app.post("/api/invoices/{invoice_id}/send")
def send_invoice(invoice_id: str, financial: FinancialService = Depends(get_financial)):
    return invoice_out(financial.send_invoice(financial.get_invoice(invoice_id)))


@app.post("/api/invoices/{invoice_id}/duplicate", status_code=201)
def duplicate_invoice(invoice_id: str, financial: FinancialService = Depends(get_financial)):
    return invoice_out(financial.duplicate_invoice(financial.get_invoice(invoice_id)))


# ------------ Payment Endpoints ------------

@app.get("/api/payments")
def list_payments(
    invoice_id: Optional[str] = Query(None, description="Only payments for this invoice"),
    search: str = Query(""),
    financial: FinancialService = Depends(get_financial)
):
    payments = financial.search_payments(search)
    if invoice_id:
        payments = [p for p in payments if p.invoice_id == invoice_id]
    return {"items": [payment_out(p) for p in payments], "total": len(payments)}


@app.post("/api/payments", status_code=201)
def create_payment(request: PaymentCreate, financial: FinancialService = Depends(get_financial)):
    """Record a payment; the invoice is reconciled before the response."""
    invoice = financial.get_invoice(request.invoice_id)
    payment = PaymentRecord(
        invoice_id=invoice.id,
        amount=request.amount,
        currency=_parse_enum(Currency, request.currency, "PaymentRecord", "currency"),
        payment_method=_parse_enum(PaymentMethod, request.payment_method, "PaymentRecord", "payment_method"),
        status=_parse_enum(PaymentStatus, request.status, "PaymentRecord", "status"),
        payment_date=request.payment_date or financial.clock(),
        transaction_id=request.transaction_id,
        notes=request.notes,
    )
    saved = financial.create_payment(payment)
    return {"payment": payment_out(saved), "invoice": invoice_out(financial.get_invoice(invoice.id))}


@app.put("/api/payments/{payment_id}")
def update_payment(payment_id: str, request: PaymentUpdate, financial: FinancialService = Depends(get_financial)):
    payment = replace(financial.get_payment(payment_id))
    if request.invoice_id is not None:
        payment.invoice_id = financial.get_invoice(request.invoice_id).id
    if request.amount is not None:
        payment.amount = request.amount
    if request.status is not None:
        payment.status = _parse_enum(PaymentStatus, request.status, "PaymentRecord", "status")
    if request.notes is not None:
        payment.notes = request.notes

    saved = financial.update_payment(payment)
    return {"payment": payment_out(saved), "invoice": invoice_out(financial.get_invoice(saved.invoice_id))}


@app.delete("/api/payments/{payment_id}")
def delete_payment(payment_id: str, financial: FinancialService = Depends(get_financial)):
    financial.delete_payment(payment_id)
    return {"deleted": payment_id}


# ------------ Analytics & Export Endpoints ------------

@app.get("/api/analytics")
def get_analytics(financial: FinancialService = Depends(get_financial)):
    return financial.generate_financial_analytics().to_dict()


@app.get("/api/export/{kind}.csv")
def export_csv(kind: str, financial: FinancialService = Depends(get_financial)):
    if kind == "invoices":
        content = financial.invoices_csv()
    elif kind == "payments":
        content = financial.payments_csv()
    else:
        raise HTTPException(status_code=404, detail=f"Unknown export '{kind}'")

    filename = f"{kind}_{datetime.now().strftime('%Y-%m-%d_%H-%M-%S')}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


# ------------ Report Endpoints ------------

@app.get("/api/reports")
def list_reports(
    search: str = Query(""),
    category: Optional[str] = Query(None),
    is_public: Optional[bool] = Query(None),
    reporting: ReportingService = Depends(get_reporting)
):
    reports = reporting.search_reports(search)
    category_enum = _parse_enum(ReportCategory, category, "Report", "category") if category else None
    reports = reporting.filter_reports(category=category_enum, is_public=is_public, reports=reports)
    return {"items": [report_out(r) for r in reports], "total": len(reports)}


@app.post("/api/reports", status_code=201)
def create_report(request: ReportCreate, reporting: ReportingService = Depends(get_reporting)):
    builder = ReportBuilder()
    builder.report_name = request.report_name
    builder.report_description = request.report_description or ""
    builder.report_type = _parse_enum(ReportType, request.report_type, "Report", "report_type")
    builder.category = _parse_enum(ReportCategory, request.category, "Report", "category")
    builder.data_source = _parse_enum(DataSource, request.data_source, "Report", "data_source")
    builder.selected_fields = list(request.selected_fields)
    builder.status_filters = list(request.status_filters)
    builder.tags = list(request.tags)
    builder.is_public = request.is_public

    errors = builder.validation_errors()
    if errors:
        raise BuilderValidationError(errors)
    return report_out(reporting.create_report(builder.build_report(created_by=reporting.user)))


@app.get("/api/reports/analytics")
def get_report_analytics(reporting: ReportingService = Depends(get_reporting)):
    analytics = reporting.generate_report_analytics()
    return {
        "total_reports": analytics.total_reports,
        "public_reports": analytics.public_reports,
        "private_reports": analytics.private_reports,
        "category_counts": analytics.category_counts,
        "type_counts": analytics.type_counts,
        "recent_reports": analytics.recent_reports,
        "average_generation_time": analytics.average_generation_time,
    }


@app.get("/api/reports/{report_id}")
def get_report(report_id: str, reporting: ReportingService = Depends(get_reporting)):
    return report_out(reporting.get_report(report_id))


@app.delete("/api/reports/{report_id}")
def delete_report(report_id: str, reporting: ReportingService = Depends(get_reporting)):
    reporting.delete_report(report_id)
    return {"deleted": report_id}


@app.post("/api/reports/{report_id}/generate")
def generate_report(report_id: str, reporting: ReportingService = Depends(get_reporting)):
    report = reporting.get_report(report_id)
    rows = reporting.generate_report(report)
    return {"report": report_out(reporting.get_report(report_id)), "rows": rows, "row_count": len(rows)}


@app.get("/api/reports/{report_id}/export/{export_format}")
def export_report(report_id: str, export_format: str, reporting: ReportingService = Depends(get_reporting)):
    """Download a report file."""
    fmt = _parse_enum(ExportFormat, export_format, "Report", "export_format")
    path = reporting.export_report(reporting.get_report(report_id), fmt)
    return FileResponse(
        path,
        filename=path.name,
        media_type="application/octet-stream"
    )


# Run with: uvicorn erp_desk.api:app --reload --port 8000
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

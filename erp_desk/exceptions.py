"""
Custom exceptions for the ERP desk client.

Provides structured error handling with specific exception types
for the financial, storage and reporting layers.
"""


class ErpDeskError(Exception):
    """Base exception for ERP desk errors."""

    def __init__(self, message: str, code: str = None, details: dict = None):
        self.message = message
        self.code = code or "ERP_DESK_ERROR"
        self.details = details or {}
        super().__init__(self.message)


# ============== Configuration Errors ==============

class ConfigurationError(ErpDeskError):
    """Error in configuration settings."""

    def __init__(self, message: str, setting: str = None):
        super().__init__(
            message,
            code="CONFIG_ERROR",
            details={"setting": setting}
        )


# ============== Financial Errors ==============

class FinancialError(ErpDeskError):
    """Error raised by the financial domain."""

    def __init__(self, message: str, code: str = "FINANCIAL_ERROR", details: dict = None):
        super().__init__(message, code=code, details=details)


class InvalidDataError(FinancialError):
    """A stored record could not be decoded, or input data is malformed."""

    def __init__(self, record_type: str = None, field: str = None, reason: str = None):
        message = "Invalid data provided"
        if record_type and field:
            message += f": {record_type}.{field}"
        if reason:
            message += f" ({reason})"
        super().__init__(
            message,
            code="INVALID_DATA",
            details={"record_type": record_type, "field": field, "reason": reason}
        )


class NetworkError(FinancialError):
    """Transport failure talking to the document store."""

    def __init__(self, reason: str = None):
        message = "Network connection error"
        if reason:
            message += f": {reason}"
        super().__init__(message, code="NETWORK_ERROR", details={"reason": reason})


class UnauthorizedError(FinancialError):
    """Credentials rejected by the document store."""

    def __init__(self, reason: str = None):
        super().__init__(
            "Unauthorized access",
            code="UNAUTHORIZED",
            details={"reason": reason}
        )


class EntityNotFoundError(FinancialError):
    """Record not found locally or in the store."""

    def __init__(self, entity: str, entity_id: str, message: str = None):
        super().__init__(
            message or f"{entity} not found",
            code="ENTITY_NOT_FOUND",
            details={"entity": entity, "entity_id": entity_id}
        )


class InvoiceNotFoundError(EntityNotFoundError):
    """Invoice not found."""

    def __init__(self, invoice_id: str):
        super().__init__("Invoice", invoice_id, "Invoice not found")
        self.code = "INVOICE_NOT_FOUND"


class PaymentNotFoundError(EntityNotFoundError):
    """Payment not found."""

    def __init__(self, payment_id: str):
        super().__init__("Payment", payment_id, "Payment not found")
        self.code = "PAYMENT_NOT_FOUND"


class InvalidAmountError(FinancialError):
    """Monetary amount rejected."""

    def __init__(self, amount=None):
        super().__init__(
            "Invalid amount provided",
            code="INVALID_AMOUNT",
            details={"amount": str(amount) if amount is not None else None}
        )


class DuplicateIdentifierError(FinancialError):
    """Invoice or payment number already in use."""

    def __init__(self, identifier: str):
        super().__init__(
            "Invoice number already exists",
            code="DUPLICATE_IDENTIFIER",
            details={"identifier": identifier}
        )


class GatewayError(FinancialError):
    """Error reported by a payment gateway."""

    def __init__(self, message: str):
        super().__init__(f"Payment gateway error: {message}", code="GATEWAY_ERROR")


class BankingProviderError(FinancialError):
    """Error reported by a banking data provider."""

    def __init__(self, message: str):
        super().__init__(f"Banking provider error: {message}", code="BANKING_PROVIDER_ERROR")


# ============== Store Errors ==============

class StoreError(ErpDeskError):
    """Unclassified failure from the remote document store."""

    def __init__(self, operation: str, message: str, status_code: int = None):
        super().__init__(
            f"Store {operation} failed: {message}",
            code="STORE_ERROR",
            details={"operation": operation, "status_code": status_code}
        )


# ============== Reporting Errors ==============

class ReportingError(ErpDeskError):
    """Error in the reporting layer."""

    def __init__(self, message: str, code: str = "REPORTING_ERROR", details: dict = None):
        super().__init__(message, code=code, details=details)


class ReportNotFoundError(ReportingError):
    """Report or dashboard not found."""

    def __init__(self, report_id: str, kind: str = "Report"):
        super().__init__(
            f"{kind} not found",
            code="REPORT_NOT_FOUND",
            details={"report_id": report_id, "kind": kind}
        )


class ExportFailedError(ReportingError):
    """Report export failed."""

    def __init__(self, export_format: str, message: str):
        super().__init__(
            f"Failed to export {export_format}: {message}",
            code="EXPORT_FAILED",
            details={"format": export_format}
        )


class BuilderValidationError(ReportingError):
    """Report builder configuration is not valid for creation."""

    def __init__(self, errors: list):
        super().__init__(
            "Report configuration is invalid: " + "; ".join(errors),
            code="BUILDER_INVALID",
            details={"errors": list(errors)}
        )

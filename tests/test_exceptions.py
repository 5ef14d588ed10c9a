"""
Tests for the error taxonomy.
"""
import pytest

from erp_desk.exceptions import (
    BankingProviderError, DuplicateIdentifierError, ErpDeskError, FinancialError,
    GatewayError, InvalidAmountError, InvalidDataError, NetworkError,
    PaymentNotFoundError, StoreError, UnauthorizedError,
)


class TestErrorTaxonomy:

    @pytest.mark.parametrize("error,code,message", [
        (InvalidDataError(), "INVALID_DATA", "Invalid data provided"),
        (NetworkError(), "NETWORK_ERROR", "Network connection error"),
        (UnauthorizedError(), "UNAUTHORIZED", "Unauthorized access"),
        (PaymentNotFoundError("p1"), "PAYMENT_NOT_FOUND", "Payment not found"),
        (InvalidAmountError(), "INVALID_AMOUNT", "Invalid amount provided"),
        (DuplicateIdentifierError("INV-1"), "DUPLICATE_IDENTIFIER", "Invoice number already exists"),
        (GatewayError("declined"), "GATEWAY_ERROR", "Payment gateway error: declined"),
        (BankingProviderError("token expired"), "BANKING_PROVIDER_ERROR",
         "Banking provider error: token expired"),
    ])
    def test_financial_errors(self, error, code, message):
        assert isinstance(error, FinancialError)
        assert error.code == code
        assert error.message == message
        assert str(error) == message

    def test_invalid_data_names_the_field(self):
        error = InvalidDataError("Invoice", "total_amount", "not a decimal")

        assert error.message == "Invalid data provided: Invoice.total_amount (not a decimal)"
        assert error.details["field"] == "total_amount"

    def test_invalid_amount_details(self):
        assert InvalidAmountError(-5).details == {"amount": "-5"}

    def test_store_error_is_not_financial(self):
        error = StoreError("query", "bad gateway", status_code=502)

        assert isinstance(error, ErpDeskError)
        assert not isinstance(error, FinancialError)
        assert error.details == {"operation": "query", "status_code": 502}

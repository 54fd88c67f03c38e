import logging
import pytest
from fastapi import HTTPException

from amplygigs.services.exceptions import EscrowError, InsufficientFundsError, PaymentGatewayError
from amplygigs.utils.errors import domain_error_response, error_response


def test_error_response_logs(caplog):
    caplog.set_level(logging.ERROR, logger="amplygigs.utils.errors")
    with pytest.raises(HTTPException):
        raise error_response("Invalid", {"field": "bad"})
    assert any(
        "Invalid" in r.getMessage() and "'field': 'bad'" in r.getMessage()
        for r in caplog.records
    )


@pytest.mark.parametrize(
    "exc, status_code, detail",
    [
        (InsufficientFundsError("Insufficient wallet balance"), 400, "Insufficient wallet balance"),
        (EscrowError("No funds in escrow for this booking", status_code=404), 404, "No funds in escrow for this booking"),
        (PaymentGatewayError("Verification failed"), 502, "Verification failed"),
        (PermissionError("Not your booking"), 403, "Not your booking"),
        (LookupError("Booking not found"), 404, "Booking not found"),
    ],
)
def test_domain_errors_map_to_status(exc, status_code, detail):
    http_exc = domain_error_response(exc)
    assert http_exc.status_code == status_code
    assert http_exc.detail == detail


def test_value_error_maps_to_422():
    http_exc = domain_error_response(ValueError("Comment cannot be empty"))
    assert http_exc.status_code == 422
    assert http_exc.detail == {"message": "Comment cannot be empty", "field_errors": {}}


def test_unexpected_errors_propagate():
    with pytest.raises(RuntimeError):
        domain_error_response(RuntimeError("boom"))

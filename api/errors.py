"""
api/errors.py -- Map workflow Failure results onto HTTP errors.

Route handlers call raise_for_failure(result) after every workflow call. The
raised HTTPException carries an ErrorDetail dict, which the HTTPException
handler in api/main.py places under the "error" key of the response body.

The three link token failures collapse into one code, "link_invalid", so the
HTTP surface cannot be used to probe whether a token exists, is of another
kind, or has merely expired.
"""

from fastapi import HTTPException

from api.models import ErrorDetail
from core.results import (
    TOKEN_FAILURES,
    AlreadyExists,
    DeliveryFailed,
    EmptyRecipients,
    Failure,
    FileInfected,
    Forbidden,
    InvalidCredential,
    InvalidOwnership,
    NotFound,
)

_STATUS = {
    InvalidCredential: 422,
    InvalidOwnership: 409,
    NotFound: 404,
    AlreadyExists: 409,
    Forbidden: 403,
    FileInfected: 422,
    EmptyRecipients: 502,
    DeliveryFailed: 502,
}


def to_http_exception(failure: Failure) -> HTTPException:
    if isinstance(failure, TOKEN_FAILURES):
        return HTTPException(
            status_code=400,
            detail=ErrorDetail(code="link_invalid", message=failure.message).model_dump(),
        )
    status = _STATUS.get(type(failure), 400)
    detail = None
    if isinstance(failure, InvalidCredential):
        detail = failure.field
    return HTTPException(
        status_code=status,
        detail=ErrorDetail(code=failure.code, message=failure.message, detail=detail).model_dump(),
    )


def raise_for_failure(result) -> None:
    """Raise the mapped HTTPException when result is a Failure; no-op on Ok."""
    if isinstance(result, Failure):
        raise to_http_exception(result)

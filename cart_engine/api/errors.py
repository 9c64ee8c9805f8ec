# cart_engine/api/errors.py
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from cart_engine.domain.errors import BackendFailure, CartError, ErrorKind
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)

_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.AUTHORIZATION_REQUIRED: 401,
    ErrorKind.INSUFFICIENT_STOCK: 409,
    ErrorKind.CONCURRENCY_CONFLICT: 409,
    ErrorKind.OFFER_UNAVAILABLE: 410,
    ErrorKind.BACKEND_FAILURE: 503,
}


def to_http(e: CartError) -> HTTPException:
    #ustrukturyzowany blad: rodzaj + konkretny produkt/wariant
    return HTTPException(
        status_code=_STATUS.get(e.kind, 400),
        detail={"kind": e.kind.value, "message": e.message, "item_ref": e.item_ref},
    )


def backend_failure_handler(request: Request, exc: Exception) -> JSONResponse:
    #katalog / baza / redis niedostepne - ten sam ksztalt bledu co reszta API
    failure = BackendFailure(f"Blad backendu: {exc}")
    logger.error(f"{request.method} {request.url.path}: {failure.message}")
    return JSONResponse(
        status_code=_STATUS[failure.kind],
        content={"detail": {"kind": failure.kind.value, "message": failure.message, "item_ref": None}},
    )

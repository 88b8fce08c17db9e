from __future__ import annotations

from fastapi import HTTPException

from ..domain.errors import BackendRejection, ErrorCategory, ErrorKind, WorkflowError

NOT_FOUND_KINDS = {ErrorKind.INSPECTION_NOT_FOUND, ErrorKind.ITEM_NOT_FOUND, ErrorKind.METER_NOT_FOUND}


def to_http(e: WorkflowError) -> HTTPException:
    """
    Validation -> 422, precondition -> 409 (404 for unknown ids), upstream
    rejection -> 404 when upstream said so, otherwise 502.
    """
    if isinstance(e, BackendRejection):
        status = 404 if e.not_found else 502
    elif e.kind in NOT_FOUND_KINDS:
        status = 404
    elif e.category == ErrorCategory.PRECONDITION:
        status = 409
    else:
        status = 422
    return HTTPException(status_code=status, detail=e.as_dict())

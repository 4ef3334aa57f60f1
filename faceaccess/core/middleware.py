from __future__ import annotations

from typing import Callable

from fastapi import Request

from .correlation import CORRELATION_HEADER, generate_correlation_id, set_correlation_id


async def correlation_id_middleware(request: Request, call_next: Callable):
    cid = request.headers.get(CORRELATION_HEADER) or generate_correlation_id()
    set_correlation_id(cid)
    request.state.correlation_id = cid
    response = await call_next(request)
    response.headers[CORRELATION_HEADER] = cid
    return response

"""
Table Session Routes
====================

- POST /session/start?table_number=N: validate the scanned table and issue a
  new anonymous session id

The id is returned once; clients keep it and send it back as the
``X-Session-ID`` header on every customer endpoint.
"""

import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ..config import get_rate_limit_public
from ..db import get_db
from ..errors import NotFoundError
from ..middleware import limiter
from ..schemas.menu import TableOut
from ..schemas.session import SessionStartResponse
from ..services import cart as cart_service
from ..services.menu import get_table_by_number
from ..session_identity import generate_session_id


logger = logging.getLogger(__name__)

session_router = APIRouter(prefix="/session", tags=["Session"])


@session_router.post("/start", response_model=SessionStartResponse)
@limiter.limit(get_rate_limit_public)
def start_session(
    request: Request,
    table_number: int = Query(..., ge=1),
    db: Session = Depends(get_db),
) -> SessionStartResponse:
    table = get_table_by_number(db, table_number)
    if table is None:
        raise NotFoundError(f"table {table_number} not found", "Meja tidak ditemukan.")

    session_id = generate_session_id()
    cart_service.bind_session_table(db, session_id, table.id)
    logger.info("Session %s started at table %d", session_id[:20], table_number)

    return SessionStartResponse(
        session_id=session_id,
        table=TableOut.model_validate(table),
        greeting=f"Halo! Selamat datang di meja {table_number} 👋 Aku RestoAI, mau pesan apa hari ini?",
    )

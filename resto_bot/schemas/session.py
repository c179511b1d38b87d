"""Session start schemas."""

from pydantic import BaseModel

from .menu import TableOut


class SessionStartResponse(BaseModel):
    session_id: str
    table: TableOut
    greeting: str

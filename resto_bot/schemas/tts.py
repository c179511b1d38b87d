"""Text-to-speech request schema."""

from typing import Optional

from pydantic import BaseModel


class SynthesizeRequest(BaseModel):
    """Length limits are enforced by the route after trimming."""
    text: str
    voice_id: Optional[str] = None

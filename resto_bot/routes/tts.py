"""
TTS (Text-to-Speech) Routes
===========================

- POST /tts/synthesize: speak an assistant reply, returns audio/mpeg

Requires ``X-Session-ID``. Each session has its own fixed-window quota
(RATE_LIMIT_TTS); over quota answers 429 with Retry-After.

Errors:
-------
- 400: text empty after trimming, or longer than TTS_MAX_TEXT_LENGTH
- 429: session over its speech quota
- 502: the provider rejected or failed the request
- 503: no provider credentials configured
"""

import logging

from fastapi import APIRouter, Depends, Response

from .. import config
from ..auth import require_session
from ..errors import RateLimited, ValidationError
from ..logging_config import session_prefix
from ..schemas.tts import SynthesizeRequest
from ..services.rate_limit import get_tts_limiter
from ..tts import get_tts_provider


logger = logging.getLogger(__name__)

tts_router = APIRouter(prefix="/tts", tags=["Text-to-Speech"])

TTS_RATE_LIMITED_MESSAGE = "Tunggu sebentar ya, terlalu banyak permintaan suara. Coba lagi dalam 1 menit 😊"


@tts_router.post("/synthesize")
async def synthesize_speech(
    req: SynthesizeRequest,
    session_id: str = Depends(require_session),
) -> Response:
    text = req.text.strip()
    if not text:
        raise ValidationError("empty tts text", "Teks tidak boleh kosong.")
    if len(text) > config.TTS_MAX_TEXT_LENGTH:
        raise ValidationError(
            f"tts text length {len(text)} exceeds {config.TTS_MAX_TEXT_LENGTH}",
            f"Teks terlalu panjang (maksimal {config.TTS_MAX_TEXT_LENGTH} karakter).",
        )

    quota = get_tts_limiter().hit(session_id)
    if not quota.allowed:
        logger.info("TTS quota exceeded for session %s", session_prefix(session_id))
        raise RateLimited(
            f"tts quota exceeded for {session_prefix(session_id)}",
            TTS_RATE_LIMITED_MESSAGE,
            retry_after=quota.retry_after,
        )

    provider = get_tts_provider()
    audio_bytes = await provider.synthesize(text, voice_id=req.voice_id)
    logger.debug("Synthesized %d bytes for session %s", len(audio_bytes), session_prefix(session_id))

    return Response(
        content=audio_bytes,
        media_type="audio/mpeg",
        headers={
            "Content-Disposition": "inline",
            "Cache-Control": "no-cache",
        },
    )

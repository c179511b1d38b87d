"""
Error taxonomy for Resto Bot.

Every error raised across a service boundary derives from ``RestoBotError``
and carries an HTTP status plus a user-safe Indonesian message. The app
factory renders them as ``{"error": <code>, "message": <message>}``; the
internal ``detail`` is only logged.
"""

from typing import Optional


class RestoBotError(Exception):
    """Base class for expected, user-presentable failures."""

    status_code = 500
    code = "internal_error"
    default_message = "Waduh, ada masalah teknis nih. Coba lagi ya!"

    def __init__(self, detail: str = "", user_message: Optional[str] = None):
        self.detail = detail or self.code
        self.user_message = user_message or self.default_message
        super().__init__(self.detail)


class ValidationError(RestoBotError):
    """Malformed request shape or field, rejected before any side effect."""

    status_code = 400
    code = "validation_error"
    default_message = "Permintaan tidak valid."


class NotFoundError(RestoBotError):
    status_code = 404
    code = "not_found"
    default_message = "Data tidak ditemukan."


class PreconditionFailed(RestoBotError):
    """The current state does not allow the requested transition."""

    status_code = 409
    code = "precondition_failed"
    default_message = "Aksi ini tidak bisa dilakukan untuk pesanan ini."


class RateLimited(RestoBotError):
    """Too many requests; carries a retry-after hint in seconds."""

    status_code = 429
    code = "rate_limited"
    default_message = "Tunggu sebentar ya, terlalu banyak permintaan. Coba lagi sebentar lagi 😊"

    def __init__(
        self,
        detail: str = "",
        user_message: Optional[str] = None,
        retry_after: int = 60,
    ):
        super().__init__(detail, user_message)
        self.retry_after = max(1, int(retry_after))


class QuotaExhausted(RestoBotError):
    """The model provider reports the account is out of credits."""

    status_code = 402
    code = "quota_exhausted"
    default_message = "Maaf, ada kendala teknis. Bisa lihat menu manual dulu ya!"


class UpstreamUnavailable(RestoBotError):
    """A model or speech provider is down or not configured."""

    status_code = 503
    code = "upstream_unavailable"
    default_message = "Layanan sedang tidak tersedia. Coba lagi nanti ya!"


class UpstreamFailed(RestoBotError):
    """A provider answered with an unexpected error."""

    status_code = 502
    code = "upstream_failed"
    default_message = "Gagal memproses permintaan. Coba lagi ya!"


class TransientStorageError(RestoBotError):
    """A read or write against the store failed; the user may retry."""

    status_code = 503
    code = "storage_error"
    default_message = "Gagal menyimpan data. Coba lagi ya!"

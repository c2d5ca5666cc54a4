"""Copy provider-hosted artifacts into durable storage.

Provider URLs expire, so every output is downloaded and re-uploaded under
``{user_id}/{generation_id}/output-{index}.{ext}``. Persistence never fails a
generation. When an image cannot be re-hosted it is inlined as a ``data:`` URL
(fetched only from allowlisted hosts, up to 8 MB); otherwise the provider URL
is kept.
"""

import base64
import binascii
import mimetypes
import re
from urllib.parse import urlparse

import httpx
import structlog

from sigil.services.exceptions import StorageDownloadError
from sigil.services.storage.supabase_client import SupabaseStorageClient
from sigil.services.storage.url_safety import safe_fetch_url

logger = structlog.get_logger(__name__)

_DATA_URL = re.compile(r"^data:([^;,]+)?(;base64)?,(.*)$", re.DOTALL)

FALLBACK_EXTENSIONS = {"image": "png", "video": "mp4"}
FALLBACK_CONTENT_TYPES = {"image": "image/png", "video": "video/mp4"}

# Largest image inlined as a data URL when re-hosting fails
MAX_INLINE_BYTES = 8 * 1024 * 1024


def infer_extension(source_url: str, content_type: str | None, file_type: str) -> str:
    """Pick a file extension from the URL path, then the MIME type."""
    if not source_url.startswith("data:"):
        path = urlparse(source_url).path
        if "." in path.rsplit("/", 1)[-1]:
            ext = path.rsplit(".", 1)[-1]
            if ext and len(ext) <= 5:
                return ext.lower()
    if content_type:
        guessed = mimetypes.guess_extension(content_type.split(";")[0].strip())
        if guessed:
            return "jpg" if guessed in (".jpe", ".jpeg") else guessed.lstrip(".")
    return FALLBACK_EXTENSIONS[file_type]


def decode_data_url(source_url: str) -> tuple[bytes, str | None]:
    """Decode a ``data:`` URL into bytes and its MIME type.

    Raises:
        StorageDownloadError: Malformed data URL
    """
    match = _DATA_URL.match(source_url)
    if not match:
        raise StorageDownloadError("Malformed data URL")
    mime_type, is_base64, payload = match.groups()
    try:
        data = base64.b64decode(payload, validate=True) if is_base64 else payload.encode()
    except (binascii.Error, ValueError) as e:
        raise StorageDownloadError(f"Malformed data URL payload: {e}") from e
    return data, mime_type


class OutputPersistence:
    """Downloads provider outputs and re-hosts them in Supabase Storage."""

    def __init__(
        self,
        storage: SupabaseStorageClient | None,
        gemini_api_key: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.storage = storage
        self.gemini_api_key = gemini_api_key
        self.transport = transport

    async def download(self, source_url: str) -> tuple[bytes, str | None]:
        """Fetch artifact bytes and the reported content type.

        Raises:
            StorageDownloadError: Non-2xx response or network failure
        """
        if source_url.startswith("data:"):
            return decode_data_url(source_url)

        headers = {}
        url = source_url
        if source_url.startswith("gs://"):
            url = "https://storage.googleapis.com/" + source_url[len("gs://") :]
            if self.gemini_api_key:
                headers["x-goog-api-key"] = self.gemini_api_key

        return await self._fetch(url, headers)

    async def _fetch(
        self, url: str, headers: dict[str, str], follow_redirects: bool = True
    ) -> tuple[bytes, str | None]:
        try:
            async with httpx.AsyncClient(
                timeout=60.0, follow_redirects=follow_redirects, transport=self.transport
            ) as client:
                response = await client.get(url, headers=headers)
        except httpx.HTTPError as e:
            raise StorageDownloadError(f"Failed downloading provider output: {e}") from e

        if not response.is_success:
            raise StorageDownloadError(
                "Failed downloading provider output: "
                f"{response.status_code} {response.reason_phrase}"
            )
        return response.content, response.headers.get("content-type")

    async def inline_fallback(self, source_url: str) -> str | None:
        """Re-fetch an image from an allowlisted host and inline it as a data URL.

        Returns None when the URL is not safe to fetch, the fetch fails, or the
        image is larger than MAX_INLINE_BYTES.
        """
        url = safe_fetch_url(source_url, allow_gs=True)
        if url is None:
            return None
        headers = {}
        if source_url.startswith("gs://") and self.gemini_api_key:
            headers["x-goog-api-key"] = self.gemini_api_key
        try:
            # Redirects could leave the allowlist
            data, content_type = await self._fetch(url, headers, follow_redirects=False)
        except StorageDownloadError as e:
            logger.debug("storage.inline_fetch_failed", error=str(e))
            return None
        if len(data) > MAX_INLINE_BYTES:
            return None
        mime_type = content_type or FALLBACK_CONTENT_TYPES["image"]
        return f"data:{mime_type};base64,{base64.b64encode(data).decode()}"

    async def persist_output(
        self,
        source_url: str,
        user_id: str,
        generation_id: str,
        output_index: int,
        file_type: str,
    ) -> str:
        """Return a durable URL for the artifact, or ``source_url`` on failure."""
        if self.storage is None:
            logger.warning(
                "storage.not_configured",
                generation_id=generation_id,
                output_index=output_index,
            )
            return source_url

        try:
            data, content_type = await self.download(source_url)
            ext = infer_extension(source_url, content_type, file_type)
            path = f"{user_id}/{generation_id}/output-{output_index}.{ext}"
            public_url = await self.storage.upload(
                path, data, content_type or FALLBACK_CONTENT_TYPES[file_type]
            )
        except Exception as e:
            logger.warning(
                "storage.persist_failed",
                generation_id=generation_id,
                output_index=output_index,
                error_type=type(e).__name__,
                error=str(e),
            )
            if file_type == "image":
                inlined = await self.inline_fallback(source_url)
                if inlined is not None:
                    logger.info(
                        "storage.inlined_fallback",
                        generation_id=generation_id,
                        output_index=output_index,
                        size=len(inlined),
                    )
                    return inlined
            return source_url

        logger.debug(
            "storage.persisted",
            generation_id=generation_id,
            output_index=output_index,
            path=path,
        )
        return public_url

"""Supabase Storage client for durable generation outputs."""

import asyncio

import httpx
import structlog

from sigil.services.exceptions import StorageAuthError, StorageNetworkError, StorageUploadError

logger = structlog.get_logger(__name__)


class SupabaseStorageClient:
    """Uploads objects to a single public Supabase Storage bucket."""

    def __init__(
        self,
        base_url: str,
        service_role_key: str,
        bucket: str = "outputs",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize storage client.

        Args:
            base_url: Supabase project URL (from SUPABASE_URL env var)
            service_role_key: Service role key (from SUPABASE_SERVICE_ROLE_KEY env var)
            bucket: Bucket holding every generated output
            transport: Optional httpx transport override
        """
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.transport = transport
        self.headers = {
            "Authorization": f"Bearer {service_role_key}",
            "apikey": service_role_key,
        }
        self._bucket_ready = False
        self._bucket_lock = asyncio.Lock()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=30.0, headers=self.headers, transport=self.transport)

    def _check_response(self, response: httpx.Response, operation: str) -> None:
        """Translate storage error responses into service errors.

        Raises:
            StorageNetworkError: Rate limit (429) or service unavailable (5xx)
            StorageAuthError: Invalid or insufficient key (401, 403)
            StorageUploadError: Any other error response
        """
        if response.status_code < 400:
            return
        if response.status_code == 429 or response.status_code >= 500:
            raise StorageNetworkError(
                f"{operation} unavailable ({response.status_code}): {response.text}"
            )
        if response.status_code in (401, 403):
            raise StorageAuthError(
                f"{operation} rejected ({response.status_code}). "
                "Check SUPABASE_SERVICE_ROLE_KEY configuration in .env file."
            )
        raise StorageUploadError(f"{operation} failed ({response.status_code}): {response.text}")

    async def ensure_bucket(self) -> None:
        """Create the outputs bucket if it does not exist (once per client)."""
        if self._bucket_ready:
            return
        async with self._bucket_lock:
            if self._bucket_ready:
                return
            try:
                async with self._client() as client:
                    response = await client.get(f"{self.base_url}/storage/v1/bucket")
                    self._check_response(response, "List buckets")
                    buckets = response.json()
                    exists = any(
                        item.get("id") == self.bucket or item.get("name") == self.bucket
                        for item in buckets
                    )
                    if not exists:
                        response = await client.post(
                            f"{self.base_url}/storage/v1/bucket",
                            json={"id": self.bucket, "name": self.bucket, "public": True},
                        )
                        raced = response.status_code in (400, 409) and (
                            "already exists" in response.text.lower()
                        )
                        if not raced:
                            self._check_response(response, "Create bucket")
                            logger.info("storage.bucket_created", bucket=self.bucket)
            except httpx.TimeoutException as e:
                raise StorageNetworkError(f"Request timeout after 30s: {e}") from e
            except httpx.HTTPError as e:
                raise StorageNetworkError(f"Network error: {e}") from e
            self._bucket_ready = True

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Upload bytes at ``path`` (overwriting) and return the public URL.

        Raises:
            StorageNetworkError: Network timeout, rate limit, service unavailable
            StorageAuthError: Invalid service role key
            StorageUploadError: Upload rejected
        """
        await self.ensure_bucket()
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/storage/v1/object/{self.bucket}/{path}",
                    content=data,
                    headers={
                        "Content-Type": content_type,
                        "x-upsert": "true",
                        "cache-control": "max-age=3600",
                    },
                )
        except httpx.TimeoutException as e:
            raise StorageNetworkError(f"Request timeout after 30s: {e}") from e
        except httpx.HTTPError as e:
            raise StorageNetworkError(f"Network error: {e}") from e

        self._check_response(response, "Upload")
        return self.get_public_url(path)

    def get_public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

import json
import logging
import ssl
from typing import Any

import httpx
from fastapi.concurrency import run_in_threadpool

from applepayjs.core.exceptions import GatewayError
from applepayjs.schemas.applepay import MerchantSessionRequest
from applepayjs.services.merchant_certificate import MerchantIdentityCertificate

logger = logging.getLogger(__name__)


class ApplePayClient:
    """
    Calls the Apple Pay gateway to create merchant sessions.

    ``transport`` replaces the network layer (tests use ``httpx.MockTransport``).
    Failures are raised as ``GatewayError`` and logged once by the app's
    exception handler.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self.transport = transport

    def _create_http_client(self, ssl_context: ssl.SSLContext) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            verify=ssl_context,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def get_merchant_session(
        self,
        url: str,
        request: MerchantSessionRequest,
        certificate: MerchantIdentityCertificate,
    ) -> Any:
        """
        POST the merchant session request to an allow-listed gateway URL.

        Returns the opaque merchant session JSON as parsed, untouched.
        """
        payload = request.model_dump(by_alias=True)

        # The first build writes the key pair to disk.
        ssl_context = await run_in_threadpool(certificate.ssl_context)

        logger.debug(f"[applepay] POST {url}")
        try:
            async with self._create_http_client(ssl_context) as client:
                response = await client.post(
                    url,
                    content=json.dumps(payload),
                    headers={"Content-Type": "application/json"},
                )
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            raise GatewayError(
                f"Apple Pay gateway returned HTTP {status_code} for {url}.",
                upstream_status=status_code,
                details={"url": url},
            ) from e
        except httpx.HTTPError as e:
            raise GatewayError(
                f"Apple Pay gateway request to {url} failed: {e!r}",
                details={"url": url},
            ) from e
        except ValueError as e:
            raise GatewayError(
                f"Apple Pay gateway response from {url} is not valid JSON.",
                details={"url": url},
            ) from e

"""
Apple Pay merchant validation.

Takes the validation URL the browser received in ``onvalidatemerchant`` and
turns it into a merchant session:

  1. reject anything that is not an absolute URL
  2. reject anything outside the Apple Pay gateway allow-list
  3. load the merchant certificate and read the merchant identifier
  4. build the payload (initiative "web", the serving host as context)
  5. POST it to the gateway over two-way TLS and return the response as-is
"""

import logging
from typing import Any, Optional

from fastapi.concurrency import run_in_threadpool

from applepayjs.core.exceptions import ValidationInputError
from applepayjs.schemas.applepay import MerchantSessionRequest
from applepayjs.services.applepay_client import ApplePayClient
from applepayjs.services.domain_guard import is_absolute_url, is_authorized
from applepayjs.services.merchant_certificate import (
    MerchantCertificateProvider,
    get_merchant_identifier,
)

logger = logging.getLogger(__name__)

WEB_INITIATIVE = "web"

MISSING_URL_MESSAGE = "A valid validationUrl is required."
DISALLOWED_URL_MESSAGE = "The validationUrl is not an allowed Apple Pay domain."


def build_merchant_session_request(
    merchant_identifier: str,
    display_name: str,
    initiative_context: str,
) -> MerchantSessionRequest:
    return MerchantSessionRequest(
        merchant_identifier=merchant_identifier,
        display_name=display_name,
        initiative=WEB_INITIATIVE,
        initiative_context=initiative_context,
    )


class MerchantValidationService:
    def __init__(
        self,
        certificate_provider: MerchantCertificateProvider,
        client: ApplePayClient,
        store_name: str,
    ):
        self.certificate_provider = certificate_provider
        self.client = client
        self.store_name = store_name

    def check_validation_url(self, validation_url: Optional[str], remote_ip: Optional[str] = None) -> str:
        """Return the trimmed URL or raise ValidationInputError. Never touches the network."""
        if not is_absolute_url(validation_url):
            logger.warning(
                f"[applepay] rejected missing or malformed validationUrl "
                f"{validation_url!r} from {remote_ip or 'unknown'}"
            )
            raise ValidationInputError(MISSING_URL_MESSAGE)

        url = validation_url.strip()
        if not is_authorized(url):
            logger.warning(
                f"[applepay] rejected validationUrl outside the Apple Pay allow-list "
                f"{url!r} from {remote_ip or 'unknown'}"
            )
            raise ValidationInputError(DISALLOWED_URL_MESSAGE)

        return url

    async def validate_merchant(
        self,
        validation_url: Optional[str],
        initiative_context: str,
        remote_ip: Optional[str] = None,
    ) -> Any:
        url = self.check_validation_url(validation_url, remote_ip)

        # Load the merchant certificate for two-way TLS authentication with the Apple Pay server.
        # File reads and PKCS#12 decryption block, so they run off the event loop.
        certificate = await run_in_threadpool(self.certificate_provider.get_certificate)
        merchant_identifier = get_merchant_identifier(certificate)

        request = build_merchant_session_request(
            merchant_identifier=merchant_identifier,
            display_name=self.store_name,
            initiative_context=initiative_context,
        )

        logger.info(
            f"[applepay] requesting merchant session from {url} for {initiative_context}"
        )
        return await self.client.get_merchant_session(url, request, certificate)

from fastapi import Depends, Request

from applepayjs.core.config import Settings
from applepayjs.services.applepay_client import ApplePayClient
from applepayjs.services.merchant_certificate import MerchantCertificateProvider
from applepayjs.services.merchant_validation_service import MerchantValidationService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_certificate_provider(request: Request) -> MerchantCertificateProvider:
    return request.app.state.certificate_provider


def get_applepay_client(request: Request) -> ApplePayClient:
    return request.app.state.applepay_client


def get_merchant_validation_service(
    settings: Settings = Depends(get_settings),
    certificate_provider: MerchantCertificateProvider = Depends(get_certificate_provider),
    client: ApplePayClient = Depends(get_applepay_client),
) -> MerchantValidationService:
    return MerchantValidationService(
        certificate_provider=certificate_provider,
        client=client,
        store_name=settings.APPLEPAY_STORE_NAME,
    )

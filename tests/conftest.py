"""
Pytest configuration and fixtures for the Apple Pay JS tests
"""

import base64
import hashlib
import json
from datetime import datetime, timedelta, timezone
from typing import List

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID
from fastapi.testclient import TestClient

from applepayjs.core.config import Settings
from applepayjs.main import create_app
from applepayjs.services.applepay_client import ApplePayClient
from applepayjs.services.merchant_certificate import MERCHANT_IDENTIFIER_OID

CERTIFICATE_PASSWORD = "Pa55w0rd!"
STORE_NAME = "Just Eat Test"
TEST_GATEWAY_URL = "https://apple-pay-gateway-cert.apple.com/paymentservices/startSession"

# Apple encodes the identifier as the hex SHA-256 of the merchant ID
MERCHANT_IDENTIFIER = hashlib.sha256(b"merchant.com.justeat.applepay.local").hexdigest().upper()


def build_certificate(merchant_identifier: str | bytes | None = MERCHANT_IDENTIFIER):
    """
    Create a throwaway self-signed merchant certificate and its key
    """
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "applepay.local")])
    now = datetime.now(timezone.utc)

    builder = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=3650))
    )

    if merchant_identifier is not None:
        # ASN.1 OCTET STRING: tag, length, identifier
        raw = merchant_identifier.encode("ascii") if isinstance(merchant_identifier, str) else merchant_identifier
        value = bytes([0x04, len(raw)]) + raw
        builder = builder.add_extension(
            x509.UnrecognizedExtension(MERCHANT_IDENTIFIER_OID, value),
            critical=False,
        )

    return builder.sign(key, hashes.SHA256()), key


def to_pfx(certificate, key, password: str | None = CERTIFICATE_PASSWORD) -> bytes:
    encryption = (
        serialization.BestAvailableEncryption(password.encode("utf-8"))
        if password
        else serialization.NoEncryption()
    )
    return pkcs12.serialize_key_and_certificates(
        b"applepay.local", key, certificate, None, encryption
    )


def thumbprint_of(certificate) -> str:
    return certificate.fingerprint(hashes.SHA1()).hex().upper()


def make_settings(**overrides) -> Settings:
    values = {
        "ENVIRONMENT": "development",
        "APPLEPAY_STORE_NAME": STORE_NAME,
        "APPLEPAY_MERCHANT_CERTIFICATE": "",
        "APPLEPAY_MERCHANT_CERTIFICATE_FILE_NAME": "",
        "APPLEPAY_MERCHANT_CERTIFICATE_PASSWORD": "",
        "APPLEPAY_USE_CERTIFICATE_STORE": False,
        "APPLEPAY_MERCHANT_CERTIFICATE_THUMBPRINT": "",
        "APPLEPAY_CERTIFICATE_STORE_PATH": "",
        "WELL_KNOWN_DIRECTORY": "",
        "ALLOWED_HOSTS": "*",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class GatewayRecorder:
    """
    Fake Apple Pay gateway recording every request it receives
    """

    def __init__(self, status_code: int = 200, body: bytes = b"{}"):
        self.status_code = status_code
        self.body = body
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(
            self.status_code,
            content=self.body,
            headers={"Content-Type": "application/json"},
        )

    @property
    def payloads(self) -> List[dict]:
        return [json.loads(request.content) for request in self.requests]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture(scope="session")
def merchant_certificate():
    """
    (certificate, key) pair carrying the Apple merchant identifier extension
    """
    return build_certificate()


@pytest.fixture(scope="session")
def merchant_pfx(merchant_certificate) -> bytes:
    certificate, key = merchant_certificate
    return to_pfx(certificate, key)


@pytest.fixture(scope="session")
def merchant_pfx_base64(merchant_pfx) -> str:
    return base64.b64encode(merchant_pfx).decode("ascii")


@pytest.fixture
def merchant_pfx_file(tmp_path, merchant_pfx):
    path = tmp_path / "applepay.local.pfx"
    path.write_bytes(merchant_pfx)
    return path


@pytest.fixture
def gateway() -> GatewayRecorder:
    return GatewayRecorder()


@pytest.fixture
def configured_settings(merchant_pfx_base64) -> Settings:
    return make_settings(
        APPLEPAY_MERCHANT_CERTIFICATE=merchant_pfx_base64,
        APPLEPAY_MERCHANT_CERTIFICATE_PASSWORD=CERTIFICATE_PASSWORD,
    )


@pytest.fixture
def client(configured_settings, gateway):
    """
    TestClient for an app whose gateway calls go to ``gateway``
    """
    app = create_app(
        configured_settings,
        applepay_client=ApplePayClient(transport=gateway.transport()),
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def unconfigured_client(gateway):
    app = create_app(
        make_settings(),
        applepay_client=ApplePayClient(transport=gateway.transport()),
    )
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client

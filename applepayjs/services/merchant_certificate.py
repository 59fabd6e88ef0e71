"""
Apple Pay merchant identity certificate.

The merchant certificate is used for two things:

  * two-way TLS authentication with the Apple Pay gateway, and
  * the merchant identifier, which Apple embeds in the certificate as a
    vendor extension (OID 1.2.840.113635.100.6.32).

It is sourced from exactly one of three places, chosen by configuration in
this order of precedence:

  1. inline base64 PKCS#12       (APPLEPAY_MERCHANT_CERTIFICATE)
  2. certificate store           (APPLEPAY_USE_CERTIFICATE_STORE + thumbprint)
  3. PKCS#12 file on disk        (APPLEPAY_MERCHANT_CERTIFICATE_FILE_NAME)
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import secrets
import ssl
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import ObjectIdentifier

from applepayjs.core.config import Settings
from applepayjs.core.exceptions import (
    CertificateLoadError,
    CertificateNotFound,
    ConfigurationError,
    UnsupportedFormat,
)

logger = logging.getLogger(__name__)


MERCHANT_IDENTIFIER_OID = ObjectIdentifier("1.2.840.113635.100.6.32")

PKCS12_FILE_SUFFIXES = (".pfx", ".p12")

SYSTEM_STORE_ROOT = Path("/etc/applepay/certificates")

CONTENT_TYPE_PKCS12 = "pkcs12"
CONTENT_TYPE_PEM = "pem"
CONTENT_TYPE_X509 = "x509"
CONTENT_TYPE_UNKNOWN = "unknown"


# ══════════════════════════════════════════════════════════════════════
# Certificate sources
# ══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class InlineCertificateSource:
    encoded: str
    password: Optional[str] = None


@dataclass(frozen=True)
class StoreCertificateSource:
    thumbprint: str
    store_name: str = "My"
    store_location: str = "CurrentUser"
    store_path: Optional[str] = None
    password: Optional[str] = None


@dataclass(frozen=True)
class FileCertificateSource:
    file_name: str
    password: Optional[str] = None


CertificateSource = Union[InlineCertificateSource, StoreCertificateSource, FileCertificateSource]


def select_certificate_source(settings: Settings) -> CertificateSource:
    """Pick the single certificate source in effect for ``settings``."""
    password = settings.APPLEPAY_MERCHANT_CERTIFICATE_PASSWORD or None

    if settings.APPLEPAY_MERCHANT_CERTIFICATE.strip():
        return InlineCertificateSource(
            encoded=settings.APPLEPAY_MERCHANT_CERTIFICATE.strip(),
            password=password,
        )

    if settings.APPLEPAY_USE_CERTIFICATE_STORE:
        return StoreCertificateSource(
            thumbprint=settings.APPLEPAY_MERCHANT_CERTIFICATE_THUMBPRINT,
            store_name=settings.APPLEPAY_CERTIFICATE_STORE_NAME,
            store_location=settings.APPLEPAY_CERTIFICATE_STORE_LOCATION,
            store_path=settings.APPLEPAY_CERTIFICATE_STORE_PATH or None,
            password=password,
        )

    return FileCertificateSource(
        file_name=settings.APPLEPAY_MERCHANT_CERTIFICATE_FILE_NAME,
        password=password,
    )


# ══════════════════════════════════════════════════════════════════════
# Loaded certificate
# ══════════════════════════════════════════════════════════════════════


class MerchantIdentityCertificate:
    """An X.509 certificate plus private key identifying the merchant."""

    def __init__(
        self,
        certificate: x509.Certificate,
        private_key=None,
        additional_certificates: Optional[List[x509.Certificate]] = None,
    ) -> None:
        self.certificate = certificate
        self.private_key = private_key
        self.additional_certificates = list(additional_certificates or [])
        self._ssl_context: Optional[ssl.SSLContext] = None
        self._ssl_lock = threading.Lock()

    @property
    def thumbprint(self) -> str:
        """SHA-1 thumbprint as upper-case hex."""
        return self.certificate.fingerprint(hashes.SHA1()).hex().upper()

    @property
    def has_private_key(self) -> bool:
        return self.private_key is not None

    def ssl_context(self) -> ssl.SSLContext:
        """
        Client TLS context presenting this certificate, TLS 1.2 or later.

        Built once per certificate. ``ssl`` can only load a certificate chain
        from files, so the PEM material is written to a private temporary
        directory which is removed straight after loading.
        """
        if self._ssl_context is not None:
            return self._ssl_context

        with self._ssl_lock:
            if self._ssl_context is None:
                self._ssl_context = self._build_ssl_context()
            return self._ssl_context

    def _build_ssl_context(self) -> ssl.SSLContext:
        if self.private_key is None:
            raise ConfigurationError(
                "The Apple Pay merchant certificate does not contain a private key.",
                details={"thumbprint": self.thumbprint},
            )

        context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
        context.minimum_version = ssl.TLSVersion.TLSv1_2

        chain = self.certificate.public_bytes(serialization.Encoding.PEM) + b"".join(
            cert.public_bytes(serialization.Encoding.PEM)
            for cert in self.additional_certificates
        )
        # The key only touches disk encrypted under a one-off password.
        key_password = secrets.token_urlsafe(32).encode("ascii")
        key = self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.BestAvailableEncryption(key_password),
        )

        with tempfile.TemporaryDirectory(prefix="applepay-") as tmp:
            cert_path = os.path.join(tmp, "merchant.crt")
            key_path = os.path.join(tmp, "merchant.key")
            with open(cert_path, "wb") as f:
                f.write(chain)
            with open(key_path, "wb") as f:
                f.write(key)
            context.load_cert_chain(certfile=cert_path, keyfile=key_path, password=key_password)

        return context

    def __repr__(self) -> str:
        return f"<MerchantIdentityCertificate {self.thumbprint}>"


@dataclass(frozen=True)
class CertificateResult:
    """Either a loaded certificate or the configuration error that prevented it."""

    certificate: Optional[MerchantIdentityCertificate] = None
    error: Optional[ConfigurationError] = None

    @property
    def ok(self) -> bool:
        return self.certificate is not None


# ══════════════════════════════════════════════════════════════════════
# Pure helper functions
# ══════════════════════════════════════════════════════════════════════


def get_merchant_identifier(certificate: MerchantIdentityCertificate) -> str:
    """
    Read the merchant identifier from the Apple vendor extension.

    The extension value is ASN.1 encoded; dropping the two-byte tag and
    length header leaves the identifier. Returns '' when it is absent.
    """
    try:
        extension = certificate.certificate.extensions.get_extension_for_oid(
            MERCHANT_IDENTIFIER_OID
        )
    except x509.ExtensionNotFound:
        return ""

    raw = getattr(extension.value, "value", b"")
    # Non-ASCII bytes read as "?".
    return raw.decode("ascii", errors="replace").replace("\ufffd", "?")[2:]


def detect_content_type(data: bytes) -> str:
    """Classify raw certificate bytes as PKCS#12, PEM, DER X.509 or unknown."""
    if data.lstrip().startswith(b"-----BEGIN"):
        return CONTENT_TYPE_PEM

    # PFX ::= SEQUENCE { version INTEGER (3), authSafe ContentInfo, ... }
    if len(data) >= 2 and data[0] == 0x30:
        length_byte = data[1]
        header = 2 if length_byte < 0x80 else 2 + (length_byte & 0x7F)
        if data[header:header + 3] == b"\x02\x01\x03":
            return CONTENT_TYPE_PKCS12

    try:
        x509.load_der_x509_certificate(data)
    except ValueError:
        return CONTENT_TYPE_UNKNOWN
    return CONTENT_TYPE_X509


def _password_candidates(password: Optional[str]) -> List[Optional[bytes]]:
    if password:
        return [password.encode("utf-8")]
    # An unset password may mean "no password" or "empty password".
    return [None, b""]


def load_pkcs12(data: bytes, password: Optional[str]) -> MerchantIdentityCertificate:
    """Parse PKCS#12 bytes. Raises ``ValueError`` on a bad password or file."""
    error: Optional[ValueError] = None
    for candidate in _password_candidates(password):
        try:
            key, cert, additional = pkcs12.load_key_and_certificates(data, candidate)
        except ValueError as e:
            error = e
            continue
        if cert is None:
            raise ValueError("PKCS#12 data does not contain a certificate")
        return MerchantIdentityCertificate(cert, key, additional)
    raise error


def normalize_thumbprint(thumbprint: Optional[str]) -> str:
    return "".join((thumbprint or "").split()).replace(":", "").upper()


def resolve_store_directory(source: StoreCertificateSource) -> Path:
    """Directory backing a certificate store on this host."""
    if source.store_path:
        return Path(source.store_path).expanduser()

    store = source.store_name.lower()
    if source.store_location == "LocalMachine":
        return SYSTEM_STORE_ROOT / store

    data_home = os.environ.get("XDG_DATA_HOME") or os.path.join(
        os.path.expanduser("~"), ".local", "share"
    )
    return Path(data_home) / "applepay" / "certificates" / store


# ══════════════════════════════════════════════════════════════════════
# Loaders
# ══════════════════════════════════════════════════════════════════════


def _load_from_base64(source: InlineCertificateSource) -> MerchantIdentityCertificate:
    try:
        raw = base64.b64decode(source.encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConfigurationError(
            "The encoded Apple Pay merchant certificate is not valid base64."
        ) from e

    content_type = detect_content_type(raw)
    if content_type != CONTENT_TYPE_PKCS12:
        raise UnsupportedFormat(content_type)

    try:
        return load_pkcs12(raw, source.password)
    except ValueError as e:
        raise ConfigurationError(
            "Failed to load the encoded Apple Pay merchant certificate."
        ) from e


def _load_from_store(source: StoreCertificateSource) -> MerchantIdentityCertificate:
    # Useful when the merchant certificate should not be published with the
    # application itself.
    wanted = normalize_thumbprint(source.thumbprint)
    directory = resolve_store_directory(source)

    if wanted and directory.is_dir():
        for path in sorted(directory.iterdir()):
            if not path.is_file() or path.suffix.lower() not in PKCS12_FILE_SUFFIXES:
                continue
            try:
                candidate = load_pkcs12(path.read_bytes(), source.password)
            except (OSError, ValueError) as e:
                logger.debug(f"[certificate] skipping unreadable store entry {path}: {e}")
                continue
            if candidate.thumbprint == wanted:
                logger.info(
                    f"[certificate] loaded merchant certificate {wanted} from store "
                    f"'{source.store_name}' ({source.store_location})"
                )
                return candidate
    elif not directory.is_dir():
        logger.debug(f"[certificate] certificate store directory {directory} does not exist")

    raise CertificateNotFound(
        thumbprint=source.thumbprint,
        store_name=source.store_name,
        store_location=source.store_location,
    )


def _load_from_disk(source: FileCertificateSource) -> MerchantIdentityCertificate:
    if not source.file_name.strip():
        raise ConfigurationError("No Apple Pay merchant certificate is configured.")

    try:
        data = Path(source.file_name).expanduser().read_bytes()
        certificate = load_pkcs12(data, source.password)
    except (OSError, ValueError) as e:
        raise CertificateLoadError(source.file_name) from e

    logger.info(f"[certificate] loaded merchant certificate from {source.file_name}")
    return certificate


def resolve_certificate(source: CertificateSource) -> MerchantIdentityCertificate:
    """Load the merchant certificate from ``source``; raises ConfigurationError."""
    if isinstance(source, InlineCertificateSource):
        return _load_from_base64(source)
    if isinstance(source, StoreCertificateSource):
        return _load_from_store(source)
    if isinstance(source, FileCertificateSource):
        return _load_from_disk(source)
    raise ConfigurationError(f"Unknown certificate source: {type(source).__name__}")


# ══════════════════════════════════════════════════════════════════════
# MerchantCertificateProvider
# ══════════════════════════════════════════════════════════════════════


class MerchantCertificateProvider:
    """
    Resolves the merchant certificate for the application.

    With caching enabled the first successful resolution is kept for the
    lifetime of the provider; concurrent first calls resolve only once.
    Failures are never cached so a fixed configuration is picked up on the
    next call.
    """

    def __init__(self, settings: Settings) -> None:
        self.source = select_certificate_source(settings)
        self.cache_enabled = settings.APPLEPAY_CACHE_CERTIFICATE
        self._certificate: Optional[MerchantIdentityCertificate] = None
        self._lock = threading.Lock()

    def get_certificate(self) -> MerchantIdentityCertificate:
        if not self.cache_enabled:
            return resolve_certificate(self.source)

        certificate = self._certificate
        if certificate is not None:
            return certificate

        with self._lock:
            if self._certificate is None:
                self._certificate = resolve_certificate(self.source)
            return self._certificate

    def try_get_certificate(self) -> CertificateResult:
        try:
            return CertificateResult(certificate=self.get_certificate())
        except ConfigurationError as e:
            logger.warning(f"[certificate] merchant certificate unavailable: {e.message}")
            return CertificateResult(error=e)

    def get_merchant_identifier(self) -> str:
        """Merchant identifier, or '' when the certificate cannot be loaded."""
        result = self.try_get_certificate()
        if not result.ok:
            return ""
        return get_merchant_identifier(result.certificate)

# certrotate/parser.py
"""
Certificate parsing capability: modulus extraction, expiry extraction and
PEM transcoding, backed by ``cryptography``.

The rotation engine only talks to the ``CertificateParser`` protocol so it can
be exercised against fakes.
"""
from __future__ import annotations

import base64
import binascii
import datetime as dt
import re
from typing import Optional, Protocol

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    load_der_private_key,
    load_pem_private_key,
)

from .common import utc
from .errors import ConversionError, UnsupportedKeyType, ValidationError

_PEM_BLOCK_RE = re.compile(
    rb"-----BEGIN ([A-Z0-9 ]+)-----(.*?)-----END \1-----",
    re.DOTALL,
)
_CERT_LABELS = (b"CERTIFICATE", b"X509 CERTIFICATE", b"TRUSTED CERTIFICATE")
_KEY_LABELS = (b"PRIVATE KEY", b"RSA PRIVATE KEY")


class CertificateParser(Protocol):
    def certificate_modulus(self, data: bytes) -> str: ...

    def key_modulus(self, data: bytes) -> str: ...

    def not_after(self, data: bytes) -> dt.datetime: ...

    def certificate_to_pem(self, data: bytes) -> bytes: ...

    def key_to_pem(self, data: bytes) -> bytes: ...


def _pem_to_der(data: bytes, labels: tuple[bytes, ...]) -> Optional[bytes]:
    """
    Decode the first PEM block carrying one of ``labels``.

    The body is stripped of all whitespace before decoding, so line wrapping,
    CRLF endings and indentation do not matter. Blocks with RFC 1421 headers
    (``Proc-Type: ...``, i.e. encrypted legacy keys) are left to the PEM loader.
    """
    for m in _PEM_BLOCK_RE.finditer(data):
        if m.group(1) not in labels:
            continue
        body = m.group(2)
        if b":" in body:
            return None
        try:
            return base64.b64decode(b"".join(body.split()), validate=True)
        except (binascii.Error, ValueError):
            return None
    return None


def load_certificate(data: bytes) -> x509.Certificate:
    if not data or not data.strip():
        raise ValidationError("certificate is empty")
    der = _pem_to_der(data, _CERT_LABELS)
    try:
        return x509.load_der_x509_certificate(der if der is not None else data)
    except ValueError as e:
        raise ValidationError("certificate could not be parsed as PEM or DER X.509") from e


def load_private_key(data: bytes):
    if not data or not data.strip():
        raise ValidationError("private key is empty")
    der = _pem_to_der(data, _KEY_LABELS)
    try:
        if der is not None:
            return load_der_private_key(der, password=None)
        if b"-----BEGIN " in data:
            return load_pem_private_key(data, password=None)
        return load_der_private_key(data, password=None)
    except TypeError as e:
        # cryptography raises TypeError when the key is password protected
        raise ValidationError("private key is encrypted") from e
    except (ValueError, UnsupportedAlgorithm) as e:
        raise ValidationError(f"private key could not be parsed: {e}") from e


def _modulus_text(n: int) -> str:
    # Same canonical form as `openssl x509 -noout -modulus`: upper-case hex.
    return f"Modulus={n:X}"


class CryptographyParser:
    """``CertificateParser`` implementation on top of pyca/cryptography."""

    def certificate_modulus(self, data: bytes) -> str:
        pub = load_certificate(data).public_key()
        if not isinstance(pub, rsa.RSAPublicKey):
            raise UnsupportedKeyType(f"certificate public key is {pub.__class__.__name__}, not RSA")
        return _modulus_text(pub.public_numbers().n)

    def key_modulus(self, data: bytes) -> str:
        key = load_private_key(data)
        if not isinstance(key, rsa.RSAPrivateKey):
            raise UnsupportedKeyType(f"private key is {key.__class__.__name__}, not RSA")
        return _modulus_text(key.public_key().public_numbers().n)

    def not_after(self, data: bytes) -> dt.datetime:
        cert = load_certificate(data)
        # cryptography>=42 exposes the *_utc properties
        if hasattr(cert, "not_valid_after_utc"):
            return cert.not_valid_after_utc  # type: ignore[attr-defined]
        return utc(cert.not_valid_after)

    def certificate_to_pem(self, data: bytes) -> bytes:
        try:
            return load_certificate(data).public_bytes(Encoding.PEM)
        except ValidationError as e:
            raise ConversionError(str(e)) from e

    def key_to_pem(self, data: bytes) -> bytes:
        try:
            key = load_private_key(data)
        except ValidationError as e:
            raise ConversionError(str(e)) from e
        return key.private_bytes(Encoding.PEM, PrivateFormat.TraditionalOpenSSL, NoEncryption())

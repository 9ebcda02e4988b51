# certrotate/pairing.py
from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Optional

from .errors import ValidationError
from .parser import CertificateParser, CryptographyParser

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FingerprintPair:
    certificate_digest: str
    key_digest: str

    @property
    def matches(self) -> bool:
        return hmac.compare_digest(self.certificate_digest, self.key_digest)


def _digest(modulus_text: str) -> str:
    return hashlib.sha256(modulus_text.encode("ascii")).hexdigest()


def fingerprints(
    certificate: bytes,
    key: bytes,
    parser: Optional[CertificateParser] = None,
) -> FingerprintPair:
    if not certificate:
        raise ValidationError("certificate is empty")
    if not key:
        raise ValidationError("private key is empty")
    parser = parser or CryptographyParser()
    return FingerprintPair(
        certificate_digest=_digest(parser.certificate_modulus(certificate)),
        key_digest=_digest(parser.key_modulus(key)),
    )


def matches(certificate: bytes, key: bytes, parser: Optional[CertificateParser] = None) -> bool:
    """
    True iff the certificate's RSA public modulus equals the private key's.

    Raises ``ValidationError`` for empty or unparsable input and
    ``UnsupportedKeyType`` for non-RSA material.
    """
    pair = fingerprints(certificate, key, parser)
    log.debug("modulus digests cert=%s key=%s", pair.certificate_digest[:16], pair.key_digest[:16])
    return pair.matches

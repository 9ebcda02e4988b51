# certrotate/normalize.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .errors import ConversionError
from .parser import CertificateParser, CryptographyParser

log = logging.getLogger(__name__)

CERTIFICATE = "certificate"
KEY = "key"

_STAGED_NAMES = {CERTIFICATE: "cert", KEY: "key"}


def normalize(
    path: Path,
    target_encoding: str,
    staging_dir: Path,
    kind: str = CERTIFICATE,
    parser: Optional[CertificateParser] = None,
) -> Path:
    """
    Return ``path`` if its extension already is ``target_encoding`` (e.g. ``.pem``),
    otherwise transcode it into ``staging_dir/cert.pem`` or ``staging_dir/key.pem``,
    overwriting any previously staged file.
    """
    path = Path(path)
    target = target_encoding if target_encoding.startswith(".") else f".{target_encoding}"
    if path.suffix.lower() == target.lower():
        return path
    if kind not in _STAGED_NAMES:
        raise ValueError(f"unknown material kind: {kind}")

    parser = parser or CryptographyParser()
    try:
        data = path.read_bytes()
    except OSError as e:
        raise ConversionError(f"cannot read {path}: {e}") from e
    out = parser.certificate_to_pem(data) if kind == CERTIFICATE else parser.key_to_pem(data)

    staged = Path(staging_dir) / f"{_STAGED_NAMES[kind]}{target}"
    try:
        staged.parent.mkdir(parents=True, exist_ok=True)
        staged.write_bytes(out)
    except OSError as e:
        raise ConversionError(f"cannot stage {staged}: {e}") from e
    log.info("Converted %s to %s format at %s", path, target.lstrip(".").upper(), staged)
    return staged

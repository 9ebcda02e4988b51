# certrotate/sources.py
"""
Sourcing of replacement certificate/key material.

Two modes are supported:

- ``local``: pick a certificate (and its key) among the files of a directory,
  by 1-based index, defaulting to the first entry.
- ``remote``: download the certificate (and, for split-key services, the key)
  from ``https://{server}/api/v1.0/certificates/{name}`` with a bearer token.
"""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union
from urllib.parse import quote

import requests

from .errors import FetchError, SelectionError, SourceNotFoundError
from .services import ServiceConfig

log = logging.getLogger(__name__)

API_PREFIX = "/api/v1.0/certificates"
DEFAULT_REMOTE_PATH = "/etc/certificates"
MIN_TOKEN_LENGTH = 20

_CERT_NAME_RE = re.compile(r"[A-Za-z0-9._-]+")
_INDEX_RE = re.compile(r"\d+")

# (kind, candidates) -> raw operator answer; None or "" selects the first entry.
Chooser = Callable[[str, Sequence[Path]], Optional[str]]


class SourceMode(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


# ---------------------------
# Material
# ---------------------------

@dataclass(frozen=True)
class CertificateMaterial:
    cert_path: Path
    key_path: Path
    certificate: bytes
    key: bytes

    @classmethod
    def from_paths(cls, cert_path: Path, key_path: Path) -> "CertificateMaterial":
        cert_path, key_path = Path(cert_path), Path(key_path)
        try:
            return cls(cert_path, key_path, cert_path.read_bytes(), key_path.read_bytes())
        except FileNotFoundError as e:
            raise SourceNotFoundError(f"file not found: {e.filename}") from e
        except OSError as e:
            raise SourceNotFoundError(f"cannot read {e.filename}: {e.strerror}") from e


# ---------------------------
# Credentials and endpoint
# ---------------------------

def is_valid_token(token: Optional[str]) -> bool:
    return bool(token) and len(token) >= MIN_TOKEN_LENGTH


def is_valid_server_address(server: Optional[str]) -> bool:
    return bool(server and server.strip()) and not any(c.isspace() for c in server.strip())


def is_valid_certificate_name(name: Optional[str]) -> bool:
    return bool(name) and name not in (".", "..") and _CERT_NAME_RE.fullmatch(name) is not None


@dataclass(frozen=True)
class RemoteCredentials:
    server: str
    token: str
    certificate_name: str
    remote_base_path: str = DEFAULT_REMOTE_PATH

    def __post_init__(self) -> None:
        if not is_valid_server_address(self.server):
            raise ValueError("remote server address cannot be blank")
        if not is_valid_token(self.token):
            raise ValueError(f"API token must be at least {MIN_TOKEN_LENGTH} characters")
        if not is_valid_certificate_name(self.certificate_name):
            raise ValueError(f"invalid certificate name: {self.certificate_name!r}")

    def __repr__(self) -> str:
        return (
            f"RemoteCredentials(server={self.server!r}, token='***', "
            f"certificate_name={self.certificate_name!r}, remote_base_path={self.remote_base_path!r})"
        )

    @property
    def cert_file(self) -> str:
        return f"{self.remote_base_path.rstrip('/')}/{self.certificate_name}.crt"

    @property
    def key_file(self) -> str:
        return f"{self.remote_base_path.rstrip('/')}/{self.certificate_name}.key"


@dataclass(frozen=True)
class RemoteEndpoint:
    server: str
    certificate_name: str
    api_prefix: str = API_PREFIX

    def __post_init__(self) -> None:
        if not is_valid_certificate_name(self.certificate_name):
            raise ValueError(f"invalid certificate name: {self.certificate_name!r}")

    @property
    def base_url(self) -> str:
        server = self.server.strip().rstrip("/")
        if "://" in server:
            return server
        return f"https://{server}"

    @property
    def certificate_url(self) -> str:
        return f"{self.base_url}{self.api_prefix}/{quote(self.certificate_name, safe='')}"

    @property
    def key_url(self) -> str:
        return f"{self.certificate_url}/key"


class RemoteFetcher:
    """Bearer-authenticated GET client; anything but HTTP 200 is a ``FetchError``."""

    def __init__(
        self,
        token: str,
        timeout: float = 30,
        verify: bool = True,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout = timeout
        self.verify = verify
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {token}"})

    def _get(self, url: str) -> requests.Response:
        try:
            return self.session.get(url, timeout=self.timeout, verify=self.verify)
        except requests.exceptions.SSLError as e:
            raise FetchError(f"TLS verification failed for {url}") from e
        except requests.exceptions.Timeout as e:
            raise FetchError(f"request to {url} timed out after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise FetchError(f"request to {url} failed: {e}") from e

    def fetch(self, url: str) -> bytes:
        response = self._get(url)
        log.debug("GET %s -> %s", url, response.status_code)
        if response.status_code != 200:
            raise FetchError(
                f"GET {url} failed with HTTP status code {response.status_code}",
                status_code=response.status_code,
            )
        return response.content

    def status(self, url: str) -> int:
        return self._get(url).status_code


# ---------------------------
# Local selection
# ---------------------------

def parse_selection(raw: Union[str, int, None], count: int) -> int:
    """Turn a 1-based operator answer into a 0-based index; blank means the first entry."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raw = "1"
    text = str(raw).strip()
    if not _INDEX_RE.fullmatch(text):
        raise SelectionError(f"Invalid selection: {text!r}")
    index = int(text)
    if index < 1 or index > count:
        raise SelectionError(f"Invalid selection: {index} (expected 1..{count})")
    return index - 1


def list_candidates(directory: Path, extensions: Sequence[str]) -> List[Path]:
    """Files grouped by extension in the given order, each group sorted by name."""
    directory = Path(directory)
    if not directory.is_dir():
        return []
    rank = {e.lower(): i for i, e in enumerate(extensions)}
    found = [p for p in directory.iterdir() if p.is_file() and p.suffix.lower() in rank]
    return sorted(found, key=lambda p: (rank[p.suffix.lower()], p.name))


@dataclass(frozen=True)
class LocalSource:
    directory: Path
    cert_index: Optional[str] = None
    key_index: Optional[str] = None


@dataclass(frozen=True)
class RemoteSource:
    credentials: RemoteCredentials
    check_liveness: bool = True


FetcherFactory = Callable[[RemoteCredentials], RemoteFetcher]


class SourceResolver:
    def __init__(
        self,
        config: ServiceConfig,
        chooser: Optional[Chooser] = None,
        fetcher_factory: Optional[FetcherFactory] = None,
    ) -> None:
        self.config = config
        self.chooser = chooser
        self.fetcher_factory = fetcher_factory or (lambda creds: RemoteFetcher(creds.token))

    def resolve(self, mode: Union[SourceMode, str], context: Union[LocalSource, RemoteSource]) -> CertificateMaterial:
        mode = SourceMode(mode)
        if mode is SourceMode.LOCAL:
            if not isinstance(context, LocalSource):
                raise TypeError("local mode needs a LocalSource context")
            return self._resolve_local(context)
        if not isinstance(context, RemoteSource):
            raise TypeError("remote mode needs a RemoteSource context")
        return self._resolve_remote(context)

    def _select(self, kind: str, candidates: Sequence[Path], preset: Optional[str]) -> Path:
        raw = preset
        # A single candidate needs no question.
        if raw is None and self.chooser is not None and len(candidates) > 1:
            raw = self.chooser(kind, candidates)
        return candidates[parse_selection(raw, len(candidates))]

    def _resolve_local(self, ctx: LocalSource) -> CertificateMaterial:
        directory = Path(ctx.directory)
        exts = ", ".join(self.config.cert_extensions)
        certs = list_candidates(directory, self.config.cert_extensions)
        if not certs:
            raise SourceNotFoundError(f"No {exts} files found in {directory}")
        cert_path = self._select("certificate", certs, ctx.cert_index)
        log.info("Using selected certificate file: %s", cert_path)

        key_path = cert_path.with_suffix(self.config.key_extension)
        if not (self.config.pair_key_by_stem and key_path.is_file()):
            if self.config.pair_key_by_stem:
                log.warning("Corresponding %s file not found for %s", self.config.key_extension, cert_path)
            keys = list_candidates(cert_path.parent, (self.config.key_extension,))
            if not keys:
                raise SourceNotFoundError(f"No {self.config.key_extension} files found in {cert_path.parent}")
            key_path = self._select("key", keys, ctx.key_index)
            log.info("Using selected key file: %s", key_path)
        return CertificateMaterial.from_paths(cert_path, key_path)

    def _resolve_remote(self, ctx: RemoteSource) -> CertificateMaterial:
        creds = ctx.credentials
        endpoint = RemoteEndpoint(creds.server, creds.certificate_name)
        fetcher = self.fetcher_factory(creds)

        if self.config.remote_split_key:
            target_dir = Path(self.config.staging_dir)
        else:
            # Single-endpoint services expect the key alongside the remote path layout.
            target_dir = Path(creds.remote_base_path)
        cert_path = target_dir / f"{creds.certificate_name}.crt"
        key_path = target_dir / f"{creds.certificate_name}.key"

        certificate = fetcher.fetch(endpoint.certificate_url)
        _write(cert_path, certificate, 0o644)
        log.info("Certificate fetched and saved to %s", cert_path)

        if self.config.remote_split_key:
            _write(key_path, fetcher.fetch(endpoint.key_url), 0o600)
            log.info("Key fetched and saved to %s", key_path)

        if ctx.check_liveness:
            code = fetcher.status(endpoint.certificate_url)
            if code != 200:
                raise FetchError(f"Certificate connection test failed with HTTP status code {code}", status_code=code)
            log.info("Certificate connection test successful")

        return CertificateMaterial.from_paths(cert_path, key_path)


def _write(path: Path, data: bytes, mode: int) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        os.chmod(path, mode)
    except OSError as e:
        raise FetchError(f"cannot save fetched material to {path}: {e}") from e

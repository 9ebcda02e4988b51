# certrotate/services.py
"""
Per-service configuration: where the active pair lives, how urgent an expiry
is, how backups are named and how new material is sourced.

``cockpit_profile`` and ``portainer_profile`` build the two supported
profiles. A ``ServiceConfig`` is built once per run and never mutated.
"""
from __future__ import annotations

import datetime as dt
import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol, Tuple

from .common import local_date
from .errors import PreconditionError
from .expiry import COCKPIT_THRESHOLDS, PORTAINER_THRESHOLDS, ExpiryStatus, Thresholds
from .host import ContainerIntrospector, DockerIntrospector

COCKPIT_CERT_DIR = Path("/etc/cockpit/ws-certs.d")
PORTAINER_DATA_MOUNT = "/data"


@dataclass(frozen=True)
class InstalledPairLocation:
    cert_path: Path
    key_path: Path

    def both_exist(self) -> bool:
        return self.cert_path.is_file() and self.key_path.is_file()


class BackupNaming(Protocol):
    def names(
        self, location: InstalledPairLocation, status: ExpiryStatus, today: dt.date
    ) -> Tuple[Path, Path]: ...


@dataclass(frozen=True)
class HostDateBackup:
    """``{identity}_{YYYYMMDD}.crt.old`` / ``.key.old``, dated by the run day."""

    identity: str

    def names(self, location, status, today):
        stamp = f"{today:%Y%m%d}"
        parent = location.cert_path.parent
        return (
            parent / f"{self.identity}_{stamp}{location.cert_path.suffix}.old",
            location.key_path.parent / f"{self.identity}_{stamp}{location.key_path.suffix}.old",
        )


@dataclass(frozen=True)
class ExpiryDateBackup:
    """``cert_{YYYYMMDD}.bak`` / ``.bak.key``, dated by the replaced certificate's expiry (host-local day)."""

    prefix: str = "cert"

    def names(self, location, status, today):
        base = location.cert_path.parent / f"{self.prefix}_{local_date(status.expires_at):%Y%m%d}.bak"
        return base, base.with_name(base.name + ".key")


@dataclass(frozen=True)
class ServiceConfig:
    name: str
    identity: str
    location: InstalledPairLocation
    thresholds: Thresholds
    backup: BackupNaming
    cert_extensions: Tuple[str, ...] = (".crt",)
    key_extension: str = ".key"
    # Look for `<stem>.key` next to the chosen certificate before asking.
    pair_key_by_stem: bool = True
    # Target encoding extension for installed files; None keeps the source as-is.
    normalize_to: Optional[str] = None
    # Fetch the key from `/certificates/<name>/key` instead of expecting it locally.
    remote_split_key: bool = False
    install_mode: Optional[int] = None
    require_current_match: bool = True
    staging_dir: Path = field(default_factory=Path.home)


def cockpit_profile(
    hostname: Optional[str] = None,
    cert_dir: Path = COCKPIT_CERT_DIR,
    staging_dir: Optional[Path] = None,
) -> ServiceConfig:
    host = hostname or socket.gethostname()
    cert_dir = Path(cert_dir)
    return ServiceConfig(
        name="cockpit",
        identity="cockpit",
        location=InstalledPairLocation(cert_dir / f"{host}.crt", cert_dir / f"{host}.key"),
        thresholds=COCKPIT_THRESHOLDS,
        backup=HostDateBackup(identity=host),
        cert_extensions=(".crt",),
        pair_key_by_stem=True,
        staging_dir=Path(staging_dir) if staging_dir else Path.home(),
    )


def portainer_cert_dir(container: str, introspector: ContainerIntrospector) -> Path:
    source = introspector.mount_source(container, PORTAINER_DATA_MOUNT)
    if not source:
        raise PreconditionError(f"container {container} has no {PORTAINER_DATA_MOUNT} mount")
    return Path(source) / "certs"


def portainer_profile(
    container: str = "portainer",
    cert_dir: Optional[Path] = None,
    introspector: Optional[ContainerIntrospector] = None,
    staging_dir: Optional[Path] = None,
) -> ServiceConfig:
    if cert_dir is None:
        cert_dir = portainer_cert_dir(container, introspector or DockerIntrospector())
    cert_dir = Path(cert_dir)
    return ServiceConfig(
        name="portainer",
        identity=container,
        location=InstalledPairLocation(cert_dir / "cert.pem", cert_dir / "key.pem"),
        thresholds=PORTAINER_THRESHOLDS,
        backup=ExpiryDateBackup(),
        cert_extensions=(".crt", ".pem"),
        pair_key_by_stem=False,
        normalize_to=".pem",
        remote_split_key=True,
        install_mode=0o600,
        require_current_match=False,
        staging_dir=Path(staging_dir) if staging_dir else Path.home(),
    )

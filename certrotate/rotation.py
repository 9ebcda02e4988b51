# certrotate/rotation.py
"""
Certificate rotation for one service.

The run is a straight line of states; the first failure ends it and the
exception propagates unchanged. BACKUP always completes before INSTALL, so
the previous pair can be restored by hand from the backup files whatever
happens after that point.
"""
from __future__ import annotations

import datetime as dt
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from .common import local_date, now_utc
from .errors import InstallError, MismatchError, PreconditionError, RestartVerificationFailed
from .expiry import ExpiryStatus, UrgencyTier, classify
from .host import CompletionLog, ServiceManager
from .logging_conf import status
from .normalize import CERTIFICATE, KEY, normalize
from .pairing import matches
from .parser import CertificateParser, CryptographyParser
from .services import ServiceConfig
from .sources import CertificateMaterial, LocalSource, RemoteSource, SourceMode, SourceResolver

log = logging.getLogger(__name__)

SourceRequest = Tuple[Union[SourceMode, str], Union[LocalSource, RemoteSource]]

_TIER_STATUS = {
    UrgencyTier.SAFE: "ok",
    UrgencyTier.WARNING: "warning",
    UrgencyTier.CRITICAL: "critical",
}


class RotationState(str, Enum):
    VALIDATE_CURRENT = "VALIDATE_CURRENT"
    CLASSIFY = "CLASSIFY"
    RESOLVE_NEW = "RESOLVE_NEW"
    NORMALIZE = "NORMALIZE"
    VALIDATE_NEW = "VALIDATE_NEW"
    BACKUP = "BACKUP"
    INSTALL = "INSTALL"
    VERIFY_INSTALL = "VERIFY_INSTALL"
    RESTART_SERVICE = "RESTART_SERVICE"
    VERIFY_RESTART = "VERIFY_RESTART"
    DONE = "DONE"
    SKIPPED = "SKIPPED"


@dataclass
class RotationResult:
    service: str
    state: RotationState
    current: Optional[ExpiryStatus] = None
    new: Optional[ExpiryStatus] = None
    installed_from: Optional[Tuple[Path, Path]] = None
    backups: Optional[Tuple[Path, Path]] = None
    history: List[RotationState] = field(default_factory=list)


class RotationEngine:
    def __init__(
        self,
        resolver: SourceResolver,
        service_manager: ServiceManager,
        parser: Optional[CertificateParser] = None,
        confirm: Optional[Callable[[ExpiryStatus], bool]] = None,
        completion_log: Optional[CompletionLog] = None,
        clock: Callable[[], dt.datetime] = now_utc,
    ) -> None:
        self.resolver = resolver
        self.service_manager = service_manager
        self.parser = parser or CryptographyParser()
        self.confirm = confirm
        self.completion_log = completion_log
        self.clock = clock
        self.state: Optional[RotationState] = None
        self._history: List[RotationState] = []

    def _enter(self, state: RotationState) -> None:
        self.state = state
        self._history.append(state)
        log.debug("rotation state -> %s", state.value)

    def check(self, config: ServiceConfig) -> ExpiryStatus:
        """VALIDATE_CURRENT and CLASSIFY only; never touches the active path."""
        location = config.location
        self._enter(RotationState.VALIDATE_CURRENT)
        if not location.both_exist():
            raise PreconditionError(f"Certificate files not found in {location.cert_path.parent}")
        try:
            certificate = location.cert_path.read_bytes()
            key = location.key_path.read_bytes() if config.require_current_match else None
        except OSError as e:
            raise PreconditionError(f"Cannot read current certificate files: {e}") from e
        if key is not None:
            if not matches(certificate, key, self.parser):
                raise MismatchError("Certificate and key do not match.")
            status(log, "ok", "Current certificate and key match.")

        self._enter(RotationState.CLASSIFY)
        current = classify(certificate, config.thresholds, now=self.clock(), parser=self.parser)
        status(
            log,
            _TIER_STATUS[current.tier],
            "Certificate expires in %d days (%s). Expiry date: %s",
            current.days_remaining,
            current.tier.value,
            current.expires_at.strftime("%b %d %H:%M:%S %Y %Z"),
        )
        return current

    def rotate(
        self,
        config: ServiceConfig,
        source: Union[SourceRequest, Callable[[], SourceRequest]],
    ) -> RotationResult:
        """
        Run the whole workflow for ``config``.

        ``source`` is either a ``(mode, context)`` pair or a callable returning
        one; the callable is only invoked once the operator has confirmed the
        update, so interactive sourcing questions come after the expiry report.
        """
        self._history = []
        result = RotationResult(service=config.name, state=RotationState.VALIDATE_CURRENT, history=self._history)
        location = config.location

        result.current = current = self.check(config)
        if self.confirm is not None and not self.confirm(current):
            self._enter(RotationState.SKIPPED)
            result.state = RotationState.SKIPPED
            status(log, "info", "No updates made to certificates.")
            return result

        self._enter(RotationState.RESOLVE_NEW)
        mode, context = source() if callable(source) else source
        material = self.resolver.resolve(mode, context)

        if config.normalize_to:
            self._enter(RotationState.NORMALIZE)
            material = CertificateMaterial.from_paths(
                normalize(material.cert_path, config.normalize_to, config.staging_dir, CERTIFICATE, self.parser),
                normalize(material.key_path, config.normalize_to, config.staging_dir, KEY, self.parser),
            )

        self._enter(RotationState.VALIDATE_NEW)
        if not matches(material.certificate, material.key, self.parser):
            raise MismatchError("New certificate and key do not match.")
        result.new = classify(material.certificate, config.thresholds, now=self.clock(), parser=self.parser)
        status(log, "ok", "New certificate and key match (valid for %d days).", result.new.days_remaining)

        self._enter(RotationState.BACKUP)
        backup_cert, backup_key = config.backup.names(location, current, local_date(self.clock()))
        try:
            os.replace(location.cert_path, backup_cert)
            os.replace(location.key_path, backup_key)
        except OSError as e:
            raise InstallError(f"Failed to back up current certificate: {e}") from e
        result.backups = (backup_cert, backup_key)
        status(log, "ok", "Old certificate backed up as %s and %s", backup_cert.name, backup_key.name)

        self._enter(RotationState.INSTALL)
        # Install the validated bytes; the source files may have been moved by BACKUP.
        try:
            location.cert_path.write_bytes(material.certificate)
            location.key_path.write_bytes(material.key)
            if config.install_mode is not None:
                os.chmod(location.cert_path, config.install_mode)
                os.chmod(location.key_path, config.install_mode)
        except OSError as e:
            raise InstallError(f"Failed to copy new certificates: {e}") from e
        result.installed_from = (material.cert_path, material.key_path)

        self._enter(RotationState.VERIFY_INSTALL)
        if not location.both_exist():
            raise InstallError("Failed to copy new certificates.")
        status(log, "ok", "New certificate and keypair copied.")

        self._enter(RotationState.RESTART_SERVICE)
        self.service_manager.restart(config.identity)

        self._enter(RotationState.VERIFY_RESTART)
        if not self.service_manager.is_active(config.identity):
            raise RestartVerificationFailed(f"Failed to restart {config.name} service.")
        status(log, "ok", "%s service restarted successfully.", config.name.capitalize())

        self._enter(RotationState.DONE)
        result.state = RotationState.DONE
        if self.completion_log is not None:
            try:
                self.completion_log.record(self.clock(), f"{config.name.capitalize()} certificates updated")
            except OSError as e:
                log.warning("Could not write completion log: %s", e)
        status(log, "ok", "Certificate update process completed successfully.")
        return result

# certrotate/host.py
"""Host-side collaborators: service managers, container introspection, completion log."""
from __future__ import annotations

import datetime as dt
import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Callable, List, Optional, Protocol

from .common import local_date
from .errors import PreconditionError, RestartVerificationFailed

log = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


class ServiceManager(Protocol):
    def restart(self, identity: str) -> None: ...

    def is_active(self, identity: str) -> bool: ...


class ContainerIntrospector(Protocol):
    def mount_source(self, container: str, destination: str) -> Optional[str]: ...


def _run(runner: Runner, cmd: List[str], check: bool = True) -> subprocess.CompletedProcess:
    log.debug("running %s", " ".join(cmd))
    return runner(cmd, check=check, capture_output=True, text=True)


class SystemdServiceManager:
    def __init__(self, runner: Runner = subprocess.run) -> None:
        self._run = runner

    def restart(self, identity: str) -> None:
        try:
            _run(self._run, ["systemctl", "restart", identity])
        except (subprocess.CalledProcessError, OSError) as e:
            raise RestartVerificationFailed(f"systemctl restart {identity} failed: {e}") from e

    def is_active(self, identity: str) -> bool:
        try:
            result = _run(self._run, ["systemctl", "is-active", "--quiet", identity], check=False)
        except OSError:
            return False
        return result.returncode == 0

    def is_installed(self, identity: str) -> bool:
        try:
            result = _run(self._run, ["dpkg", "-s", identity], check=False)
        except OSError:
            return False
        return result.returncode == 0


class DockerServiceManager:
    def __init__(self, runner: Runner = subprocess.run) -> None:
        self._run = runner

    def restart(self, identity: str) -> None:
        try:
            _run(self._run, ["docker", "restart", identity])
        except (subprocess.CalledProcessError, OSError) as e:
            raise RestartVerificationFailed(f"docker restart {identity} failed: {e}") from e

    def is_active(self, identity: str) -> bool:
        try:
            result = _run(self._run, ["docker", "inspect", "-f", "{{.State.Running}}", identity], check=False)
        except OSError:
            return False
        return result.returncode == 0 and result.stdout.strip() == "true"


class DockerIntrospector:
    def __init__(self, runner: Runner = subprocess.run) -> None:
        self._run = runner

    @staticmethod
    def available() -> bool:
        return shutil.which("docker") is not None

    def container_names(self) -> List[str]:
        try:
            result = _run(self._run, ["docker", "ps", "-a", "--format", "{{.Names}}"])
        except (subprocess.CalledProcessError, OSError) as e:
            raise PreconditionError(f"cannot list docker containers: {e}") from e
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def has_container(self, name: str) -> bool:
        wanted = name.lower()
        return any(wanted in n.lower() for n in self.container_names())

    def mount_source(self, container: str, destination: str) -> Optional[str]:
        fmt = (
            "{{ range .Mounts }}{{ if eq .Destination \"%s\" }}{{ .Source }}{{ end }}{{ end }}"
            % destination
        )
        try:
            result = _run(self._run, ["docker", "inspect", "--format", fmt, container])
        except (subprocess.CalledProcessError, OSError) as e:
            raise PreconditionError(f"cannot inspect container {container}: {e}") from e
        return result.stdout.strip() or None


class CompletionLog:
    """Per-day completion log with a stable ``{service}_updater.log`` alias."""

    def __init__(self, log_dir: str | os.PathLike[str], service: str) -> None:
        self.log_dir = Path(log_dir)
        self.service = service

    def path_for(self, day: dt.date) -> Path:
        return self.log_dir / f"{self.service}_updater_{day:%Y%m%d}.log"

    @property
    def latest(self) -> Path:
        return self.log_dir / f"{self.service}_updater.log"

    def record(self, when: dt.datetime, message: str) -> Path:
        path = self.path_for(local_date(when))
        with path.open("a", encoding="utf-8") as fh:
            fh.write(f"{message} on {when.isoformat()}\n")
        if self.latest.is_symlink() or self.latest.exists():
            self.latest.unlink()
        self.latest.symlink_to(path)
        return path

# certrotate/secrets_store.py
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict

from dotenv import dotenv_values

log = logging.getLogger(__name__)


class SecretsStore:
    """Append-only ``KEY="value"`` file holding remote API credentials (mode 0600)."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    @classmethod
    def in_dir(cls, directory: str | os.PathLike[str]) -> "SecretsStore":
        return cls(Path(directory) / "secrets.env")

    def ensure(self) -> bool:
        """Create the file if absent. Returns True when it was created."""
        if self.path.exists():
            return False
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        os.close(fd)
        os.chmod(self.path, 0o600)
        log.warning("Secrets file not found, created %s", self.path)
        return True

    def load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        # Later lines win, so appended values override earlier ones.
        return {k: v for k, v in dotenv_values(self.path).items() if v is not None}

    def append(self, key: str, value: str) -> None:
        if "\n" in value or '"' in value:
            raise ValueError(f"value for {key} cannot contain quotes or newlines")
        self.ensure()
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(f'{key}="{value}"\n')

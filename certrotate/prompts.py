# certrotate/prompts.py
"""Interactive operator questions. All validation lives in ``sources``; this only loops."""
from __future__ import annotations

import getpass
import logging
from pathlib import Path
from typing import Callable, Optional, Sequence

from .expiry import ExpiryStatus
from .secrets_store import SecretsStore
from .sources import (
    DEFAULT_REMOTE_PATH,
    MIN_TOKEN_LENGTH,
    RemoteCredentials,
    is_valid_certificate_name,
    is_valid_server_address,
    is_valid_token,
)

log = logging.getLogger(__name__)

TRUENAS_NAME_HINT = (
    "The certificate name can be found under 'Certificates' in the TrueNAS UI, "
    "labeled as 'name: nameofcert'."
)


class Prompter:
    def __init__(
        self,
        input_fn: Callable[[str], str] = input,
        secret_fn: Callable[[str], str] = getpass.getpass,
        out: Callable[[str], None] = print,
    ) -> None:
        self._input = input_fn
        self._secret = secret_fn
        self._out = out

    def ask(self, question: str, default: Optional[str] = None) -> str:
        suffix = f" (default: {default})" if default else ""
        answer = self._input(f"{question}{suffix}: ").strip()
        return answer or (default or "")

    def yes_no(self, question: str) -> bool:
        return self._input(f"{question} (y/n): ").strip().lower() == "y"

    def confirm_update(self, current: ExpiryStatus) -> bool:
        return self.yes_no("Would you like to update the certificates?")

    def choose(self, kind: str, candidates: Sequence[Path]) -> str:
        self._out(f"Available {kind} files:")
        for i, path in enumerate(candidates, 1):
            self._out(f"{i}) {path}")
        return self._input(f"Select the number of the {kind} file to use (default is 1): ").strip()

    def _until_valid(self, question: str, valid: Callable[[Optional[str]], bool], warning: str, secret: bool = False) -> str:
        while True:
            value = (self._secret if secret else self._input)(f"{question}: ").strip()
            if valid(value):
                return value
            log.warning(warning)

    def credentials(
        self,
        store: SecretsStore,
        certificate_name: Optional[str] = None,
        remote_path: Optional[str] = None,
    ) -> RemoteCredentials:
        """Complete missing credentials from the operator, appending new values to ``store``."""
        store.ensure()
        known = store.load()

        server = known.get("REMOTE_SERVER")
        if not is_valid_server_address(server):
            server = self._until_valid(
                "Enter the remote server (e.g., truenas.local)",
                is_valid_server_address,
                "Remote server cannot be blank. Please enter a valid remote server.",
            )
            store.append("REMOTE_SERVER", server)

        token = known.get("API_TOKEN")
        if not is_valid_token(token):
            token = self._until_valid(
                f"Enter the API token (at least {MIN_TOKEN_LENGTH} characters)",
                is_valid_token,
                f"API token cannot be blank and must be at least {MIN_TOKEN_LENGTH} characters.",
                secret=True,
            )
            store.append("API_TOKEN", token)

        name = certificate_name
        if not is_valid_certificate_name(name):
            self._out(TRUENAS_NAME_HINT)
            name = self._until_valid(
                "Enter the certificate name",
                is_valid_certificate_name,
                "Certificate name cannot be blank and may only contain letters, digits, '.', '_' and '-'.",
            )

        if remote_path is None:
            remote_path = self.ask(
                "Enter the certificate path on the remote server",
                known.get("CERT_PATH") or DEFAULT_REMOTE_PATH,
            )
        creds = RemoteCredentials(server=server, token=token, certificate_name=name, remote_base_path=remote_path)
        store.append("CERT_NAME", name)
        store.append("CERT_PATH", creds.remote_base_path)
        store.append("CERT_FILE", creds.cert_file)
        store.append("KEY_FILE", creds.key_file)
        return creds

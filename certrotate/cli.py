# certrotate/cli.py
from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
from typing import Callable, List, Optional

from .errors import PreconditionError, RotationError
from .host import CompletionLog, DockerIntrospector, DockerServiceManager, ServiceManager, SystemdServiceManager
from .logging_conf import setup_logging, status
from .prompts import Prompter
from .rotation import RotationEngine, RotationState, SourceRequest
from .secrets_store import SecretsStore
from .services import ServiceConfig, cockpit_profile, portainer_profile
from .settings import Settings
from .sources import LocalSource, RemoteCredentials, RemoteFetcher, RemoteSource, SourceMode, SourceResolver

log = logging.getLogger("certrotate")

EXIT_OK = 0
EXIT_FAILURE = 1

HEADERS = {
    "cockpit": "Cockpit Certificate Updater",
    "portainer": "Portainer Certificate Updater",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="certrotate",
        description="Check and rotate the TLS certificate of a local management console.",
    )
    parser.add_argument("service", choices=sorted(HEADERS), help="Service whose certificate is rotated.")
    parser.add_argument("--source", choices=[m.value for m in SourceMode], help="Where new material comes from.")
    parser.add_argument("--source-dir", help="Directory holding the new certificate and key files.")
    parser.add_argument("--cert-index", help="1-based index of the certificate file to use.")
    parser.add_argument("--key-index", help="1-based index of the key file to use.")
    parser.add_argument("--secrets-dir", help="Directory of the secrets.env credential store.")
    parser.add_argument("--cert-name", help="Certificate name on the remote API.")
    parser.add_argument("--remote-path", help="Certificate path on the remote server.")
    parser.add_argument("--container", default="portainer", help="Portainer container name.")
    parser.add_argument("--cert-dir", help="Override the active certificate directory.")
    parser.add_argument("--yes", action="store_true", help="Update without asking for confirmation.")
    parser.add_argument("--check-only", action="store_true", help="Validate and classify, then exit.")
    parser.add_argument("--skip-liveness", action="store_true", help="Skip the remote connection test.")
    return parser


def _require_root() -> None:
    if hasattr(os, "geteuid") and os.geteuid() != 0:
        raise PreconditionError("This script must be run as root or with sudo.")


def build_config(args: argparse.Namespace, settings: Settings, introspector: Optional[DockerIntrospector] = None) -> ServiceConfig:
    staging = Path(settings.STAGING_DIR)
    cert_dir = Path(args.cert_dir) if args.cert_dir else None
    if args.service == "cockpit":
        if cert_dir is None:
            return cockpit_profile(staging_dir=staging)
        return cockpit_profile(cert_dir=cert_dir, staging_dir=staging)
    return portainer_profile(
        container=args.container,
        cert_dir=cert_dir,
        introspector=introspector,
        staging_dir=staging,
    )


def check_service_present(args: argparse.Namespace, introspector: DockerIntrospector) -> None:
    if args.service == "cockpit":
        if not SystemdServiceManager().is_installed("cockpit"):
            raise PreconditionError("Cockpit is required for this script to run.")
        status(log, "ok", "Cockpit is already installed.")
        return
    if not introspector.available():
        raise PreconditionError("Docker is required for this script to run.")
    if not introspector.has_container(args.container):
        raise PreconditionError(f"Docker container {args.container} not found.")
    status(log, "ok", "Portainer container %s found.", args.container)


def source_request(
    args: argparse.Namespace,
    settings: Settings,
    prompter: Prompter,
) -> Callable[[], SourceRequest]:
    def ask() -> SourceRequest:
        mode = args.source or prompter.ask(
            "Fetch the certificates from a remote server (TrueNAS) or use local files? (remote/local)",
            SourceMode.LOCAL.value,
        )
        mode = SourceMode(mode)
        if mode is SourceMode.REMOTE:
            secrets_dir = args.secrets_dir or prompter.ask(
                "Enter the directory where the secrets file is located", settings.STAGING_DIR
            )
            creds = prompter.credentials(SecretsStore.in_dir(secrets_dir), args.cert_name, args.remote_path)
            return mode, RemoteSource(creds, check_liveness=not args.skip_liveness)
        directory = args.source_dir or prompter.ask(
            "Enter the directory where the new certificate and key files are located", settings.STAGING_DIR
        )
        return mode, LocalSource(Path(directory), args.cert_index, args.key_index)

    return ask


def _fetcher_factory(settings: Settings) -> Callable[[RemoteCredentials], RemoteFetcher]:
    def make(creds: RemoteCredentials) -> RemoteFetcher:
        return RemoteFetcher(creds.token, timeout=settings.FETCH_TIMEOUT_SEC, verify=settings.VERIFY_TLS)

    return make


def run(
    args: argparse.Namespace,
    settings: Settings,
    prompter: Optional[Prompter] = None,
    service_manager: Optional[ServiceManager] = None,
    config: Optional[ServiceConfig] = None,
) -> int:
    prompter = prompter or Prompter()
    if config is None:
        _require_root()
        introspector = DockerIntrospector()
        check_service_present(args, introspector)
        config = build_config(args, settings, introspector)
    if service_manager is None:
        service_manager = SystemdServiceManager() if args.service == "cockpit" else DockerServiceManager()

    resolver = SourceResolver(config, chooser=prompter.choose, fetcher_factory=_fetcher_factory(settings))
    engine = RotationEngine(
        resolver,
        service_manager,
        confirm=None if args.yes else prompter.confirm_update,
        completion_log=CompletionLog(settings.LOG_DIR, config.name),
    )
    if args.check_only:
        engine.check(config)
        return EXIT_OK
    result = engine.rotate(config, source_request(args, settings, prompter))
    return EXIT_OK if result.state in (RotationState.DONE, RotationState.SKIPPED) else EXIT_FAILURE


def execute(args: argparse.Namespace, settings: Settings, **overrides) -> int:
    """Run and map every terminal error to exit code 1."""
    try:
        return run(args, settings, **overrides)
    except RotationError as e:
        status(log, "critical", "%s", e)
        return EXIT_FAILURE
    except ValueError as e:
        # invalid operator answers (unknown source mode, bad credentials)
        status(log, "critical", "%s", e)
        return EXIT_FAILURE
    except (KeyboardInterrupt, EOFError):
        status(log, "critical", "Aborted by operator.")
        return EXIT_FAILURE


def main(argv: Optional[List[str]] = None) -> int:
    try:
        args = build_parser().parse_args(argv)
    except SystemExit as e:
        # argparse exits 2 on usage errors and 0 for --help.
        return EXIT_FAILURE if e.code else EXIT_OK
    settings = Settings.from_env()
    setup_logging(settings)
    status(log, "info", "%s", HEADERS[args.service])
    return execute(args, settings)


if __name__ == "__main__":
    raise SystemExit(main())

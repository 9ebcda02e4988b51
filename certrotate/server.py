from pathlib import Path
from typing import Annotated, Literal, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from pydantic import Field

from .common import resolve_path
from .errors import RotationError
from .expiry import Thresholds, classify
from .mcp_contracts import ExpiryReport, PairReport, ServiceReport
from .pairing import fingerprints
from .services import ServiceConfig, cockpit_profile, portainer_profile

mcp = FastMCP(
    name="CertRotate",
    instructions=(
        "Purpose: inspect the TLS material of the local Cockpit and Portainer consoles.\n\n"
        "Use me when: you need to know whether a certificate and key pair up, how many days a "
        "certificate has left, or the state of a console's installed pair.\n"
        "Do NOT use me for: rotating certificates. Rotation is done by the `certrotate` command.\n\n"
        "Safety: read-only; private key material is never returned, only modulus digests."
    ),
)


def _read(path: str) -> tuple[Path, bytes]:
    p = resolve_path(path)
    try:
        return p, p.read_bytes()
    except OSError as e:
        raise ToolError(f"cannot read {p}: {e.strerror}") from e


@mcp.tool(description="Health check.", annotations={"readOnlyHint": True})
def ping() -> str:
    return "pong"


@mcp.tool(
    description="Check whether a certificate and an RSA private key form a matching pair.",
    tags={"certrotate", "x509", "pairing"},
    annotations={"title": "Check pair", "readOnlyHint": True, "idempotentHint": True, "openWorldHint": False},
)
def check_pair(
    cert_path: Annotated[str, Field(description="Local path to the certificate (PEM or DER).")],
    key_path: Annotated[str, Field(description="Local path to the private key (PEM or DER).")],
) -> dict:
    cp, cert = _read(cert_path)
    kp, key = _read(key_path)
    try:
        pair = fingerprints(cert, key)
    except RotationError as e:
        raise ToolError(str(e)) from e
    return PairReport(
        cert_path=str(cp),
        key_path=str(kp),
        matches=pair.matches,
        certificate_digest=pair.certificate_digest,
        key_digest=pair.key_digest,
    ).model_dump()


@mcp.tool(
    description="Days until a certificate expires and its urgency tier for the given thresholds.",
    tags={"certrotate", "x509", "expiry"},
    annotations={"title": "Expiry status", "readOnlyHint": True, "openWorldHint": False},
)
def expiry_status(
    cert_path: Annotated[str, Field(description="Local path to the certificate.")],
    safe_above: Annotated[int, Field(description="More days than this is SAFE.")] = 60,
    warning_above: Annotated[int, Field(description="More days than this is WARNING, otherwise CRITICAL.")] = 30,
) -> dict:
    _, cert = _read(cert_path)
    try:
        thresholds = Thresholds(safe_above=safe_above, warning_above=warning_above)
        return ExpiryReport(**classify(cert, thresholds).as_dict()).model_dump()
    except (RotationError, ValueError) as e:
        raise ToolError(str(e)) from e


def _service_config(service: str, cert_dir: Optional[str], container: str) -> ServiceConfig:
    directory = resolve_path(cert_dir) if cert_dir else None
    if service == "cockpit":
        return cockpit_profile(cert_dir=directory) if directory else cockpit_profile()
    return portainer_profile(container=container, cert_dir=directory)


@mcp.tool(
    description="Report the installed certificate/key pair of a console: presence, pairing and expiry tier.",
    tags={"certrotate", "service"},
    annotations={"title": "Service status", "readOnlyHint": True, "openWorldHint": False},
)
def service_status(
    service: Annotated[Literal["cockpit", "portainer"], Field(description="Console to inspect.")],
    cert_dir: Annotated[Optional[str], Field(description="Override of the active certificate directory.")] = None,
    container: Annotated[str, Field(description="Portainer container name.")] = "portainer",
) -> dict:
    try:
        config = _service_config(service, cert_dir, container)
        location = config.location
        report = ServiceReport(
            service=config.name,
            cert_path=str(location.cert_path),
            key_path=str(location.key_path),
            present=location.both_exist(),
        )
        if report.present:
            cert = location.cert_path.read_bytes()
            report.matches = fingerprints(cert, location.key_path.read_bytes()).matches
            report.expiry = ExpiryReport(**classify(cert, config.thresholds).as_dict())
    except RotationError as e:
        raise ToolError(str(e)) from e
    return report.model_dump()


if __name__ == "__main__":
    mcp.run()

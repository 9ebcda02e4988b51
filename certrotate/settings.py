import os
from dataclasses import dataclass, field

_TRUE = ("1", "true", "yes")


def _default_home() -> str:
    # Under sudo the operator's home holds the staged material, not root's.
    user = os.getenv("SUDO_USER")
    if user:
        return os.path.join("/home", user)
    return os.path.expanduser("~")


@dataclass(frozen=True)
class Settings:
    LOG_LEVEL: str = field(default="INFO")
    LOG_JSON: bool = field(default=False)
    LOG_DIR: str = field(default="/var/log")
    FETCH_TIMEOUT_SEC: int = field(default=30)
    STAGING_DIR: str = field(default_factory=_default_home)
    VERIFY_TLS: bool = field(default=True)

    @staticmethod
    def from_env() -> "Settings":
        log_level = os.getenv("CERTROTATE_LOG_LEVEL", "INFO").upper()
        try:
            timeout = int(os.getenv("CERTROTATE_FETCH_TIMEOUT_SEC", "30"))
            if timeout <= 0:
                raise ValueError
        except ValueError:
            timeout = 30
        return Settings(
            LOG_LEVEL=log_level,
            LOG_JSON=os.getenv("CERTROTATE_LOG_JSON", "false").lower() in _TRUE,
            LOG_DIR=os.getenv("CERTROTATE_LOG_DIR", "/var/log"),
            FETCH_TIMEOUT_SEC=timeout,
            STAGING_DIR=os.getenv("CERTROTATE_STAGING_DIR") or _default_home(),
            VERIFY_TLS=os.getenv("CERTROTATE_VERIFY_TLS", "true").lower() in _TRUE,
        )

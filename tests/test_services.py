import datetime as dt
from pathlib import Path

import pytest

from certrotate.errors import PreconditionError
from certrotate.expiry import ExpiryStatus, UrgencyTier
from certrotate.services import (
    ExpiryDateBackup,
    HostDateBackup,
    InstalledPairLocation,
    cockpit_profile,
    portainer_profile,
)
from _util import NZ_TZ, host_timezone

LOC = InstalledPairLocation(Path("/etc/cockpit/ws-certs.d/pi.crt"), Path("/etc/cockpit/ws-certs.d/pi.key"))
STATUS = ExpiryStatus(dt.datetime(2026, 11, 2, 8, 0, tzinfo=dt.timezone.utc), 13, UrgencyTier.CRITICAL)


def test_host_date_backup_names():
    cert, key = HostDateBackup("pi").names(LOC, STATUS, dt.date(2026, 10, 19))
    assert cert == Path("/etc/cockpit/ws-certs.d/pi_20261019.crt.old")
    assert key == Path("/etc/cockpit/ws-certs.d/pi_20261019.key.old")


def test_host_date_backup_differs_across_days():
    a = HostDateBackup("pi").names(LOC, STATUS, dt.date(2026, 10, 19))
    b = HostDateBackup("pi").names(LOC, STATUS, dt.date(2026, 10, 20))
    assert a == HostDateBackup("pi").names(LOC, STATUS, dt.date(2026, 10, 19))
    assert set(a).isdisjoint(b)


def test_expiry_date_backup_names():
    loc = InstalledPairLocation(Path("/data/certs/cert.pem"), Path("/data/certs/key.pem"))
    cert, key = ExpiryDateBackup().names(loc, STATUS, dt.date(2026, 10, 19))
    assert cert == Path("/data/certs/cert_20261102.bak")
    assert key == Path("/data/certs/cert_20261102.bak.key")


def test_expiry_date_backup_uses_host_local_day():
    loc = InstalledPairLocation(Path("/data/certs/cert.pem"), Path("/data/certs/key.pem"))
    late = ExpiryStatus(dt.datetime(2026, 11, 2, 20, 0, tzinfo=dt.timezone.utc), 13, UrgencyTier.CRITICAL)
    with host_timezone(NZ_TZ):
        cert, _ = ExpiryDateBackup().names(loc, late, dt.date(2026, 10, 19))
    assert cert.name == "cert_20261103.bak"


def test_cockpit_profile(tmp_path):
    config = cockpit_profile(hostname="pi", cert_dir=tmp_path)
    assert config.location.cert_path == tmp_path / "pi.crt"
    assert config.location.key_path == tmp_path / "pi.key"
    assert (config.thresholds.safe_above, config.thresholds.warning_above) == (60, 30)
    assert config.normalize_to is None and not config.remote_split_key


class FakeIntrospector:
    def __init__(self, source):
        self.source = source
        self.asked = []

    def mount_source(self, container, destination):
        self.asked.append((container, destination))
        return self.source


def test_portainer_profile_discovers_cert_dir():
    intro = FakeIntrospector("/var/lib/docker/volumes/portainer_data/_data")
    config = portainer_profile(container="portainer2", introspector=intro)
    assert intro.asked == [("portainer2", "/data")]
    assert config.location.cert_path == Path("/var/lib/docker/volumes/portainer_data/_data/certs/cert.pem")
    assert config.identity == "portainer2"
    assert config.install_mode == 0o600
    assert (config.thresholds.safe_above, config.thresholds.warning_above) == (31, 7)


def test_portainer_profile_without_data_mount():
    with pytest.raises(PreconditionError):
        portainer_profile(introspector=FakeIntrospector(None))

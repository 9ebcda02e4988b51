import pytest

from certrotate.errors import SelectionError, SourceNotFoundError
from certrotate.services import cockpit_profile, portainer_profile
from certrotate.sources import LocalSource, SourceResolver, parse_selection
from _util import key_pem, rsa_key, write_pair


@pytest.fixture
def cockpit(tmp_path):
    return cockpit_profile(hostname="pi", cert_dir=tmp_path / "active", staging_dir=tmp_path / "staging")


@pytest.fixture
def portainer(tmp_path):
    return portainer_profile(cert_dir=tmp_path / "certs", staging_dir=tmp_path / "staging")


def test_no_candidates(tmp_path, cockpit):
    (tmp_path / "new").mkdir()
    (tmp_path / "new" / "notes.txt").write_text("hello")
    with pytest.raises(SourceNotFoundError):
        SourceResolver(cockpit).resolve("local", LocalSource(tmp_path / "new"))


def test_missing_directory_is_not_found(tmp_path, cockpit):
    with pytest.raises(SourceNotFoundError):
        SourceResolver(cockpit).resolve("local", LocalSource(tmp_path / "nope"))


def test_single_candidate_default_without_asking(tmp_path, cockpit):
    cert, key = write_pair(tmp_path / "new", "console", rsa_key("a"), 90)

    def chooser(kind, candidates):
        raise AssertionError("should not ask with a single candidate")

    material = SourceResolver(cockpit, chooser=chooser).resolve("local", LocalSource(tmp_path / "new"))
    assert material.cert_path == cert
    assert material.key_path == key
    assert material.certificate == cert.read_bytes()


@pytest.mark.parametrize("index", ["0", "3", "-1", "abc"])
def test_out_of_range_selection(tmp_path, cockpit, index):
    write_pair(tmp_path / "new", "a", rsa_key("a"), 90)
    write_pair(tmp_path / "new", "b", rsa_key("b"), 90)
    with pytest.raises(SelectionError):
        SourceResolver(cockpit).resolve("local", LocalSource(tmp_path / "new", cert_index=index))


def test_listing_is_sorted_and_one_based(tmp_path, cockpit):
    write_pair(tmp_path / "new", "b", rsa_key("b"), 90)
    write_pair(tmp_path / "new", "a", rsa_key("a"), 90)
    seen = []

    def chooser(kind, candidates):
        seen.append((kind, [p.name for p in candidates]))
        return "2"

    material = SourceResolver(cockpit, chooser=chooser).resolve("local", LocalSource(tmp_path / "new"))
    assert seen == [("certificate", ["a.crt", "b.crt"])]
    assert material.cert_path.name == "b.crt"
    assert material.key_path.name == "b.key"


def test_blank_answer_selects_first(tmp_path, cockpit):
    write_pair(tmp_path / "new", "a", rsa_key("a"), 90)
    write_pair(tmp_path / "new", "b", rsa_key("b"), 90)
    material = SourceResolver(cockpit, chooser=lambda kind, c: "").resolve("local", LocalSource(tmp_path / "new"))
    assert material.cert_path.name == "a.crt"


def test_cockpit_falls_back_to_key_selection(tmp_path, cockpit):
    cert, key = write_pair(tmp_path / "new", "console", rsa_key("a"), 90)
    key.rename(tmp_path / "new" / "other.key")
    (tmp_path / "new" / "zz.key").write_bytes(key_pem(rsa_key("b")))

    material = SourceResolver(cockpit).resolve("local", LocalSource(tmp_path / "new", key_index="1"))
    assert material.key_path.name == "other.key"


def test_cockpit_no_key_files(tmp_path, cockpit):
    cert, key = write_pair(tmp_path / "new", "console", rsa_key("a"), 90)
    key.unlink()
    with pytest.raises(SourceNotFoundError):
        SourceResolver(cockpit).resolve("local", LocalSource(tmp_path / "new"))


def test_portainer_accepts_pem_and_always_selects_key(tmp_path, portainer):
    write_pair(tmp_path / "new", "console", rsa_key("a"), 90, cert_ext=".pem")
    (tmp_path / "new" / "aaa.key").write_bytes(key_pem(rsa_key("b")))
    asked = []

    def chooser(kind, candidates):
        asked.append(kind)
        return "2"

    material = SourceResolver(portainer, chooser=chooser).resolve("local", LocalSource(tmp_path / "new"))
    assert material.cert_path.name == "console.pem"
    assert asked == ["key"]
    assert material.key_path.name == "console.key"


def test_parse_selection():
    assert parse_selection(None, 3) == 0
    assert parse_selection(" 3 ", 3) == 2
    assert parse_selection(2, 3) == 1
    with pytest.raises(SelectionError):
        parse_selection("1.5", 3)


def test_portainer_lists_crt_before_pem(tmp_path, portainer):
    write_pair(tmp_path / "new", "b", rsa_key("a"), 90)
    write_pair(tmp_path / "new", "a", rsa_key("b"), 90, cert_ext=".pem")
    seen = []

    def chooser(kind, candidates):
        seen.append([p.name for p in candidates])
        return ""

    material = SourceResolver(portainer, chooser=chooser).resolve("local", LocalSource(tmp_path / "new"))
    assert seen[0] == ["b.crt", "a.pem"]
    assert material.cert_path.name == "b.crt"

import base64
import ipaddress
from pathlib import Path

import pytest

from wirewall.daemon.loader import load_clients, load_config
from wirewall.errors import (
    ConfigIOError,
    ConfigParseError,
    DuplicateClient,
    InvalidField,
    MissingField,
)


def _key(seed: int) -> str:
    return base64.b64encode(bytes([seed]) * 32).decode("ascii")


def _write(p: Path, content: str) -> Path:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content, encoding="utf-8")
    return p


def test_load_config_without_zone(tmp_path: Path) -> None:
    path = _write(tmp_path / "wirewall.conf", "interface = wg0\n")

    config = load_config(path)

    assert config.interface == "wg0"
    assert config.zone is None
    assert config.reverse_zone is None


def test_load_config_with_zones_comments_and_quotes(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "wirewall.conf",
        "# tunnel\ninterface = \"wg1\"\nzone = vpn.example. ; forward\nreverse_zone = 0.10.in-addr.arpa.\n",
    )

    config = load_config(path)

    assert config.interface == "wg1"
    assert config.zone == "vpn.example."
    assert config.reverse_zone == "0.10.in-addr.arpa."


def test_load_config_missing_interface(tmp_path: Path) -> None:
    path = _write(tmp_path / "wirewall.conf", "zone = vpn.example.\n")

    with pytest.raises(MissingField, match="missing interface") as info:
        load_config(path)
    assert info.value.path == path


@pytest.mark.parametrize(
    "body,field",
    [
        ("interface = wg0\nport = 51820\n", "port"),
        ("interface =\n", "interface"),
        ("interface = wg0\nzone =\n", "zone"),
        ("interface = wg0\nreverse_zone = 0.10.in-addr.arpa.\n", "reverse_zone"),
        ("interface = wg0\nzone = vpn.example.\n  update delete www.vpn.example. A\n", "zone"),
        ("interface = wg0\n  wg1\n", "interface"),
        ("interface = \"wg0 wg1\"\n", "interface"),
        ("interface = -wg0\n", "interface"),
        ("Interface = wg0\n", "Interface"),
    ],
)
def test_load_config_invalid_fields(tmp_path: Path, body: str, field: str) -> None:
    path = _write(tmp_path / "wirewall.conf", body)

    with pytest.raises(InvalidField) as info:
        load_config(path)
    assert info.value.field == field


@pytest.mark.parametrize(
    "body",
    [
        "interface wg0\n",
        "interface = wg0\ninterface = wg1\n",
        "interface = wg0\n[extra]\nkey = value\n",
    ],
)
def test_load_config_parse_errors(tmp_path: Path, body: str) -> None:
    path = _write(tmp_path / "wirewall.conf", body)

    with pytest.raises(ConfigParseError):
        load_config(path)


def test_load_config_unreadable(tmp_path: Path) -> None:
    with pytest.raises(ConfigIOError):
        load_config(tmp_path / "missing.conf")


def test_load_clients_skips_dirs_and_foreign_files_and_sorts(tmp_path: Path) -> None:
    clients_dir = tmp_path / "clients"
    _write(clients_dir / "zed.conf", f"ip = 10.0.0.9\npublic_key = {_key(9)}\n")
    _write(
        clients_dir / "alice.conf",
        f"ip = 10.0.0.2\npublic_key = {_key(2)}\npreshared_key = {_key(200)}\n",
    )
    _write(clients_dir / "README.md", "not a client\n")
    _write(clients_dir / "alice.conf.bak", "ip = garbage\n")
    (clients_dir / "nested.conf").mkdir()

    clients = load_clients(clients_dir)

    assert [c.name for c in clients] == ["alice", "zed"]
    alice = clients[0]
    assert alice.address == ipaddress.IPv4Address("10.0.0.2")
    assert alice.public_key == bytes([2]) * 32
    assert alice.preshared_key == bytes([200]) * 32
    assert clients[1].preshared_key is None


def test_load_clients_empty_directory(tmp_path: Path) -> None:
    (tmp_path / "clients").mkdir()

    assert load_clients(tmp_path / "clients") == ()


def test_load_clients_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(ConfigIOError):
        load_clients(tmp_path / "nope")


@pytest.mark.parametrize(
    "body,error,field",
    [
        (f"public_key = {_key(1)}\n", MissingField, "ip"),
        ("ip = 10.0.0.2\n", MissingField, "public_key"),
        (f"ip = 10.0.0.300\npublic_key = {_key(1)}\n", InvalidField, "ip"),
        (f"ip = fd00::2\npublic_key = {_key(1)}\n", InvalidField, "ip"),
        ("ip = 10.0.0.2\npublic_key = not-base64!\n", InvalidField, "public_key"),
        ("ip = 10.0.0.2\npublic_key = AAAA\n", InvalidField, "public_key"),
        (f"ip = 10.0.0.2\npublic_key = {_key(1)}\npreshared_key = short\n", InvalidField, "preshared_key"),
        (f"ip = 10.0.0.2\npublic_key = {_key(1)}\nname = bob\n", InvalidField, "name"),
        (f"IP = 10.0.0.2\npublic_key = {_key(1)}\n", InvalidField, "IP"),
        (f"ip = 10.0.0.2\n  10.0.0.4\npublic_key = {_key(1)}\n", InvalidField, "ip"),
    ],
)
def test_load_clients_rejects_whole_directory_on_bad_file(
    tmp_path: Path, body: str, error: type, field: str
) -> None:
    clients_dir = tmp_path / "clients"
    _write(clients_dir / "good.conf", f"ip = 10.0.0.3\npublic_key = {_key(3)}\n")
    bad = _write(clients_dir / "bad.conf", body)

    with pytest.raises(error) as info:
        load_clients(clients_dir)
    assert info.value.field == field
    assert info.value.path == bad
    assert "bad.conf" in str(info.value)


def test_load_clients_rejects_duplicate_address(tmp_path: Path) -> None:
    clients_dir = tmp_path / "clients"
    _write(clients_dir / "alice.conf", f"ip = 10.0.0.2\npublic_key = {_key(2)}\n")
    _write(clients_dir / "bob.conf", f"ip = 10.0.0.2\npublic_key = {_key(3)}\n")

    with pytest.raises(DuplicateClient) as info:
        load_clients(clients_dir)
    assert info.value.field == "ip"
    assert info.value.path.name == "bob.conf"
    assert info.value.other.name == "alice.conf"


def test_load_clients_rejects_duplicate_public_key(tmp_path: Path) -> None:
    clients_dir = tmp_path / "clients"
    _write(clients_dir / "alice.conf", f"ip = 10.0.0.2\npublic_key = {_key(2)}\n")
    _write(clients_dir / "bob.conf", f"ip = 10.0.0.3\npublic_key = {_key(2)}\n")

    with pytest.raises(DuplicateClient) as info:
        load_clients(clients_dir)
    assert info.value.field == "public_key"


def test_load_clients_rejects_names_differing_only_in_case(tmp_path: Path) -> None:
    clients_dir = tmp_path / "clients"
    _write(clients_dir / "Alice.conf", f"ip = 10.0.0.2\npublic_key = {_key(2)}\n")
    _write(clients_dir / "alice.conf", f"ip = 10.0.0.3\npublic_key = {_key(3)}\n")
    if len(list(clients_dir.iterdir())) < 2:
        pytest.skip("case-insensitive filesystem")

    with pytest.raises(DuplicateClient) as info:
        load_clients(clients_dir)
    assert info.value.field == "name"


@pytest.mark.parametrize(
    "filename",
    [
        "bob smith.conf",
        "evil.vpn.example. 60 A 6.6.6.6\nupdate delete www.vpn.example. A\nx.conf",
        "-bob.conf",
        "bob-.conf",
        "bob_smith.conf",
        "b.ob.conf",
        f"{'a' * 64}.conf",
    ],
)
def test_load_clients_rejects_names_that_are_not_host_labels(tmp_path: Path, filename: str) -> None:
    clients_dir = tmp_path / "clients"
    _write(clients_dir / "good.conf", f"ip = 10.0.0.3\npublic_key = {_key(3)}\n")
    bad = _write(clients_dir / filename, f"ip = 10.0.0.2\npublic_key = {_key(2)}\n")

    with pytest.raises(InvalidField) as info:
        load_clients(clients_dir)
    assert info.value.field == "name"
    assert info.value.path == bad


def test_load_clients_accepts_host_label_names(tmp_path: Path) -> None:
    clients_dir = tmp_path / "clients"
    _write(clients_dir / "Bob-2.conf", f"ip = 10.0.0.3\npublic_key = {_key(3)}\n")
    _write(clients_dir / f"{'a' * 63}.conf", f"ip = 10.0.0.4\npublic_key = {_key(4)}\n")
    _write(clients_dir / "7.conf", f"ip = 10.0.0.5\npublic_key = {_key(5)}\n")

    assert [c.name for c in load_clients(clients_dir)] == ["7", "Bob-2", "a" * 63]

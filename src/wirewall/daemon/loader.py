from __future__ import annotations

import configparser
import ipaddress
import logging
import re
from pathlib import Path

from wirewall.errors import (
    ConfigIOError,
    ConfigParseError,
    DuplicateClient,
    InvalidField,
    MissingField,
)
from wirewall.models import ClientRecord, TunnelConfig, decode_key, encode_key

logger = logging.getLogger("wirewall.daemon.loader")

CLIENT_FILE_SUFFIX = ".conf"

_ROOT_SECTION = "wirewall"
_CONFIG_KEYS = frozenset({"interface", "zone", "reverse_zone"})
_CLIENT_KEYS = frozenset({"ip", "public_key", "preshared_key"})

# A client name is used verbatim as the host label of its DNS record.
_HOST_LABEL = re.compile(r"[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?")
_INTERFACE_NAME = re.compile(r"[A-Za-z0-9][A-Za-z0-9_.-]{0,14}")


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigIOError(path, str(exc)) from exc


def _unquote(value: str) -> str:
    raw = value.strip()
    if len(raw) >= 2 and raw[0] == raw[-1] == '"':
        return raw[1:-1]
    return raw


def _parse_keys(path: Path, allowed: frozenset[str]) -> dict[str, str]:
    """
    Decode the flat `key = value` body of a wirewall file.

    The files carry no section header, so the body is parsed as one implicit
    section. Named sections, duplicate keys and unknown keys are rejected.
    """
    text = _read_text(path)
    parser = configparser.ConfigParser(
        interpolation=None,
        inline_comment_prefixes=("#", ";"),
        default_section="__defaults__",
    )
    # Keys are case-sensitive.
    parser.optionxform = str
    try:
        parser.read_string(f"[{_ROOT_SECTION}]\n{text}", source=str(path))
    except configparser.Error as exc:
        raise ConfigParseError(path, str(exc)) from exc

    extra_sections = [name for name in parser.sections() if name != _ROOT_SECTION]
    if extra_sections:
        raise ConfigParseError(path, f"unexpected section [{extra_sections[0]}]")

    values: dict[str, str] = {}
    for key, value in parser.items(_ROOT_SECTION):
        if key not in allowed:
            raise InvalidField(path, key, "unknown key")
        value = _unquote(value or "")
        # Values end up in nsupdate input and wg argv; continuation lines and
        # embedded blanks are never valid there.
        if any(ch.isspace() for ch in value):
            raise InvalidField(path, key, "must not contain whitespace")
        values[key] = value
    return values


def _required(path: Path, values: dict[str, str], key: str) -> str:
    if key not in values:
        raise MissingField(path, key)
    value = values[key]
    if not value:
        raise InvalidField(path, key, "must not be empty")
    return value


def _optional(path: Path, values: dict[str, str], key: str) -> str | None:
    if key not in values:
        return None
    value = values[key]
    if not value:
        raise InvalidField(path, key, "must not be empty")
    return value


def load_config(path: Path | str) -> TunnelConfig:
    path = Path(path)
    values = _parse_keys(path, _CONFIG_KEYS)

    interface = _required(path, values, "interface")
    if not _INTERFACE_NAME.fullmatch(interface):
        raise InvalidField(path, "interface", f"invalid interface name {interface!r}")
    zone = _optional(path, values, "zone")
    reverse_zone = _optional(path, values, "reverse_zone")
    if reverse_zone is not None and zone is None:
        raise InvalidField(path, "reverse_zone", "requires zone")

    return TunnelConfig(interface=interface, zone=zone, reverse_zone=reverse_zone)


def load_client(path: Path | str) -> ClientRecord:
    path = Path(path)
    name = path.name[: -len(CLIENT_FILE_SUFFIX)]
    if not _HOST_LABEL.fullmatch(name):
        raise InvalidField(path, "name", f"{name!r} is not a valid DNS host label")
    values = _parse_keys(path, _CLIENT_KEYS)

    ip_raw = _required(path, values, "ip")
    try:
        address = ipaddress.IPv4Address(ip_raw)
    except ValueError as exc:
        raise InvalidField(path, "ip", str(exc)) from exc

    try:
        public_key = decode_key(_required(path, values, "public_key"))
    except ValueError as exc:
        raise InvalidField(path, "public_key", str(exc)) from exc

    preshared_key: bytes | None = None
    psk_raw = _optional(path, values, "preshared_key")
    if psk_raw is not None:
        try:
            preshared_key = decode_key(psk_raw)
        except ValueError as exc:
            raise InvalidField(path, "preshared_key", str(exc)) from exc

    return ClientRecord(
        name=name,
        address=address,
        public_key=public_key,
        preshared_key=preshared_key,
    )


def _client_files(directory: Path) -> list[Path]:
    try:
        entries = list(directory.iterdir())
    except OSError as exc:
        raise ConfigIOError(directory, str(exc)) from exc

    files: list[Path] = []
    for entry in entries:
        if entry.is_dir():
            continue
        if not entry.name.endswith(CLIENT_FILE_SUFFIX) or entry.name == CLIENT_FILE_SUFFIX:
            continue
        files.append(entry)
    return files


def load_clients(directory: Path | str) -> tuple[ClientRecord, ...]:
    """
    Load every client definition in `directory`.

    All-or-nothing: the first invalid file aborts the whole load. The result is
    sorted by client name so that peer requests and DNS batches are reproducible.
    """
    directory = Path(directory)
    loaded: list[tuple[Path, ClientRecord]] = []
    for path in _client_files(directory):
        loaded.append((path, load_client(path)))
    loaded.sort(key=lambda item: item[1].name)

    by_name: dict[str, Path] = {}
    by_address: dict[str, Path] = {}
    by_key: dict[bytes, Path] = {}
    for path, client in loaded:
        # DNS labels are case-insensitive.
        name_key = client.name.lower()
        if name_key in by_name:
            raise DuplicateClient(path, "name", client.name, by_name[name_key])
        address_key = str(client.address)
        if address_key in by_address:
            raise DuplicateClient(path, "ip", address_key, by_address[address_key])
        if client.public_key in by_key:
            raise DuplicateClient(path, "public_key", encode_key(client.public_key), by_key[client.public_key])
        by_name[name_key] = path
        by_address[address_key] = path
        by_key[client.public_key] = path

    clients = tuple(client for _, client in loaded)
    logger.debug("clients_loaded dir=%s count=%s", directory, len(clients))
    return clients

"""Connection parameters and checksummed EVM addresses."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from urllib.parse import quote

from Crypto.Hash import keccak

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")
_STRING_FIELDS = ("password", "dbname", "engine", "host", "username")
_ADDRESS_LENGTH = 20


class AddressError(ValueError):
    """An EVM address could not be parsed or failed its checksum."""


@dataclass(frozen=True)
class DbConnectParams:
    """Database connection parameters as supplied in JSON form."""

    password: str
    dbname: str
    engine: str
    port: int
    host: str
    username: str

    def to_url(self) -> str:
        """Build a connection URL; ``DB_OPTIONS`` becomes the query string."""
        options = os.environ.get("DB_OPTIONS", "")
        encoded = quote(self.password, safe="")
        return (
            f"{self.engine}://{self.username}:{encoded}"
            f"@{self.host}:{self.port}/{self.dbname}?{options}"
        )


def parse_connect_params(text: str | bytes) -> DbConnectParams:
    """Parse a JSON object into :class:`DbConnectParams`.

    Unknown keys are ignored; missing or mistyped fields raise ``ValueError``.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid connection parameters: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError("connection parameters must be a JSON object")

    values: dict[str, str] = {}
    for name in _STRING_FIELDS:
        if name not in data:
            raise ValueError(f"missing field `{name}`")
        if not isinstance(data[name], str):
            raise ValueError(f"field `{name}` must be a string")
        values[name] = data[name]

    if "port" not in data:
        raise ValueError("missing field `port`")
    port = data["port"]
    if isinstance(port, bool) or not isinstance(port, int) or not 0 <= port <= 0xFFFF:
        raise ValueError("field `port` must be an integer between 0 and 65535")

    return DbConnectParams(port=port, **values)


def checksum_address(raw: bytes) -> str:
    """Return the mixed-case checksummed hex form of a 20-byte address."""
    raw = bytes(raw)
    if len(raw) != _ADDRESS_LENGTH:
        raise AddressError(f"address must be {_ADDRESS_LENGTH} bytes, got {len(raw)}")
    lower = raw.hex()
    digest = keccak.new(digest_bits=256, data=lower.encode("ascii")).hexdigest()
    return "0x" + "".join(
        char.upper() if char.isalpha() and int(nibble, 16) >= 8 else char
        for char, nibble in zip(lower, digest)
    )


@dataclass(frozen=True)
class AddressWrapper:
    """A 20-byte EVM address, stored and shown in checksummed form."""

    address: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.address, (bytes, bytearray)):
            raise AddressError("address must be given as bytes")
        if len(self.address) != _ADDRESS_LENGTH:
            raise AddressError(
                f"address must be {_ADDRESS_LENGTH} bytes, got {len(self.address)}"
            )
        object.__setattr__(self, "address", bytes(self.address))

    def to_checksum(self) -> str:
        """Return the checksummed hex string of this address."""
        return checksum_address(self.address)

    def __str__(self) -> str:
        return self.to_checksum()


def parse_checksummed_address(value: str) -> AddressWrapper:
    """Parse a ``0x``-prefixed address whose letter case must match its checksum."""
    if not value.startswith("0x"):
        raise AddressError("checksummed address must start with 0x")
    body = value[2:]
    if len(body) != 2 * _ADDRESS_LENGTH or not set(body) <= _HEX_DIGITS:
        raise AddressError(f"invalid hex address: {value!r}")
    wrapper = AddressWrapper(bytes.fromhex(body))
    if wrapper.to_checksum() != value:
        raise AddressError(f"invalid checksum for address {value!r}")
    return wrapper
"""
Trust store and CA keystore configuration.

Issuer key material is supplied by the embedding application, either as
in-memory mappings or as YAML/JSON files. Both collections are immutable once
built; the certificate engine only ever reads them.

Two entry layouts are accepted. The flat layout::

    RU Certificate Authority:
      spamContactAddress: spam@ca.ru.nl
      algorithmId: ecdsa
      curveName: secp256k1
      publicKeyHex: 049a55...

and the nested layout used by the original browser keystores::

    RU Certificate Authority:
      spam: spam@ca.ru.nl
      algorithm: ecdsa
      parameters:
        curve: secp256k1
        public-key: 049a55...
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any, Generic, TypeVar

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_ALGORITHM = "ecdsa"
DEFAULT_CURVE = "secp256k1"

# Legacy nested layout: top-level key -> flat field name
_LEGACY_KEYS = {"spam": "spam_contact_address", "algorithm": "algorithm_id"}
_LEGACY_PARAMETER_KEYS = {
    "curve": "curve_name",
    "public-key": "public_key_hex",
    "private-key": "private_key_hex",
}


def _flatten_legacy_entry(value: Any) -> Any:
    if not isinstance(value, Mapping):
        return value
    entry = {_LEGACY_KEYS.get(key, key): item for key, item in value.items() if key != "parameters"}
    parameters = value.get("parameters")
    if isinstance(parameters, Mapping):
        for key, item in parameters.items():
            entry.setdefault(_LEGACY_PARAMETER_KEYS.get(key, key), item)
    return entry


def _validate_hex(value: str) -> str:
    value = "".join(value.split()).lower()
    if not value:
        msg = "key material is required"
        raise ValueError(msg)
    try:
        bytes.fromhex(value)
    except ValueError as e:
        msg = "key material must be an even-length hex string"
        raise ValueError(msg) from e
    return value


class _IssuerEntry(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    algorithm_id: str = Field(default=DEFAULT_ALGORITHM, alias="algorithmId")
    curve_name: str = Field(default=DEFAULT_CURVE, alias="curveName")

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_layout(cls, value: Any) -> Any:
        return _flatten_legacy_entry(value)

    @field_validator("algorithm_id", "curve_name")
    @classmethod
    def _normalise_name(cls, value: str) -> str:
        value = (value or "").strip().lower()
        if not value:
            msg = "algorithm and curve names must not be empty"
            raise ValueError(msg)
        return value


class TrustedIssuer(_IssuerEntry):
    """Public key material of a trusted CA."""

    public_key_hex: str = Field(alias="publicKeyHex")
    spam_contact_address: str | None = Field(default=None, alias="spamContactAddress")

    @field_validator("public_key_hex")
    @classmethod
    def _validate_public_key(cls, value: str) -> str:
        return _validate_hex(value)


class CAKeyEntry(_IssuerEntry):
    """Private key material a CA uses to sign certificate records."""

    private_key_hex: str = Field(alias="privateKeyHex", repr=False)

    @field_validator("private_key_hex")
    @classmethod
    def _validate_private_key(cls, value: str) -> str:
        return _validate_hex(value)


EntryT = TypeVar("EntryT", bound=_IssuerEntry)


class _IssuerCollection(Mapping[str, EntryT], Generic[EntryT]):
    """Read-only mapping from issuer id to issuer key material."""

    entry_type: type[_IssuerEntry] = _IssuerEntry
    description = "issuer collection"

    def __init__(self, entries: Mapping[str, EntryT] | None = None) -> None:
        self._entries: Mapping[str, EntryT] = MappingProxyType(dict(entries or {}))

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]):
        """
        Build the collection from raw configuration data.

        Raises:
            ConfigurationError: If the data is not a mapping or an entry is invalid
        """
        if not isinstance(raw, Mapping):
            msg = f"{cls.description} must be a mapping of issuer id to key material"
            raise ConfigurationError(msg)

        entries = {}
        for issuer_id, value in raw.items():
            if isinstance(value, cls.entry_type):
                entries[str(issuer_id)] = value
                continue
            try:
                entries[str(issuer_id)] = cls.entry_type.model_validate(value)
            except ValidationError as e:
                msg = f"Invalid {cls.description} entry for issuer {issuer_id!r}: {e}"
                raise ConfigurationError(msg) from e
        return cls(entries)

    @classmethod
    def load(cls, path: str | Path):
        """Load the collection from a YAML or JSON file."""
        return cls.from_mapping(_read_config_file(Path(path), cls.description))

    def __getitem__(self, issuer_id: str) -> EntryT:
        return self._entries[issuer_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({sorted(self._entries)!r})"


class TrustStore(_IssuerCollection[TrustedIssuer]):
    """Trusted CA public keys used on the verification path."""

    entry_type = TrustedIssuer
    description = "trust store"


class CAKeystore(_IssuerCollection[CAKeyEntry]):
    """CA private keys used on the signing path."""

    entry_type = CAKeyEntry
    description = "CA keystore"


def _read_config_file(path: Path, description: str) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        msg = f"Cannot read {description} file {path}: {e}"
        raise ConfigurationError(msg) from e

    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        msg = f"Cannot parse {description} file {path}: {e}"
        raise ConfigurationError(msg) from e

    if isinstance(data, Mapping) and set(data) == {"issuers"}:
        data = data["issuers"]
    logger.info("Loaded %s from %s", description, path)
    return data if data is not None else {}


def load_trust_store(path: str | Path) -> TrustStore:
    """Load a trust store from a YAML or JSON file."""
    return TrustStore.load(path)


def load_ca_keystore(path: str | Path) -> CAKeystore:
    """Load a CA keystore from a YAML or JSON file."""
    return CAKeystore.load(path)

"""Query-string and form-field serialization rules for Quip requests."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from urllib.parse import urlencode


@dataclass(frozen=True)
class LocalBlob:
    """Blob content streamed from a local file path."""

    path: str


@dataclass(frozen=True)
class RemoteBlob:
    """Blob content streamed from a remote URL."""

    url: str


BlobSource = LocalBlob | RemoteBlob
FormValue = str | BlobSource


def build_form_fields(fields: Mapping[str, object]) -> dict[str, FormValue]:
    """Serialize POST fields, dropping every field whose value is falsy.

    None, empty strings, zero, False and empty sequences are never sent.
    `True` is sent as `1`, integers and enums as their decimal value, and
    string sequences are joined with commas.
    """

    encoded: dict[str, FormValue] = {}
    for name, value in fields.items():
        if not value:
            continue
        if isinstance(value, (LocalBlob, RemoteBlob)):
            encoded[name] = value
        elif isinstance(value, bool):
            encoded[name] = "1"
        elif isinstance(value, int):
            encoded[name] = str(int(value))
        elif isinstance(value, str):
            encoded[name] = value
        elif isinstance(value, Sequence):
            encoded[name] = join_ids(value)
        else:
            raise TypeError(f"unsupported form value for {name}: {type(value).__name__}")
    return encoded


def build_query(params: Mapping[str, object]) -> str:
    """Encode GET parameters, skipping `None` values."""

    pairs: list[tuple[str, str]] = []
    for name, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            pairs.append((name, "true" if value else "false"))
        elif isinstance(value, int):
            pairs.append((name, str(int(value))))
        elif isinstance(value, str):
            pairs.append((name, value))
        elif isinstance(value, Sequence):
            pairs.append((name, join_ids(value)))
        else:
            raise TypeError(f"unsupported query value for {name}: {type(value).__name__}")
    return urlencode(pairs)


def join_ids(values: Sequence[object]) -> str:
    return ",".join(str(value) for value in values)


def has_blob(fields: Mapping[str, FormValue]) -> bool:
    return any(isinstance(value, (LocalBlob, RemoteBlob)) for value in fields.values())

# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Minimal HTTP request model consumed by the signers.

Host environments adapt their own request objects into :class:`HTTPRequest` at the
boundary, sign, and copy the resulting ``Authorization`` and date fields back.
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import AsyncIterable, Iterable, Iterator
from copy import deepcopy
from dataclasses import dataclass
from urllib.parse import urlsplit

import http_sigv4.interfaces.http as interfaces_http

DEFAULT_PORTS: dict[str, int] = {"http": 80, "https": 443}


class Field(interfaces_http.Field):
    """A single header: an original-case name and an ordered list of values.

    Names compare case-insensitively inside :class:`Fields`; the case given here is
    kept as sent.
    """

    def __init__(
        self,
        *,
        name: str,
        values: Iterable[str] | None = None,
        kind: interfaces_http.FieldPosition = interfaces_http.FieldPosition.HEADER,
    ):
        self.name = name
        self.values: list[str] = list(values) if values is not None else []
        self.kind = kind

    def add(self, value: str) -> None:
        """Append a value to a field."""
        self.values.append(value)

    def set(self, values: list[str]) -> None:
        """Overwrite existing field values."""
        self.values = values

    def as_string(self, delimiter: str = ",") -> str:
        """Join the values as they would appear on a single header line."""
        return delimiter.join(self.values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Field):
            return False
        return (
            self.name == other.name
            and self.kind is other.kind
            and self.values == other.values
        )

    def __repr__(self) -> str:
        return f"Field(name={self.name!r}, values={self.values!r}, kind={self.kind!r})"


class Fields(interfaces_http.Fields):
    def __init__(self, initial: Iterable[interfaces_http.Field] | None = None):
        """Ordered header multimap keyed by lower-cased name.

        :param initial: Fields to start with. Names must be unique ignoring case.
        """
        self.entries: OrderedDict[str, interfaces_http.Field] = OrderedDict()
        for field in initial or ():
            key = self._normalize_field_name(field.name)
            if key in self.entries:
                raise ValueError(
                    f"Field {field.name!r} appears more than once in the initial "
                    "fields. Combine its values into a single Field."
                )
            self.entries[key] = field

    def set_field(self, field: interfaces_http.Field) -> None:
        """Add or replace the entry for ``field.name``."""
        self.__setitem__(field.name, field)

    def __setitem__(self, name: str, field: interfaces_http.Field) -> None:
        normalized_name = self._normalize_field_name(name)
        if normalized_name != self._normalize_field_name(field.name):
            raise ValueError(
                f"Supplied key {name} does not match Field.name "
                f"provided: {field.name}"
            )
        self.entries[normalized_name] = field

    def get(
        self, key: str, default: interfaces_http.Field | None = None
    ) -> interfaces_http.Field | None:
        return self.entries.get(self._normalize_field_name(key), default)

    def __getitem__(self, name: str) -> interfaces_http.Field:
        return self.entries[self._normalize_field_name(name)]

    def __delitem__(self, name: str) -> None:
        del self.entries[self._normalize_field_name(name)]

    def get_by_type(
        self, kind: interfaces_http.FieldPosition
    ) -> list[interfaces_http.Field]:
        """Fields at one position, for example every header but no trailers."""
        return [entry for entry in self.entries.values() if entry.kind is kind]

    def _normalize_field_name(self, name: str) -> str:
        return name.lower()

    def __eq__(self, other: object) -> bool:
        """Entries must match in values and order."""
        if not isinstance(other, Fields):
            return False
        return self.entries == other.entries

    def __iter__(self) -> Iterator[interfaces_http.Field]:
        yield from self.entries.values()

    def __len__(self) -> int:
        return len(self.entries)

    def __repr__(self) -> str:
        return f"Fields({list(self.entries.values())!r})"

    def __contains__(self, key: str) -> bool:
        return self._normalize_field_name(key) in self.entries


@dataclass(kw_only=True, frozen=True)
class URI(interfaces_http.URI):
    """Where a :py:class:`HTTPRequest` is sent; the parts a signature covers."""

    scheme: str = "https"
    """For example ``http`` or ``https``. Decides which port is the default."""

    host: str
    """The hostname, for example ``amazonaws.com``."""

    port: int | None = None
    """An explicit port number."""

    path: str | None = None
    """Path component of the URI, percent-encoded as it appears on the wire."""

    query: str | None = None
    """Query component of the URI as string."""

    @classmethod
    def from_string(cls, url: str) -> URI:
        """Build a URI from an absolute URL such as ``http://host.foo.com/%20/foo``.

        The path and query are kept in their encoded wire form. Any fragment is
        dropped since it is never sent.
        """
        parts = urlsplit(url)
        if not parts.hostname:
            raise ValueError(f"URL must be absolute and include a host: {url!r}")
        return cls(
            scheme=parts.scheme or "https",
            host=parts.hostname,
            port=parts.port,
            path=parts.path or None,
            query=parts.query or None,
        )

    @property
    def authority(self) -> str:
        """Construct the ``Host`` header value in format ``{host}:{port}``.

        The port is omitted when unset or when it is the default for the scheme.
        """
        if self.port is None or DEFAULT_PORTS.get(self.scheme) == self.port:
            return self.host
        return f"{self.host}:{self.port}"


class HTTPRequest(interfaces_http.Request):
    def __init__(
        self,
        *,
        destination: URI,
        method: str,
        fields: Fields | None = None,
        body: AsyncIterable[bytes] | Iterable[bytes] | bytes | None = None,
    ):
        self.destination = destination
        self.method = method
        self.fields = fields if fields is not None else Fields()
        self.body = body

    def __deepcopy__(self, memo: dict[int, HTTPRequest] | None = None) -> HTTPRequest:
        if memo is None:
            memo = {}

        if id(self) in memo:
            return memo[id(self)]

        # the destination doesn't need to be copied because it's immutable
        # the body can't be copied because it may be a stream
        new_instance = self.__class__(
            destination=self.destination,
            body=self.body,
            method=self.method,
            fields=deepcopy(self.fields, memo),
        )
        memo[id(self)] = new_instance
        return new_instance

    def __repr__(self) -> str:
        return (
            f"HTTPRequest(method={self.method!r}, "
            f"destination={self.destination!r}, fields={self.fields!r})"
        )

"""Immutable view of an inbound webhook request."""

from typing import Dict, Iterable, Mapping, Tuple, Union
from urllib.parse import parse_qs

from starlette.datastructures import Headers

RawHeaders = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


class HookRequest:
    """
    Headers and raw body of a webhook call.

    Providers only ever see this object, so a transformation is a pure
    function of the request bytes.
    """

    __slots__ = ("headers", "body")

    def __init__(self, headers: Headers, body: bytes):
        self.headers = headers
        self.body = body

    @classmethod
    def from_raw(cls, headers: RawHeaders, body: Union[bytes, str] = b"") -> "HookRequest":
        if isinstance(body, str):
            body = body.encode("utf-8")
        if isinstance(headers, Mapping):
            items = list(headers.items())
        else:
            items = list(headers)
        raw = [(name.lower().encode("latin-1"), value.encode("latin-1")) for name, value in items]
        return cls(Headers(raw=raw), body)

    def header(self, name: str) -> str:
        """First value of a header, or an empty string when absent."""
        return self.headers.get(name, "")

    def has_header(self, name: str) -> bool:
        return name in self.headers

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def form(self) -> Dict[str, str]:
        """Parse an urlencoded body, keeping the first value of every key."""
        parsed = parse_qs(self.text(), keep_blank_values=True)
        return {key: values[0] for key, values in parsed.items() if values}

    def header_items(self) -> Dict[str, list]:
        """All headers grouped by name, values in arrival order."""
        grouped: Dict[str, list] = {}
        for name, value in self.headers.items():
            grouped.setdefault(name, []).append(value)
        return grouped

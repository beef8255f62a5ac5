"""Minimal pkt-line reader for smart-HTTP request bodies.

Only the command section of a request is inspected, to report which refs a
push updates and which commit a fetch wants. Pack data is never parsed; the
git service process does all protocol work.

    pkt-line     =  data-pkt / flush-pkt
    data-pkt     =  pkt-len pkt-payload
    pkt-len      =  4*(HEXDIG)
    flush-pkt    = "0000"
"""

import re
from dataclasses import dataclass
from typing import Iterator

OBJECT_ID = re.compile(rb"^(?:[0-9a-f]{40}|[0-9a-f]{64})$")


@dataclass(frozen=True)
class RefUpdate:
    """One `<old> <new> <ref>` command from a receive-pack request."""

    old: str
    new: str
    ref: str

    @property
    def is_tag(self) -> bool:
        return self.ref.startswith("refs/tags/")

    @property
    def is_delete(self) -> bool:
        return self.new.strip("0") == ""

    @property
    def short_name(self) -> str:
        for prefix in ("refs/heads/", "refs/tags/"):
            if self.ref.startswith(prefix):
                return self.ref[len(prefix):]
        return self.ref


def pkt_line(payload: bytes) -> bytes:
    """Frame a payload as a data pkt-line."""
    return f"{len(payload) + 4:04x}".encode() + payload


def service_advertisement(service: str) -> bytes:
    """The header a smart server writes before the advertised refs."""
    return pkt_line(f"# service={service}\n".encode()) + b"0000"


def iter_pkt_lines(data: bytes) -> Iterator[bytes | None]:
    """
    Yield pkt-line payloads from a buffer.

    Special packets (flush, delimiter, response-end) are yielded as None.
    Iteration stops at the end of the buffer, at a truncated packet, or at
    bytes that are not a pkt-line length.
    """
    offset = 0
    size = len(data)
    while size - offset >= 4:
        try:
            length = int(data[offset:offset + 4], 16)
        except ValueError:
            return
        if length < 4:
            yield None
            offset += 4
            continue
        if size - offset < length:
            return
        yield data[offset + 4:offset + length]
        offset += length


def command_section_end(data: bytes) -> int | None:
    """
    Return the offset just past the first flush-pkt in a request buffer.

    Returns:
        int | None: The end offset, or None if the buffer ends first. Bytes
            that are not a pkt-line length end the section where they start.
    """
    offset = 0
    size = len(data)
    while size - offset >= 4:
        try:
            length = int(data[offset:offset + 4], 16)
        except ValueError:
            return offset
        if length == 0:
            return offset + 4
        if length < 4:
            offset += 4
            continue
        if size - offset < length:
            return None
        offset += length
    return None


def read_ref_updates(body: bytes) -> list[RefUpdate]:
    """Extract the ref-update commands that precede the pack in a push."""
    updates: list[RefUpdate] = []
    for payload in iter_pkt_lines(body):
        if payload is None:
            break
        line = payload.split(b"\0", 1)[0].rstrip(b"\n")
        parts = line.split(b" ")
        if len(parts) != 3:
            continue
        old, new, ref = parts
        if not (OBJECT_ID.match(old) and OBJECT_ID.match(new)):
            continue
        updates.append(RefUpdate(old.decode(), new.decode(), ref.decode("utf-8", errors="replace")))
    return updates


def read_first_want(body: bytes) -> str | None:
    """Return the first object id a fetch request wants, if any."""
    for payload in iter_pkt_lines(body):
        if payload is None or not payload.startswith(b"want "):
            continue
        parts = payload.split()
        if len(parts) >= 2 and OBJECT_ID.match(parts[1]):
            return parts[1].decode()
    return None

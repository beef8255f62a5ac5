"""Tests for the smart-HTTP request body scanner."""

from utils.pkt_line import (
    command_section_end,
    pkt_line,
    read_first_want,
    read_ref_updates,
    service_advertisement,
)

OLD = "0" * 40
NEW = "1a" * 20
TAG_SHA = "2b" * 20


def test_service_advertisement_header():
    assert service_advertisement("git-upload-pack") == b"001e# service=git-upload-pack\n0000"


def test_read_ref_updates_before_pack():
    body = (
        pkt_line(f"{OLD} {NEW} refs/heads/main\0 report-status side-band-64k\n".encode())
        + pkt_line(f"{OLD} {TAG_SHA} refs/tags/v1.0\n".encode())
        + b"0000"
        + b"PACK\x00\x00\x00\x02garbage"
    )

    updates = read_ref_updates(body)

    assert len(updates) == 2
    assert updates[0].short_name == "main"
    assert updates[0].new == NEW
    assert not updates[0].is_tag
    assert updates[1].is_tag
    assert updates[1].short_name == "v1.0"


def test_delete_command_is_detected():
    body = pkt_line(f"{NEW} {OLD} refs/heads/old\n".encode()) + b"0000"

    (update,) = read_ref_updates(body)

    assert update.is_delete


def test_read_first_want_v0():
    body = (
        pkt_line(f"want {NEW} multi_ack side-band-64k\n".encode())
        + pkt_line(f"want {TAG_SHA}\n".encode())
        + b"0000"
        + pkt_line(b"done\n")
    )

    assert read_first_want(body) == NEW


def test_read_first_want_v2_after_delimiter():
    body = pkt_line(b"command=fetch\n") + b"0001" + pkt_line(f"want {NEW}\n".encode()) + pkt_line(b"done\n") + b"0000"

    assert read_first_want(body) == NEW


def test_ls_refs_has_no_want():
    body = pkt_line(b"command=ls-refs\n") + b"0001" + pkt_line(b"peel\n") + b"0000"

    assert read_first_want(body) is None


def test_truncated_body_is_tolerated():
    assert read_ref_updates(b"00ff0000") == []
    assert read_first_want(b"zz") is None


def test_command_section_ends_after_first_flush():
    commands = pkt_line(f"{OLD} {NEW} refs/heads/main\0 report-status\n".encode()) + b"0000"

    assert command_section_end(commands + b"PACK\x00\x00\x00\x02") == len(commands)


def test_command_section_spans_delimiters():
    body = pkt_line(b"command=fetch\n") + b"0001" + pkt_line(f"want {NEW}\n".encode()) + b"0000"

    assert command_section_end(body) == len(body)


def test_command_section_incomplete_until_flush():
    partial = pkt_line(f"want {NEW}\n".encode())

    assert command_section_end(partial) is None
    assert command_section_end(partial[:10]) is None


def test_command_section_stops_at_non_pkt_bytes():
    assert command_section_end(pkt_line(b"done\n") + b"zzzz") == 9

"""Parser for `git ls-tree -l -z` output.

Each record has five fields: mode, object type, object sha, size and path.
The path follows a TAB and, with ``-z``, is never quoted; records are NUL
terminated. Sizes are ``-`` for trees and submodule commits; those are
reported as 0.
"""

import re

LS_TREE_RECORD = re.compile(
    r"^(?P<mode>[0-7]{6}) (?P<type>blob|tree|commit) (?P<sha>[0-9a-f]+) +(?P<size>\d+|-)\t(?P<path>.+)$",
    re.DOTALL,
)


class TreeParseError(ValueError):
    """A record of ls-tree output did not have the expected shape."""


def parse_ls_tree_line(record: str) -> dict:
    """
    Parse one record of `git ls-tree -l -z` output.

    Args:
        record: A single record, without its NUL terminator.

    Returns:
        dict: Keys mode, type, sha, size (int) and path.

    Raises:
        TreeParseError: If the record does not match, or a blob has no numeric size.
    """
    match = LS_TREE_RECORD.match(record)
    if match is None:
        raise TreeParseError(f"Unexpected ls-tree record: {record!r}")

    size = match.group("size")
    if size == "-":
        if match.group("type") == "blob":
            raise TreeParseError(f"Blob without size in ls-tree record: {record!r}")
        size = "0"

    return {
        "mode": match.group("mode"),
        "type": match.group("type"),
        "sha": match.group("sha"),
        "size": int(size),
        "path": match.group("path"),
    }


def parse_ls_tree(output: str) -> list[dict]:
    """Parse every NUL-terminated record; any bad record fails the whole listing."""
    return [parse_ls_tree_line(record) for record in output.split("\0") if record.strip("\n")]

"""Response compression negotiation and streaming gzip encoding."""

import zlib
from typing import AsyncIterator

# wbits=31 selects the gzip container
GZIP_WBITS = 31


def should_compress(accept_encoding: str | None) -> bool:
    """
    Decide whether a response body should be gzip-compressed.

    The header is parsed as a token list, so ``gzip;q=0`` opts out and
    ``x-gzip-like`` does not count.

    Args:
        accept_encoding: Raw Accept-Encoding header value, or None.

    Returns:
        bool: True if the client accepts gzip.
    """
    if not accept_encoding:
        return False
    for item in accept_encoding.split(","):
        token, _, params = item.strip().partition(";")
        if token.strip().lower() != "gzip":
            continue
        params = params.strip().replace(" ", "")
        if params.startswith("q="):
            try:
                if float(params[2:]) <= 0:
                    return False
            except ValueError:
                return False
        return True
    return False


def gzip_bytes(data: bytes) -> bytes:
    compressor = zlib.compressobj(wbits=GZIP_WBITS)
    return compressor.compress(data) + compressor.flush()


async def gzip_stream(chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    """Compress an async byte stream chunk by chunk into a single gzip member."""
    compressor = zlib.compressobj(wbits=GZIP_WBITS)
    async for chunk in chunks:
        out = compressor.compress(chunk)
        if out:
            yield out
    yield compressor.flush()

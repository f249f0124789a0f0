"""Known defects in the device HTTP stack that the client has to tolerate."""

from __future__ import annotations

from typing import Tuple

import httpx

# The device answers a successful settings post with a chunked body whose size
# line the client parser rejects. The first marker is what h11 reports, the
# second what Node's http parser reports for the same response.
KNOWN_FRAMING_DEFECT_MARKERS: Tuple[str, ...] = (
    "illegal chunk header",
    "Invalid character in chunk size",
)


def is_known_framing_defect(exc: BaseException) -> bool:
    """Return True when ``exc`` is the chunked framing error seen after a successful post.

    Drop the markers once the device firmware sends well-formed chunked responses.
    """

    if not isinstance(exc, httpx.RemoteProtocolError):
        return False
    message = str(exc)
    return any(marker in message for marker in KNOWN_FRAMING_DEFECT_MARKERS)

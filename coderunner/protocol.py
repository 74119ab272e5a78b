"""Marker-delimited JSON blocks carried inside captured stdout.

The only channel out of the runtime is text, so structured results are
printed as one JSON object between two literal marker lines. Each consumer has
its own pair of markers so the two conventions never collide.
"""

import json
from dataclasses import dataclass
from typing import Any

from coderunner.errors import ProtocolError


@dataclass(frozen=True)
class MarkerPair:
    start: str
    end: str
    label: str


TRACE_MARKERS = MarkerPair(
    start="---DEBUGGER_TRACE_START---",
    end="---DEBUGGER_TRACE_END---",
    label="trace",
)

TEST_RESULT_MARKERS = MarkerPair(
    start="===PYTEST_SINGLE_RESULT_JSON===",
    end="===END_PYTEST_SINGLE_RESULT_JSON===",
    label="test result",
)


def decode_block(stdout: str, markers: MarkerPair) -> dict[str, Any]:
    """Return the JSON object framed by ``markers`` in ``stdout``.

    Only whole lines equal to a marker count as boundaries. Candidate start
    markers are tried from the last one backwards and the first pair framing a
    valid JSON object wins, so marker text printed by student code earlier in
    the stream is ignored.

    Raises:
        ProtocolError: no complete marker pair, or no pair frames valid JSON.
    """
    lines = stdout.splitlines()
    starts = [i for i, line in enumerate(lines) if line.strip() == markers.start]

    framed = False
    parse_error: Exception | None = None
    for start in reversed(starts):
        end = next((i for i in range(start + 1, len(lines)) if lines[i].strip() == markers.end), None)
        if end is None:
            continue
        framed = True
        body = "\n".join(lines[start + 1:end]).strip()
        try:
            payload = json.loads(body)
        except json.JSONDecodeError as e:
            parse_error = e
            continue
        if isinstance(payload, dict):
            return payload
        parse_error = ValueError(f"expected a JSON object, got {type(payload).__name__}")

    if not framed:
        raise ProtocolError(
            detail=f"Could not find {markers.label} markers in runtime output.",
            error_code="markers_missing",
        )
    raise ProtocolError(
        detail=f"Error parsing {markers.label} from runtime output: {parse_error}",
        error_code="invalid_payload",
    )

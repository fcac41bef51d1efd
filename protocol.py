# protocol.py
import re
import time
from typing import NamedTuple, Optional

from metrics import SampleRecord

FIELD_SEPARATOR = "|"
FIRST_ON_CONNECTION = "1"
PADDING_CHAR = "0"

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_DECIMAL = re.compile(r"[+-]?[0-9]+")


class MalformedEchoResponse(ValueError):
    """Echo body without the mandatory timestamp and ordinal fields."""


class EchoResponse(NamedTuple):
    arrival_us: int
    ordinal_field: str
    padding: Optional[str] = None

    @property
    def is_first(self) -> bool:
        return self.ordinal_field == FIRST_ON_CONNECTION


def now_us() -> int:
    return time.time_ns() // 1000


def padding(size: int) -> str:
    return PADDING_CHAR * max(size, 0)


def encode_echo_body(arrival_us: int, ordinal: int, resp_size: int = 0) -> str:
    body = f"{arrival_us}{FIELD_SEPARATOR}{ordinal}"
    if resp_size > 0:
        body += f"{FIELD_SEPARATOR}{padding(resp_size)}\n"
    return body


def parse_timestamp(field: str) -> int:
    # Unparsable timestamps become 0; the resulting latency is left in the data.
    if not _DECIMAL.fullmatch(field):
        return 0
    value = int(field)
    if value < _INT64_MIN or value > _INT64_MAX:
        return 0
    return value


def parse_echo_body(body: str) -> EchoResponse:
    chunks = body.split(FIELD_SEPARATOR, 2)
    if len(chunks) < 2:
        raise MalformedEchoResponse(f"expected '<timestamp>|<ordinal>', got {body[:64]!r}")
    return EchoResponse(
        arrival_us=parse_timestamp(chunks[0]),
        ordinal_field=chunks[1],
        padding=chunks[2] if len(chunks) > 2 else None,
    )


def derive_sample(sent_us: int, received_us: int, echo: EchoResponse) -> SampleRecord:
    """Splits one exchange into total, request leg and response leg latencies.

    The two endpoints come from the requester clock and the midpoint from the
    responder clock; the split figures are only meaningful when both clocks
    are reasonably aligned.
    """
    return SampleRecord(
        is_first=echo.is_first,
        total_us=received_us - sent_us,
        client_to_server_us=echo.arrival_us - sent_us,
        server_to_client_us=received_us - echo.arrival_us,
    )

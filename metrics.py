from typing import NamedTuple, List

class SampleRecord(NamedTuple):
    is_first: bool
    total_us: int
    client_to_server_us: int
    server_to_client_us: int

    def to_row(self) -> List[str]:
        return [
            "true" if self.is_first else "false",
            str(self.total_us),
            str(self.client_to_server_us),
            str(self.server_to_client_us),
        ]

    def console_line(self) -> str:
        return " ".join(self.to_row())


class RunSummary(NamedTuple):
    ledger_path: str
    issued: int
    retained: int
    discarded: int
    rows_written: int

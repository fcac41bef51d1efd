import logging
from enum import Enum
from typing import NamedTuple

# General
LOG_LEVEL = logging.INFO  # DEBUG for more verbosity
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(filename)s:%(lineno)d - %(message)s'
LOG_FILE = "latency_harness.log" # Will be created in the working directory

# Client defaults (flag defaults of the command line tool)
DEFAULT_ADDR = "http://127.0.0.1:80"
DEFAULT_BATCH_SIZE = 20
DEFAULT_BATCH_COUNT = 10

# Client connection pool, recreated for every batch
CLIENT_MAX_CONNECTIONS = 10
CLIENT_KEEPALIVE_TIMEOUT_SECONDS = 30

# Result sink
RESULT_QUEUE_CAPACITY = 1024  # Producer blocks when the sink falls this far behind
LEDGER_HEADER = ["isFirst", "diff", "client to server", "server to client"]
LEDGER_DEFAULT_NAME_FORMAT = "output-%Y.%m.%d %H:%M.csv"

# Server defaults
DEFAULT_LISTEN_HOST = "0.0.0.0"
DEFAULT_LISTEN_PORT = 80
LOCAL_MODE_STARTUP_DELAY_SECONDS = 0.1  # Co-located mode: let the server bind before the client starts

# Cache layer header inspected by hit-only filtering
CACHE_STATUS_HEADER = "X-Cache"
CACHE_MISS_MARKER = "Miss"


class Role(Enum):
    CLIENT = "client"
    SERVER = "server"


class HarnessConfig(NamedTuple):
    role: Role = Role.SERVER
    addr: str = DEFAULT_ADDR
    batch_size: int = DEFAULT_BATCH_SIZE
    batch_count: int = DEFAULT_BATCH_COUNT
    req_size: int = 0
    resp_size: int = 0
    verbose: bool = False
    dry_run: bool = False
    local: bool = False
    output: str = ""  # Empty means a timestamped default name
    report: bool = False
    report_prefix: str = ""
    only_hit: bool = False
    listen_host: str = DEFAULT_LISTEN_HOST
    listen_port: int = DEFAULT_LISTEN_PORT

    @classmethod
    def from_args(cls, args) -> "HarnessConfig":
        """Builds the run configuration from parsed command line arguments."""
        return cls(
            role=Role.CLIENT if args.client else Role.SERVER,
            addr=args.addr,
            batch_size=args.size,
            batch_count=args.count,
            req_size=args.reqsize,
            resp_size=args.respsize,
            verbose=args.verbose,
            dry_run=args.dry,
            local=args.local,
            output=args.output,
            report=args.report,
            report_prefix=args.reportPrefix,
            only_hit=args.onlyHit,
            listen_host=args.host,
            listen_port=args.port,
        )

    @property
    def sends_payload(self) -> bool:
        return self.req_size != 0 or self.resp_size != 0

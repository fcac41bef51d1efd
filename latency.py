import argparse
import asyncio
import logging
import sys

import config
from config import HarnessConfig, Role
from harness import run_harness, TransportFailure
from responder import ResponderServer
from sink import LedgerOpenError

# Global logger setup for the application
logger = logging.getLogger() # Get root logger

def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), config.LOG_LEVEL),
        format=config.LOG_FORMAT,
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(config.LOG_FILE, mode='w')
        ]
    )
    logger.info(f"Logging setup complete. Log file: {config.LOG_FILE}")


def arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Measure per-request HTTP latency, or serve as the timestamping echo target."
    )
    parser.add_argument('--client', action='store_true', help='Run as client (default: server)')
    parser.add_argument('--addr', type=str, default=config.DEFAULT_ADDR, help='Target URL (client mode)')
    parser.add_argument('--size', type=int, default=config.DEFAULT_BATCH_SIZE, help='Batch size')
    parser.add_argument('--count', type=int, default=config.DEFAULT_BATCH_COUNT, help='Batch count')
    parser.add_argument('--reqsize', type=int, default=0, help='Request payload size in bytes')
    parser.add_argument('--respsize', type=int, default=0, help='Response padding size in bytes')
    parser.add_argument('--verbose', action='store_true', help='Print every sample')
    parser.add_argument('--dry', action='store_true', help='Dry run, do not write the ledger')
    parser.add_argument('--local', action='store_true', help='Run server and client in one process')
    parser.add_argument('--output', type=str, default='', help='Ledger filename')
    parser.add_argument('--report', action='store_true', help='Upload the ledger to the server when done')
    parser.add_argument('--reportPrefix', type=str, default='', help='Prefix for stored reports (server mode)')
    parser.add_argument('--onlyHit', action='store_true', help='Record only cache hits (X-Cache header)')
    parser.add_argument('--host', type=str, default=config.DEFAULT_LISTEN_HOST, help='Listen host (server mode)')
    parser.add_argument('--port', type=int, default=config.DEFAULT_LISTEN_PORT, help='Listen port (server mode)')
    parser.add_argument('--log-level', type=str, default='INFO', help='Logging level')
    return parser


async def run(cfg: HarnessConfig) -> int:
    logger.info(f"client mode: {cfg.role is Role.CLIENT}")
    if cfg.role is Role.CLIENT:
        logger.info(f"host: {cfg.addr}")
        await run_harness(cfg)
        return 0

    server = ResponderServer(cfg)
    await server.start()
    try:
        if cfg.local:
            await asyncio.sleep(config.LOCAL_MODE_STARTUP_DELAY_SECONDS)
            await run_harness(cfg)
        await server.serve_forever()
    finally:
        await server.stop()
    return 0


def main(argv=None) -> int:
    args = arg_parser().parse_args(argv)
    setup_logging(args.log_level)
    cfg = HarnessConfig.from_args(args)
    try:
        return asyncio.run(run(cfg))
    except LedgerOpenError as e:
        logger.error(f"Ledger creation failed: {e}")
    except TransportFailure as e:
        logger.error(f"Request to {cfg.addr} failed, run aborted: {e}")
    except OSError as e:
        logger.error(f"Server startup failed: {e}")
    except KeyboardInterrupt:
        logger.info("Interrupted by user (Ctrl+C). Shutting down...")
        return 0
    return 1


if __name__ == "__main__":
    sys.exit(main())

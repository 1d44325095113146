import argparse
import asyncio

from instant_undo.config import configure_logging, load_config
from instant_undo.server import run


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="instant-undo", description="Instant Undo grace-window server")
    parser.add_argument("--config", help="TOML config file (default: $INSTANT_UNDO_CONFIG or ./instant-undo.toml)")
    parser.add_argument("--host", help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Port (default: 3000)")
    parser.add_argument("--redis-url", help="Redis URL for durable storage (default: in-memory)")
    parser.add_argument("--log-level", choices=["debug", "info", "warning"], help="Log level (default: info)")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument("--no-latency", action="store_true", help="Skip simulated executor latency")
    args = parser.parse_args(argv)

    config = load_config(
        args.config,
        host=args.host,
        port=args.port,
        redis_url=args.redis_url,
        log_level=args.log_level,
        log_file=args.log_file,
        simulate_latency=False if args.no_latency else None,
    )
    configure_logging(config.log_level, config.log_file)

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Load test for the caching proxy in front of the character API.

Fetches every character as JSON and as an avatar image through the proxy,
checks status, body and the X-Cache header, and stops immediately if the
backend becomes unreachable.

Run with: python run_load.py --base-url http://localhost:8889
"""

import argparse
import logging
import sys

from pydantic import ValidationError

from config import AbortPolicy, LoadConfig
from streams import run_streams

EXIT_PASSED = 0
EXIT_THRESHOLDS = 1
EXIT_ABORTED = 2
EXIT_INTERRUPTED = 130


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Drive load through the caching proxy")
    parser.add_argument("--base-url", help="Proxy base URL (LOAD_BASE_URL)")
    parser.add_argument("--host-header", help="Host header used for routing (LOAD_HOST_HEADER)")
    parser.add_argument("--iterations", type=int, help="Iterations per stream (LOAD_ITERATIONS)")
    parser.add_argument("--duration", type=float, help="Seconds to run per stream (LOAD_DURATION)")
    parser.add_argument("--streams", type=int, dest="virtual_streams", help="Parallel virtual streams (LOAD_STREAMS)")
    parser.add_argument("--pool-size", type=int, help="Number of identifiers (LOAD_POOL_SIZE)")
    parser.add_argument("--random-ids", action="store_true", help="Draw identifiers randomly instead of cyclically")
    parser.add_argument("--seed", type=int, help="Seed for --random-ids")
    parser.add_argument("--request-delay", type=float, help="Pause after each request, seconds")
    parser.add_argument("--iteration-delay", type=float, help="Pause between iterations, seconds")
    parser.add_argument("--strict", action="store_true", help="Abort on the first failed check")
    parser.add_argument("--no-health-check", action="store_true", help="Skip the startup health probe")
    parser.add_argument("--no-redirects", action="store_true", help="Report redirects instead of following them")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    return parser.parse_args(argv)


def build_config(args) -> LoadConfig:
    overrides = {}
    for name in ("base_url", "host_header", "iterations", "duration", "virtual_streams",
                 "pool_size", "seed", "request_delay", "iteration_delay"):
        value = getattr(args, name)
        if value is not None:
            overrides[name] = value
    # A duration on its own means "run for this long", not "whichever comes first"
    if args.duration is not None and args.iterations is None:
        overrides["iterations"] = None
    if args.random_ids:
        overrides["identifier_mode"] = "random"
    if args.strict:
        overrides["abort_policy"] = AbortPolicy.STRICT
    if args.no_health_check:
        overrides["health_check"] = False
    if args.no_redirects:
        overrides["follow_redirects"] = False
    return LoadConfig.from_env(**overrides)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        config = build_config(args)
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}")
        return EXIT_ABORTED

    print("Cache Load Test")
    print("===============")
    print(f"Target: {config.root} (Host: {config.host_header})")
    bound = f"{config.iterations} iterations" if config.iterations is not None else f"{config.duration}s"
    print(f"Streams: {config.virtual_streams}, {bound} each, pool of {config.pool_size} ids")
    print(f"Abort policy: {config.abort_policy.value}")
    print("")

    try:
        report = run_streams(config)
    except KeyboardInterrupt:
        print("\nTest interrupted by user.")
        return EXIT_INTERRUPTED

    print("")
    print(report.format_summary(config))

    if report.aborted:
        return EXIT_ABORTED
    return EXIT_PASSED if report.passed(config) else EXIT_THRESHOLDS


if __name__ == "__main__":
    sys.exit(main())

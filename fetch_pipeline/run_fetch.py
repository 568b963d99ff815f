#!/usr/bin/env python
"""
Command-line runner: fetch a list of URLs and report one result per URL.

Usage examples:

    # Fetch two URLs with the default profile, print a summary per result
    python -m fetch_pipeline.run_fetch --profile default \
        --url https://example.com/ --url https://example.org/

    # Read URLs from a file and write JSONL summaries
    python -m fetch_pipeline.run_fetch --url-file seeds.txt \
        --output output_data/fetch_results.jsonl

    # Log in first, fetch as that user, then log out
    python -m fetch_pipeline.run_fetch --url https://site.example/account \
        --login-url https://site.example/login \
        --username alice --password 's3cr3t!' \
        --logout-url https://site.example/logout
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from fetch_pipeline.config_runtime_profiles import FETCH_PROFILES
from fetch_pipeline.errors import FetchError, LoginFormError
from fetch_pipeline.fetcher import Fetcher, FetcherConfig
from fetch_pipeline.models import Resource
from fetch_pipeline.session import AuthSession
from fetch_pipeline.writer import summarize_result, write_results_jsonl

logger = logging.getLogger(__name__)

PASSWORD_ENV_VAR = "FETCH_PIPELINE_PASSWORD"


def parse_header(value: str) -> Tuple[str, str]:
    """
    Parse a "Name: value" header argument.
    """
    name, sep, header_value = value.partition(":")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"Expected 'Name: value', got {value!r}")
    return name.strip(), header_value.strip()


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments for the fetch runner.

    At least one of --url or --url-file is required.
    """
    parser = argparse.ArgumentParser(
        description="Fetch URLs with rotating user agents, optionally as a logged-in user."
    )

    parser.add_argument(
        "--url",
        action="append",
        default=None,
        help="URL to fetch. Can be specified multiple times.",
    )
    parser.add_argument(
        "--url-file",
        type=str,
        default=None,
        help="File with one URL per line (blank lines and '#' comments are skipped).",
    )
    parser.add_argument(
        "--profile",
        choices=sorted(FETCH_PROFILES.keys()),
        default=None,
        help="Name of the fetch profile to use (defined in config_runtime_profiles.py).",
    )

    parser.add_argument(
        "--user-agents-file",
        type=str,
        default=None,
        help="Path or bundled resource name with one user agent per line.",
    )
    parser.add_argument(
        "--header",
        action="append",
        type=parse_header,
        default=None,
        help="Static request header as 'Name: value'. Can be specified multiple times.",
    )
    parser.add_argument("--connect-timeout-ms", type=int, default=None, help="Connect timeout in milliseconds.")
    parser.add_argument("--read-timeout-ms", type=int, default=None, help="Read timeout in milliseconds.")
    parser.add_argument("--content-limit", type=int, default=None, help="Maximum body size in bytes.")

    parser.add_argument("--login-url", type=str, default=None, help="Login page to authenticate against first.")
    parser.add_argument("--username", type=str, default=None, help="Login username.")
    parser.add_argument(
        "--password",
        type=str,
        default=os.environ.get(PASSWORD_ENV_VAR),
        help=f"Login password (defaults to ${PASSWORD_ENV_VAR}).",
    )
    parser.add_argument("--logout-url", type=str, default=None, help="URL to log out from after fetching.")

    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output JSONL path for result summaries. If omitted, summaries are printed.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR). Default: INFO.",
    )

    args = parser.parse_args(argv)

    if not args.url and not args.url_file:
        parser.error("at least one of --url or --url-file is required")
    if args.login_url and (args.username is None or args.password is None):
        parser.error("--login-url requires --username and --password")

    return args


def read_url_file(path: str) -> List[str]:
    """
    Read URLs from a text file, skipping blank lines and '#' comments.
    Order and duplicates are kept.
    """
    urls = []
    for line in Path(path).read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            urls.append(stripped)
    return urls


def build_fetcher_config(args: argparse.Namespace) -> FetcherConfig:
    """
    Construct a FetcherConfig from the selected profile plus any CLI overrides.
    """
    settings = dict(FETCH_PROFILES[args.profile]) if args.profile else {}
    settings["headers"] = dict(settings.get("headers", {}))

    if args.user_agents_file is not None:
        settings["user_agents_file"] = args.user_agents_file
    if args.header:
        settings["headers"].update(dict(args.header))
    if args.connect_timeout_ms is not None:
        settings["connect_timeout_ms"] = args.connect_timeout_ms
    if args.read_timeout_ms is not None:
        settings["read_timeout_ms"] = args.read_timeout_ms
    if args.content_limit is not None:
        settings["content_limit"] = args.content_limit

    logger.info(
        "Fetcher config: profile=%s, user_agents_file=%s, headers=%s, "
        "connect_timeout_ms=%s, read_timeout_ms=%s, content_limit=%s",
        args.profile,
        settings.get("user_agents_file"),
        list(settings["headers"].keys()),
        settings.get("connect_timeout_ms"),
        settings.get("read_timeout_ms"),
        settings.get("content_limit"),
    )
    return FetcherConfig(**settings)


def iter_resources(args: argparse.Namespace) -> Iterator[Resource]:
    """
    Generator of Resources from --url arguments followed by --url-file lines.
    """
    for url in args.url or []:
        yield Resource(url=url)
    if args.url_file:
        for url in read_url_file(args.url_file):
            yield Resource(url=url)


def print_results(results: Iterable) -> int:
    count = 0
    for result in results:
        summary = summarize_result(result)
        count += 1
        print(
            f"[{count}] {summary['status_code']} {summary['resource_status']:<7} "
            f"{summary['bytes']:>10} bytes{' (truncated)' if summary['truncated'] else ''}  {summary['url']}"
        )
    return count


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )

    try:
        config = build_fetcher_config(args)
        auth = AuthSession(timeout=config.timeout) if args.login_url or args.logout_url else None
        fetcher = Fetcher(config=config, auth=auth)
    except (FetchError, ValueError) as e:
        logger.error("Invalid fetcher configuration: %s", e)
        return 2

    try:
        if args.login_url:
            logger.info("Logging in at %s as %s", args.login_url, args.username)
            try:
                logged_in = auth.login(args.login_url, args.username, args.password)
            except LoginFormError as e:
                logger.error("Login form problem at %s: %s", args.login_url, e)
                logged_in = False
            if not logged_in:
                logger.warning("Login failed; continuing anonymously")

        results = fetcher.fetch_all(iter_resources(args))
        if args.output:
            count = write_results_jsonl(results, args.output)
            logger.info("Wrote %d result(s) to %s", count, args.output)
        else:
            count = print_results(results)
            logger.info("Fetched %d resource(s)", count)
    finally:
        if args.logout_url:
            auth.logout(args.logout_url)

    return 0


if __name__ == "__main__":
    sys.exit(main())

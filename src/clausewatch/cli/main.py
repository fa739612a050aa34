from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from clausewatch.config import get_settings
from clausewatch.connectors import default_page_client, sanitize_url
from clausewatch.errors import ClausewatchError, DuplicateVendorError, ValidationError
from clausewatch.services.analysis import analyze_vendor
from clausewatch.services.extraction import default_extractor
from clausewatch.services.monitor import run_monitor_cycle
from clausewatch.services.vendor_store import SqlVendorStore


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clausewatch",
        description="Discover vendor legal documents, score AI and data risk, and monitor changes.",
    )
    parser.add_argument("--database-url", default="", help="Override DATABASE_URL for this run")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="One-shot scorecard for a vendor URL (nothing is stored)")
    analyze.add_argument("url", help="Vendor URL or bare domain, e.g. openai.com")
    analyze.add_argument("--out", default="", help="Write the scorecard JSON to this file instead of stdout")

    track = sub.add_parser("track", help="Start monitoring a vendor")
    track.add_argument("url", help="Vendor URL or bare domain")
    track.add_argument("--name", default="", help="Display name for the vendor")

    sub.add_parser("monitor", help="Run one monitoring cycle over stale vendors")
    sub.add_parser("vendors", help="List tracked vendors")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def _open_store(args: argparse.Namespace) -> SqlVendorStore:
    return SqlVendorStore(args.database_url or get_settings().database_url)


def _cmd_analyze(args: argparse.Namespace) -> int:
    sanitize_url(args.url)
    analysis = analyze_vendor(args.url, default_page_client(), default_extractor())
    text = json.dumps(analysis.scorecard.to_payload(), indent=2)
    if args.out:
        output_path = Path(args.out).resolve()
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(text + "\n", encoding="utf-8")
        print(f"overall={analysis.scorecard.overall_risk_level.value}")
        print(f"wrote={output_path}")
    else:
        print(text)
    for failure in analysis.discovery.fetch_errors:
        print(f"warning: fetch failed: {failure.url}: {failure.message}", file=sys.stderr)
    return 0


def _cmd_track(args: argparse.Namespace) -> int:
    sanitized = sanitize_url(args.url)
    with _open_store(args) as store:
        vendor = store.add_vendor(sanitized.url, sanitized.hostname, name=args.name.strip() or None)
    print(f"tracking={vendor.id} url={vendor.url}")
    return 0


def _cmd_monitor(args: argparse.Namespace) -> int:
    with _open_store(args) as store:
        result = run_monitor_cycle(store, default_page_client(), default_extractor())
    print(json.dumps(result.to_dict(), indent=2))
    return 1 if result.errors else 0


def _cmd_vendors(args: argparse.Namespace) -> int:
    with _open_store(args) as store:
        vendors = store.list_vendors()
    for vendor in vendors:
        last = vendor.latest_scan_at.isoformat() if vendor.latest_scan_at else "never"
        print(f"{vendor.id}\t{vendor.url}\t{vendor.name or '-'}\tlast_scan={last}")
    if not vendors:
        print("no vendors tracked")
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("clausewatch.main:create_app", factory=True, host=args.host, port=args.port)
    return 0


COMMANDS = {
    "analyze": _cmd_analyze,
    "track": _cmd_track,
    "monitor": _cmd_monitor,
    "vendors": _cmd_vendors,
    "serve": _cmd_serve,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    try:
        return COMMANDS[args.command](args)
    except (ValidationError, DuplicateVendorError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except ClausewatchError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

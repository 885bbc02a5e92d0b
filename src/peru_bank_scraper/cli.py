from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .banks import BankCode, parse_bank_code
from .bbva.scraper import BbvaScraper
from .browser.flatten import flatten_markup
from .config import AppConfig, load_config
from .errors import ScraperError
from .extraction import parse_balances, parse_transactions
from .logging_config import configure_logging
from .portal.interceptor import live_transport
from .portal.login import require_session
from .replay.har import load_har, save_har
from .replay.replayer import Replayer
from .replay.sanitize import sanitize_har, sanitize_markup
from .util.retry import retry_transient


logger = logging.getLogger("peru_bank_scraper")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="peru_bank_scraper")
    p.add_argument(
        "--env-file",
        default=".env",
        help="Path to a dotenv file (default: .env). If missing, env vars must already be set.",
    )
    p.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml, optional)")

    sub = p.add_subparsers(dest="cmd", required=True)

    scrape = sub.add_parser("scrape", help="Log into BBVA Net Cash and print balances + transactions as JSON")
    scrape.add_argument("--headful", action="store_true", help="Run browser headful (debug)")
    scrape.add_argument(
        "--replay",
        default="",
        help="Serve all traffic from a recorded HAR file instead of the live portal.",
    )
    scrape.add_argument(
        "--passthrough",
        action="store_true",
        help="With --replay, send unrecorded requests to the live network instead of answering 404.",
    )
    scrape.add_argument("--skip-transactions", action="store_true", help="Only fetch balances")
    scrape.add_argument("--output", default="", help="Write JSON here instead of stdout")

    parse = sub.add_parser("parse", help="Parse a saved (flattened) page offline")
    parse.add_argument("file", help="Markup file")
    parse.add_argument("--bank", default="bbva", help="Bank code (default: bbva)")
    parse.add_argument("--kind", choices=("balances", "transactions"), required=True)
    parse.add_argument(
        "--flatten",
        action="store_true",
        help="Flatten declarative shadow roots / srcdoc iframes in the file before parsing.",
    )

    flatten = sub.add_parser("flatten", help="Flatten static markup (declarative shadow DOM, srcdoc iframes)")
    flatten.add_argument("file", help="Markup file")
    flatten.add_argument("--output", default="", help="Write markup here instead of stdout")

    sanitize = sub.add_parser("sanitize-har", help="Redact credentials, tokens and cookies from a HAR recording")
    sanitize.add_argument("input", help="HAR file (native or Chrome DevTools export)")
    sanitize.add_argument("--output", default="", help="Output path (default: overwrite input)")
    sanitize.add_argument("--dry-run", action="store_true", help="Report what would be redacted without writing")

    sanitize_fx = sub.add_parser("sanitize-fixtures", help="Redact account numbers, names and tokens in markup fixtures")
    sanitize_fx.add_argument("paths", nargs="+", help="HTML fixture files")
    sanitize_fx.add_argument("--dry-run", action="store_true", help="Report what would change without writing")

    return p


def _write_json(data: object, output: str) -> None:
    text = json.dumps(data, indent=2, ensure_ascii=False)
    if output:
        out = Path(output)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text + "\n", encoding="utf-8")
        logger.info("Wrote %s", out)
    else:
        print(text)


def _run_scrape(cfg: AppConfig, args: argparse.Namespace) -> int:
    bank_cfg = cfg.banks.bbva
    if args.headful:
        bank_cfg = bank_cfg.model_copy(update={"headless": False})

    creds = bank_cfg.credentials.to_credentials()
    if not creds.is_complete():
        raise SystemExit("Missing BBVA credentials. Set BBVA_COMPANY_CODE, BBVA_USER_CODE and BBVA_PASSWORD in your .env.")

    transport = live_transport
    har_path = args.replay or cfg.replay.har_path
    if har_path:
        replayer = Replayer(
            load_har(har_path),
            passthrough=bool(args.passthrough or cfg.replay.passthrough),
            max_redirects=cfg.replay.max_redirects,
        )
        logger.info("Replaying from %s (%s)", har_path, replayer.stats())
        transport = replayer

    t0 = time.time()
    with BbvaScraper(
        config=bank_cfg,
        transport=transport,
        flatten_max_depth=cfg.flatten.max_depth,
        debug_dir=cfg.debug_dir,
    ) as scraper:
        session = retry_transient(
            lambda: require_session(scraper.login(creds), BankCode.BBVA),
            attempts=cfg.retry.attempts,
            backoff_s=cfg.retry.backoff_s,
        )
        try:
            balances = scraper.extract_balances(session)
            transactions = [] if args.skip_transactions else scraper.extract_transactions(session)
        finally:
            scraper.logout(session)

    logger.info(
        "Scrape finished (balances=%s transactions=%s seconds=%.2f)",
        len(balances),
        len(transactions),
        time.time() - t0,
    )
    _write_json(
        {
            "bank": BankCode.BBVA.value,
            "fetched_at": datetime.now(timezone.utc).isoformat(),
            "balances": [b.to_wire() for b in balances],
            "transactions": [t.to_wire() for t in transactions],
        },
        args.output,
    )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)

    # Default logging: can be overridden once config is loaded.
    configure_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    cfg = load_config(args.config)
    creds = cfg.banks.bbva.credentials
    configure_logging(
        level=cfg.logging.level,
        file_path=cfg.logging.file_path or None,
        secrets=(creds.password, creds.user_code, creds.company_code),
    )

    try:
        if args.cmd == "scrape":
            return _run_scrape(cfg, args)

        if args.cmd == "parse":
            bank = parse_bank_code(args.bank)
            markup = Path(args.file).read_text(encoding="utf-8")
            if args.flatten:
                markup = flatten_markup(markup, max_depth=cfg.flatten.max_depth).html
            if args.kind == "balances":
                _write_json([b.to_wire() for b in parse_balances(bank, markup)], "")
            else:
                _write_json([t.to_wire() for t in parse_transactions(bank, markup)], "")
            return 0

        if args.cmd == "flatten":
            result = flatten_markup(Path(args.file).read_text(encoding="utf-8"), max_depth=cfg.flatten.max_depth)
            logger.info("Flattened: shadow_roots=%s iframes=%s", result.shadow_count, result.iframe_count)
            if args.output:
                Path(args.output).write_text(result.html, encoding="utf-8")
            else:
                print(result.html)
            return 0

        if args.cmd == "sanitize-har":
            in_path = Path(args.input)
            if not in_path.exists():
                raise SystemExit(f"Input file not found: {in_path}")
            har = load_har(in_path)
            logger.info("Loaded %s entries from %s", len(har.entries), in_path)
            clean, report = sanitize_har(har)
            print(f"Redacted {report.count} sensitive values")
            for kind, n in sorted(report.by_kind.items()):
                print(f"  - {kind}: {n}")
            if args.dry_run:
                print("[DRY RUN] No changes written.")
                return 0
            out_path = Path(args.output) if args.output else in_path
            save_har(out_path, clean)
            print(f"Sanitized HAR written: {out_path}")
            return 0

        if args.cmd == "sanitize-fixtures":
            for raw in args.paths:
                path = Path(raw)
                clean, report = sanitize_markup(path.read_text(encoding="utf-8"))
                if not report.count:
                    print(f"{path.name}: no sensitive data found")
                    continue
                print(f"{path.name}: found sensitive data")
                for kind, n in sorted(report.by_kind.items()):
                    print(f"  - {kind}: {n} matched")
                if not args.dry_run:
                    path.write_text(clean, encoding="utf-8")
                    print("  sanitized and saved")
            return 0
    except ScraperError as e:
        logger.error("%s", e)
        return 1

    raise SystemExit(f"Unknown command: {args.cmd}")


if __name__ == "__main__":
    sys.exit(main())

"""Vultr billing CLI.

Read-only access to the billing section of the Vultr API
(https://api.vultr.com/v2): account billing history, invoices and invoice
line items, with cursor-based pagination.

Usage examples:
    vultr-cli billing history list
    vultr-cli billing invoice list --per-page 25
    vultr-cli --output json billing invoice get 123456
    vultr-cli billing i i 123456 --cursor <next-cursor>
"""

from __future__ import annotations

import argparse
import os
import re
import signal
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional, Tuple

import requests
import yaml

from vultr_billing import __version__
from vultr_billing.client import API_BASE_URL, PER_PAGE_DEFAULT, APIError, ListOptions, Meta, VultrClient
from vultr_billing.printer import (
    OUTPUT_FORMATS,
    BillingHistoryPrinter,
    BillingInvoiceItemsPrinter,
    BillingInvoicePrinter,
    BillingInvoicesPrinter,
    Printer,
)

# Prevent BrokenPipeError when piping output
if hasattr(signal, "SIGPIPE"):
    signal.signal(signal.SIGPIPE, signal.SIG_DFL)

DEFAULT_CONFIG_FILE = Path.home() / ".vultr-cli.yaml"
DEFAULT_OUTPUT = "text"
API_KEY_ERROR = (
    "Please export your VULTR API key as an environment variable or add `api-key` to your config file, eg:\n"
    "export VULTR_API_KEY='<api_key_from_vultr_account>'"
)
REQUEST_ERRORS = (APIError, requests.RequestException)
INVOICE_ID_PATTERN = re.compile(r"[+-]?[0-9]+")


@dataclass
class AppConfig:
    api_key: str = ""
    base_url: str = API_BASE_URL
    config_file: Path = DEFAULT_CONFIG_FILE
    output: str = DEFAULT_OUTPUT
    debug: bool = False
    request_timeout: float = 30.0


def load_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:
        raise SystemExit(f"Invalid config file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SystemExit(f"Invalid config file {path}: expected a mapping of settings")
    return data


def load_config(
    config_path: Path,
    base_url: str,
    *,
    output: Optional[str] = None,
    debug: bool = False,
    request_timeout: float = 30.0,
) -> AppConfig:
    file_data = load_config_file(config_path)
    api_key = os.environ.get("VULTR_API_KEY") or str(file_data.get("api-key") or "")
    if debug:
        source = config_path if file_data else "environment only"
        print(f"Config loaded from {source}; api key present={bool(api_key)}", file=sys.stderr)
    return AppConfig(
        api_key=api_key,
        base_url=base_url,
        config_file=config_path,
        output=output or file_data.get("output") or DEFAULT_OUTPUT,
        debug=debug,
        request_timeout=request_timeout,
    )


@dataclass
class Base:
    """Shared context handed to every command handler."""

    config: AppConfig
    client: Any
    printer: Printer
    has_auth: bool = False
    options: ListOptions = field(default_factory=ListOptions)
    args: List[str] = field(default_factory=list)


def build_base(config: AppConfig) -> Base:
    client = VultrClient(
        config.api_key,
        config.base_url,
        timeout=config.request_timeout,
        debug=config.debug,
    )
    return Base(
        config=config,
        client=client,
        printer=Printer(config.output),
        has_auth=bool(config.api_key),
    )


def fail(message: str) -> NoReturn:
    Printer.print_error(message)
    raise SystemExit(1)


def get_paging(args: argparse.Namespace) -> ListOptions:
    return ListOptions(
        cursor=getattr(args, "cursor", "") or "",
        per_page=getattr(args, "per_page", PER_PAGE_DEFAULT),
    )


def set_options(base: Base, args: argparse.Namespace) -> None:
    invoice_id = getattr(args, "invoice_id", None)
    base.args = [invoice_id] if invoice_id else []


def billing_pre_run(args: argparse.Namespace, base: Base) -> None:
    set_options(base, args)
    if not base.has_auth:
        fail(API_KEY_ERROR)


def require_invoice_id(base: Base) -> str:
    if len(base.args) < 1:
        fail("please provide an invoice ID")
    return base.args[0]


def parse_invoice_id(raw_id: str) -> int:
    # optional sign and ASCII digits, nothing else
    if not INVOICE_ID_PATTERN.fullmatch(raw_id):
        raise ValueError(f"invalid syntax for invoice ID: {raw_id!r}")
    return int(raw_id)


# Request forwarding


def list_history(base: Base) -> Tuple[List[Dict[str, Any]], Meta]:
    return base.client.billing.list_history(base.options)


def get_invoice(base: Base) -> Dict[str, Any]:
    return base.client.billing.get_invoice(base.args[0])


def list_invoices(base: Base) -> Tuple[List[Dict[str, Any]], Meta]:
    return base.client.billing.list_invoices(base.options)


def list_invoice_items(base: Base, invoice_id: int) -> Tuple[List[Dict[str, Any]], Meta]:
    return base.client.billing.list_invoice_items(invoice_id, base.options)


# Handlers for subcommands


def handle_history_list(args: argparse.Namespace, base: Base) -> None:
    base.options = get_paging(args)
    try:
        history, meta = list_history(base)
    except REQUEST_ERRORS as exc:
        fail(f"error retrieving billing history list : {exc}")
    base.printer.display(BillingHistoryPrinter(billing=history, meta=meta), None)


def handle_invoice_list(args: argparse.Namespace, base: Base) -> None:
    base.options = get_paging(args)
    try:
        invoices, meta = list_invoices(base)
    except REQUEST_ERRORS as exc:
        fail(f"error retrieving billing invoice list : {exc}")
    base.printer.display(BillingInvoicesPrinter(invoices=invoices, meta=meta), None)


def handle_invoice_get(args: argparse.Namespace, base: Base) -> None:
    require_invoice_id(base)
    try:
        invoice = get_invoice(base)
    except REQUEST_ERRORS as exc:
        fail(f"error getting invoice : {exc}")
    base.printer.display(BillingInvoicePrinter(invoice=invoice), None)


def handle_invoice_items(args: argparse.Namespace, base: Base) -> None:
    raw_id = require_invoice_id(base)
    base.options = get_paging(args)
    try:
        invoice_id = parse_invoice_id(raw_id)
    except ValueError as exc:
        fail(f"error converting invoice item id : {exc}")
    try:
        items, meta = list_invoice_items(base, invoice_id)
    except REQUEST_ERRORS as exc:
        fail(f"error retrieving billing invoice item list : {exc}")
    base.printer.display(BillingInvoiceItemsPrinter(invoice_items=items, meta=meta), None)


def add_paging_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--cursor", default="", help="(optional) Cursor for paging.")
    parser.add_argument(
        "-p",
        "--per-page",
        type=int,
        default=PER_PAGE_DEFAULT,
        help=f"(optional) Number of items requested per page. Default is {PER_PAGE_DEFAULT} and Max is 500.",
    )


def _command(
    subparsers: Any, name: str, aliases: List[str], short: str, long: str, example: str
) -> argparse.ArgumentParser:
    return subparsers.add_parser(
        name,
        aliases=aliases,
        help=short,
        description=long,
        epilog=example,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vultr-cli", description="Vultr billing CLI")
    parser.add_argument(
        "--config",
        default=str(DEFAULT_CONFIG_FILE),
        help=f"Path to YAML config file (default: {DEFAULT_CONFIG_FILE})",
    )
    parser.add_argument(
        "-o",
        "--output",
        default=None,
        choices=OUTPUT_FORMATS,
        help="Output format (default: text, or `output` from the config file)",
    )
    parser.add_argument("--base-url", default=API_BASE_URL, help="Override API base URL")
    parser.add_argument("--debug", action="store_true", help="Print verbose debug output for HTTP calls")
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="HTTP connect/read timeout in seconds (default: 30)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Billing
    billing = _command(
        subparsers,
        "billing",
        [],
        "display billing information",
        "Get all available commands for billing",
        "examples:\n  vultr-cli billing history list\n  vultr-cli billing invoice list",
    )
    billing.set_defaults(pre_run=billing_pre_run)
    billing_sub = billing.add_subparsers(dest="resource", required=True)

    # History
    history = _command(
        billing_sub,
        "history",
        ["h"],
        "display billing history information",
        "Get all available commands for billing history",
        "examples:\n  vultr-cli billing history list\n  vultr-cli billing h l",
    )
    history_sub = history.add_subparsers(dest="action", required=True)

    history_list = _command(
        history_sub,
        "list",
        ["l"],
        "list billing history",
        "Retrieve a list of all billing history on your account",
        "examples:\n  vultr-cli billing history list\n  vultr-cli billing h l --per-page 10",
    )
    add_paging_flags(history_list)
    history_list.set_defaults(func=handle_history_list)

    # Invoices
    invoice = _command(
        billing_sub,
        "invoice",
        ["i"],
        "display invoice information",
        "Get all available commands for billing invoices",
        "examples:\n  vultr-cli billing invoice list\n  vultr-cli billing i l",
    )
    invoice_sub = invoice.add_subparsers(dest="action", required=True)

    invoice_list = _command(
        invoice_sub,
        "list",
        ["l"],
        "list billing invoices",
        "Retrieve a list of all invoices on your account",
        "examples:\n  vultr-cli billing invoice list\n  vultr-cli billing i l --cursor <cursor>",
    )
    add_paging_flags(invoice_list)
    invoice_list.set_defaults(func=handle_invoice_list)

    invoice_get = _command(
        invoice_sub,
        "get",
        ["g"],
        "get invoice",
        "Get a specific invoice on your account",
        "examples:\n  vultr-cli billing invoice get 123456\n  vultr-cli billing i g 123456",
    )
    invoice_get.add_argument("invoice_id", nargs="?", metavar="INVOICE_ID", help="Invoice ID")
    invoice_get.set_defaults(func=handle_invoice_get)

    invoice_items = _command(
        invoice_sub,
        "items",
        ["i"],
        "list invoice items",
        "Retrieve a list of invoice items from a specific invoice on your account",
        "examples:\n  vultr-cli billing invoice items 123456\n  vultr-cli billing i i 123456",
    )
    invoice_items.add_argument("invoice_id", nargs="?", metavar="INVOICE_ID", help="Invoice ID")
    add_paging_flags(invoice_items)
    invoice_items.set_defaults(func=handle_invoice_items)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    config = load_config(
        Path(args.config).expanduser(),
        base_url=args.base_url,
        output=args.output,
        debug=args.debug,
        request_timeout=args.timeout,
    )
    base = build_base(config)

    pre_run = getattr(args, "pre_run", None)
    if pre_run is not None:
        pre_run(args, base)

    args.func(args, base)


if __name__ == "__main__":
    main()

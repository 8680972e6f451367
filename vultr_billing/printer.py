"""Output rendering for billing results (text table, JSON, YAML)."""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TextIO

import yaml
from tabulate import tabulate

from vultr_billing.client import Meta

OUTPUT_FORMATS = ["text", "json", "yaml"]
EMPTY = "---"
SEPARATOR = "======================================"


def _paging(meta: Optional[Meta]) -> List[List[str]]:
    meta = meta or Meta()
    return [
        ["TOTAL", str(meta.total)],
        ["NEXT PAGE", meta.links.next],
        ["PREV PAGE", meta.links.prev],
    ]


def _meta_dict(meta: Optional[Meta]) -> Dict[str, Any]:
    return (meta or Meta()).to_dict()


def _invoice_row(invoice: Dict[str, Any]) -> List[Any]:
    return [
        invoice.get("id", ""),
        invoice.get("date", ""),
        invoice.get("description", ""),
        invoice.get("amount", ""),
        invoice.get("balance", ""),
    ]


INVOICE_COLUMNS = ["ID", "DATE", "DESCRIPTION", "AMOUNT", "BALANCE"]


@dataclass
class BillingHistoryPrinter:
    billing: List[Dict[str, Any]]
    meta: Optional[Meta] = None

    def columns(self) -> List[str]:
        return ["ID", "DATE", "TYPE", "DESCRIPTION", "AMOUNT", "BALANCE"]

    def data(self) -> List[List[Any]]:
        if not self.billing:
            return [[EMPTY] * len(self.columns())]
        return [
            [
                row.get("id", ""),
                row.get("date", ""),
                row.get("type", ""),
                row.get("description", ""),
                row.get("amount", ""),
                row.get("balance", ""),
            ]
            for row in self.billing
        ]

    def paging(self) -> List[List[str]]:
        return _paging(self.meta)

    def to_dict(self) -> Dict[str, Any]:
        return {"billing_history": self.billing, "meta": _meta_dict(self.meta)}


@dataclass
class BillingInvoicesPrinter:
    invoices: List[Dict[str, Any]]
    meta: Optional[Meta] = None

    def columns(self) -> List[str]:
        return INVOICE_COLUMNS

    def data(self) -> List[List[Any]]:
        if not self.invoices:
            return [[EMPTY] * len(INVOICE_COLUMNS)]
        return [_invoice_row(inv) for inv in self.invoices]

    def paging(self) -> List[List[str]]:
        return _paging(self.meta)

    def to_dict(self) -> Dict[str, Any]:
        return {"billing_invoices": self.invoices, "meta": _meta_dict(self.meta)}


@dataclass
class BillingInvoicePrinter:
    invoice: Dict[str, Any] = field(default_factory=dict)

    def columns(self) -> List[str]:
        return INVOICE_COLUMNS

    def data(self) -> List[List[Any]]:
        return [_invoice_row(self.invoice)]

    def paging(self) -> List[List[str]]:
        return []

    def to_dict(self) -> Dict[str, Any]:
        return {"billing_invoice": self.invoice}


@dataclass
class BillingInvoiceItemsPrinter:
    invoice_items: List[Dict[str, Any]]
    meta: Optional[Meta] = None

    def columns(self) -> List[str]:
        return ["DESCRIPTION", "PRODUCT", "START DATE", "END DATE", "UNITS", "UNIT TYPE", "UNIT PRICE", "TOTAL"]

    def data(self) -> List[List[Any]]:
        if not self.invoice_items:
            return [[EMPTY] * len(self.columns())]
        return [
            [
                item.get("description", ""),
                item.get("product", ""),
                item.get("start_date", ""),
                item.get("end_date", ""),
                item.get("units", ""),
                item.get("unit_type", ""),
                item.get("unit_price", ""),
                item.get("total", ""),
            ]
            for item in self.invoice_items
        ]

    def paging(self) -> List[List[str]]:
        return _paging(self.meta)

    def to_dict(self) -> Dict[str, Any]:
        return {"invoice_items": self.invoice_items, "meta": _meta_dict(self.meta)}


class Printer:
    def __init__(self, output: str = "text", stream: Optional[TextIO] = None):
        if output not in OUTPUT_FORMATS:
            raise SystemExit(f"Invalid output format {output!r}. Choose from: {', '.join(OUTPUT_FORMATS)}")
        self.output = output
        self.stream = stream

    def _write(self, text: str) -> None:
        print(text, file=self.stream or sys.stdout)

    def display(self, data: Any, err: Optional[BaseException] = None) -> None:
        if err is not None:
            self.print_error(err)
            raise SystemExit(1)

        if self.output == "json":
            self._write(json.dumps(data.to_dict(), indent=4))
            return

        if self.output == "yaml":
            self._write(yaml.safe_dump(data.to_dict(), sort_keys=False).rstrip("\n"))
            return

        self._write(tabulate(data.data(), headers=data.columns(), tablefmt="plain"))
        paging = data.paging()
        if paging:
            self._write(SEPARATOR)
            self._write(tabulate(paging, tablefmt="plain"))

    @staticmethod
    def print_error(err: Any) -> None:
        print(f"Error: {err}", file=sys.stderr)

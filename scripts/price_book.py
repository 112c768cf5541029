#!/usr/bin/env python3
"""Batch-price a book of European options through ``OptionModel``.

Usage
-----
    python scripts/price_book.py --input book.csv --output prices.csv
    python scripts/price_book.py --input book.csv --output prices.json --greeks

Input CSV format
----------------
    id,underlying,strike,days,rate,sigma,dividend,kind
    1,100,110,30,0.01,0.20,0.0,call
    2,100,95,90,0.01,0.25,0.01,put

``strike`` may be left empty when a ``delta`` column is present; the strike
is then solved from the delta.  A ``target_price`` column replaces ``sigma``
by the volatility reproducing that price.

Output
------
    CSV or JSON with columns: id, strike, sigma, price, and with --greeks
    delta, gamma, theta, vega.  Rows that fail carry an ``error`` column.
"""

from __future__ import annotations
import argparse
import csv
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from optmodel.errors import OptionModelError
from optmodel.model import OptionModel

logger = logging.getLogger("price_book")

_COLUMNS = {
    "underlying": "underlying",
    "strike": "strike",
    "delta": "delta",
    "days": "days_to_expiry",
    "time": "time_to_expiry",
    "rate": "interest_rate",
    "sigma": "volatility",
    "dividend": "dividend_yield",
    "target_price": "target_price",
    "kind": "option_type",
}


def row_config(row: dict) -> dict:
    """Map a CSV row onto an ``OptionModel.from_config`` record; blank cells are dropped."""
    config = {}
    for column, key in _COLUMNS.items():
        value = (row.get(column) or "").strip()
        if not value:
            continue
        config[key] = value if key == "option_type" else float(value)
    return config


def price_row(row: dict, compute_greeks: bool) -> dict:
    """Price a single book row and return result dict."""
    model = OptionModel.from_config(row_config(row))
    result = {
        "id": row.get("id", ""),
        "strike": model.strike,
        "sigma": model.volatility,
        "price": model.price(),
    }
    if compute_greeks:
        g = model.greeks()
        for key in ("delta", "gamma", "theta", "vega"):
            result[key] = g[key]
    return result


def price_book(rows: list[dict], compute_greeks: bool = False) -> list[dict]:
    results = []
    for i, row in enumerate(rows):
        try:
            results.append(price_row(row, compute_greeks))
        except (OptionModelError, ValueError, TypeError) as e:
            logger.error("row %d (id=%s): %s", i, row.get("id", "?"), e)
            results.append({"id": row.get("id", ""), "price": None, "error": str(e)})
    return results


def write_results(results: list[dict], output_path: Path) -> None:
    if output_path.suffix == ".json":
        with open(output_path, "w") as f:
            json.dump(results, f, indent=2, default=str)
        return

    fieldnames: list[str] = []
    for r in results:
        for k in r:
            if k not in fieldnames:
                fieldnames.append(k)
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(results)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Batch-price a book of European options.")
    parser.add_argument("--input", required=True, help="Path to book CSV")
    parser.add_argument("--output", required=True, help="Output path (.csv or .json)")
    parser.add_argument("--greeks", action="store_true", help="Compute Greeks")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    with open(args.input, newline="") as f:
        rows = list(csv.DictReader(f))

    logger.info("pricing %d positions", len(rows))
    results = price_book(rows, args.greeks)
    if not results:
        logger.info("no results to write")
        return

    write_results(results, Path(args.output))

    priced = sum(1 for r in results if r.get("price") is not None)
    logger.info("results written to %s (priced %d, failed %d)",
                args.output, priced, len(results) - priced)


if __name__ == "__main__":
    main()

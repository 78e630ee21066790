#!/usr/bin/env python3
"""Synthetic offtake dataset generator for performance testing.

Produces CSV (or XLSX) files in the grouped offtake layout:

    Date, Farmer Name, Gender, ID Number, Phone Number, County, Sub County,
    Location, Live Weight 1, Carcass Weight 1, Price 1, ..., Live Weight N, ...

A share of rows are continuation rows (blank ID Number) that attach their
animals to the previous transaction, and some unit groups are left blank.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

import numpy as np
import pandas as pd

COUNTIES = ["Isiolo", "Marsabit", "Garissa", "Wajir", "Samburu", "Turkana"]
LOCATIONS = ["Kinna", "Merti", "Oldonyiro", "Laisamis", "Dadaab", "Lodwar"]
FIRST_NAMES = ["Amina", "Hassan", "Jane", "Peter", "Halima", "Ali", "Grace", "Abdi"]
LAST_NAMES = ["Doe", "Wario", "Guyo", "Ekal", "Lokai", "Hussein", "Adan", "Boru"]


def generate_offtake_frame(rows: int, units: int = 3, seed: int = 42, continuation_rate: float = 0.1) -> pd.DataFrame:
    """Build the synthetic offtake table.

    Args:
        rows: Number of data rows
        units: Animals (column groups) per row
        seed: Random seed for reproducible data
        continuation_rate: Share of rows with a blank ID Number
    """
    rng = np.random.default_rng(seed)

    ids = rng.integers(10_000_000, 40_000_000, rows).astype(str)
    continuation = rng.random(rows) < continuation_rate
    continuation[0] = False
    ids = np.where(continuation, "", ids)

    dates = pd.date_range("2024-01-01", "2024-12-31", periods=60)
    data: dict[str, object] = {
        "Date": rng.choice(dates, rows),
        "Farmer Name": [
            f"{f} {l}" for f, l in zip(rng.choice(FIRST_NAMES, rows), rng.choice(LAST_NAMES, rows), strict=True)
        ],
        "Gender": rng.choice(["Male", "Female"], rows),
        "ID Number": ids,
        "Phone Number": [f"07{n:08d}" for n in rng.integers(0, 99_999_999, rows)],
        "County": rng.choice(COUNTIES, rows),
        "Sub County": rng.choice(LOCATIONS, rows),
        "Location": rng.choice(LOCATIONS, rows),
    }
    for unit in range(1, units + 1):
        live = np.round(rng.uniform(18, 45, rows), 1)
        carcass = np.round(live * rng.uniform(0.42, 0.52, rows), 2)
        price = np.round(live * rng.uniform(180, 260, rows), 0)
        blank = rng.random(rows) < (0.0 if unit == 1 else 0.3)
        data[f"Live Weight {unit} (kg)"] = np.where(blank, "", live.astype(str))
        data[f"Carcass Weight {unit} (kg)"] = np.where(blank, "", carcass.astype(str))
        data[f"Price {unit}"] = np.where(blank, "", [f"KES {p:,.0f}" for p in price])

    df = pd.DataFrame(data)
    df["Date"] = pd.to_datetime(df["Date"]).dt.strftime("%Y-%m-%d")
    return df


def write_dataset(output: Path, rows: int, units: int = 3, seed: int = 42) -> Path:
    output.parent.mkdir(parents=True, exist_ok=True)
    df = generate_offtake_frame(rows, units, seed)
    if output.suffix.lower() == ".xlsx":
        df.to_excel(output, index=False, engine="openpyxl")
    else:
        df.to_csv(output, index=False)
    return output


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate synthetic offtake datasets for performance testing")
    parser.add_argument("output", type=Path, help="Output .csv or .xlsx path")
    parser.add_argument("--rows", type=int, default=20_000, help="Number of data rows (default: 20,000)")
    parser.add_argument("--units", type=int, default=3, help="Animal column groups per row (default: 3)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    args = parser.parse_args()

    if args.rows <= 0:
        print("Error: --rows must be positive", file=sys.stderr)
        return 1
    if args.units <= 0:
        print("Error: --units must be positive", file=sys.stderr)
        return 1

    path = write_dataset(args.output, args.rows, args.units, args.seed)
    print(f"Created dataset: {path} ({args.rows:,} rows, {args.units} units per row)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

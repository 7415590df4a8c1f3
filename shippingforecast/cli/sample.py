"""
Print generated forecast text without speaking it.

    shipping-forecast-sample --count 5
    shipping-forecast-sample --broadcast --seed 42
    shipping-forecast-sample --count 1 --ssml
"""
from __future__ import annotations

import argparse
import json
import random
import sys
from typing import TextIO

from ..areas import DEFAULT_PHANTOM_PROBABILITY, AreaCycler
from ..broadcast import BroadcastGenerator
from ..generator import ReportGenerator
from ..ssml import SSMLBuilder


def _report_dict(report) -> dict:
    return {
        "area": report.area.name,
        "kind": report.area.kind.value,
        "wind": report.wind_text,
        "precipitation": report.precipitation.text,
        "visibility": report.visibility_text,
        "icing": report.icing.text if report.icing else None,
        "timestamp": report.timestamp,
        "text": report.text,
    }


def run(args: argparse.Namespace, out: TextIO) -> int:
    rng = random.Random(args.seed)
    cycler = AreaCycler(rng=rng, phantom_probability=args.phantom_probability)
    generator = ReportGenerator(cycler=cycler, rng=rng)
    ssml = SSMLBuilder(rng=rng)

    if args.broadcast:
        b = BroadcastGenerator(generator, rng=rng).generate_broadcast(area_count=args.count or 31)
        out.write((ssml.build_broadcast(b) if args.ssml else b.text) + "\n")
        return 0

    for _ in range(args.count or 1):
        report = generator.generate()
        if args.ssml:
            out.write(ssml.build(report).ssml + "\n")
        elif args.json:
            out.write(json.dumps(_report_dict(report)) + "\n")
        else:
            out.write(report.text + "\n")
    return 0


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Print procedurally generated shipping forecasts")
    ap.add_argument("--count", type=int, default=None, help="reports to print (areas per broadcast with --broadcast)")
    ap.add_argument("--broadcast", action="store_true", help="print a full broadcast with introduction and synopsis")
    ap.add_argument("--ssml", action="store_true", help="print SSML markup instead of plain text")
    ap.add_argument("--json", action="store_true", help="one JSON object per report")
    ap.add_argument("--seed", type=int, default=None)
    ap.add_argument("--phantom-probability", type=float, default=DEFAULT_PHANTOM_PROBABILITY)
    args = ap.parse_args(argv)

    if args.count is not None and args.count < 1:
        ap.error("--count must be positive")
    if not 0.0 <= args.phantom_probability <= 1.0:
        ap.error("--phantom-probability must be within [0, 1]")

    return run(args, sys.stdout)


if __name__ == "__main__":
    raise SystemExit(main())

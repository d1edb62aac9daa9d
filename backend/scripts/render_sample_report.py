#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.core.config import get_settings
from app.schemas.report import ScreeningReportCreate
from app.services.report_composer import render_screening_report

SAMPLE_REQUEST = {
    "title": "BREAST SCREENING REPORT",
    "patient": {
        "first_name": "Jane",
        "last_name": "Doe",
        "address": "123 Main St, Anytown, CA 90210",
        "contact": "+1 555-123-4567",
        "gender": "Female",
        "age": "42",
        "weight": "65",
        "height": "165 cm",
    },
    "doctor": {"name": "Dr. Sarah Johnson", "specialization": "Oncologist"},
    "hospital": {"name": "Memorial Medical Center", "address": "456 Hospital Blvd, Anytown, CA 90210"},
}

SLOT_OPTIONS = ("leftTop", "leftCenter", "leftBottom", "rightTop", "rightCenter", "rightBottom")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Render the sample breast screening report to a PDF file.")
    parser.add_argument("--output", type=Path, default=Path("sample-screening-report.pdf"), help="Destination PDF.")
    parser.add_argument("--title", default=None, help="Override the report title.")
    parser.add_argument("--hospital-logo-url", default=None, help="Optional hospital logo image URL.")
    parser.add_argument("--deadline", type=float, default=None, help="Overall deadline in seconds.")
    for slot in SLOT_OPTIONS:
        parser.add_argument(f"--{slot}", dest=slot, default=None, help=f"Image URL for the {slot} slot.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=get_settings().log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    payload = dict(SAMPLE_REQUEST)
    if args.title:
        payload["title"] = args.title
    payload["hospital"] = {**SAMPLE_REQUEST["hospital"], "logo_url": args.hospital_logo_url}
    payload["images"] = {slot: getattr(args, slot) for slot in SLOT_OPTIONS if getattr(args, slot)}

    request = ScreeningReportCreate.model_validate(payload)
    rendered = render_screening_report(request, deadline_seconds=args.deadline)
    args.output.write_bytes(rendered.pdf_bytes)

    print(f"Report written to {args.output} ({len(rendered.pdf_bytes)} bytes)")
    for slot, asset in rendered.assets.items():
        print(f"  {slot.value:<13} {asset.status.value:<11} {asset.origin}")


if __name__ == "__main__":
    main()

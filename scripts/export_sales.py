#!/usr/bin/env python3
"""
Sales Export Script

Exports sales from the Supabase database to CSV for commission reconciliation.
Uses the same column layout as the admin export endpoint.

Usage:
    python export_sales.py --output sales_export.csv
    python export_sales.py --start-date 2025-03-01 --end-date 2025-03-31 --output march.csv
    python export_sales.py --status verified --include-evidence --output verified.csv
"""

from __future__ import annotations

import argparse
import sys
from datetime import date
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.sale import SaleChannel, SaleStatus
from repositories.client import get_supabase
from repositories.filters import SaleQueryFilters
from repositories.store import SupabaseSalesStore, list_all_sales
from services.csv_export_service import iter_sales_csv
from services.settings import load_settings


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date {value!r}; expected YYYY-MM-DD")


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Export sales from Supabase database to CSV",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Export all sales
  python export_sales.py --output all_sales.csv

  # Export March 2025 (calendar days in REPORTING_TIMEZONE)
  python export_sales.py --start-date 2025-03-01 --end-date 2025-03-31 --output march.csv

  # Export verified Instagram sales with evidence columns
  python export_sales.py --channel instagram --status verified --include-evidence -o ig.csv
        """
    )

    parser.add_argument(
        "--output",
        "-o",
        required=True,
        help="Path to output CSV file"
    )

    parser.add_argument("--start-date", type=_parse_date, help="First day (inclusive), YYYY-MM-DD")
    parser.add_argument("--end-date", type=_parse_date, help="Last day (inclusive), YYYY-MM-DD")

    parser.add_argument(
        "--channel",
        choices=[c.value for c in SaleChannel],
        help="Filter by channel"
    )

    parser.add_argument(
        "--status",
        choices=[s.value for s in SaleStatus],
        help="Filter by status"
    )

    parser.add_argument(
        "--include-evidence",
        action="store_true",
        help="Append Keywords Found and Message Count columns"
    )

    args = parser.parse_args()

    try:
        settings = load_settings()
        store = SupabaseSalesStore(get_supabase())

        print("Fetching sales from database...")
        print(f"  Date range: {args.start_date or 'open'} -> {args.end_date or 'open'}")
        print(f"  Channel filter: {args.channel or 'None (all)'}")
        print(f"  Status filter: {args.status or 'None (all)'}")
        print()

        filters = SaleQueryFilters.for_dates(
            args.start_date,
            args.end_date,
            settings.tzinfo,
            channel=SaleChannel(args.channel) if args.channel else None,
            status=SaleStatus(args.status) if args.status else None,
        )
        sales = list_all_sales(store, filters)

        if not sales:
            print("No sales found matching the specified filters")
            return 1

        with open(args.output, "w", newline="", encoding="utf-8") as f:
            for line in iter_sales_csv(
                sales,
                include_evidence=args.include_evidence,
                evidence_lookup=store.get_evidence,
            ):
                f.write(line)

        verified = [s for s in sales if s.is_recognized]

        print("=" * 60)
        print("EXPORT SUMMARY")
        print("=" * 60)
        print(f"Total sales exported: {len(sales)}")
        print(f"  Verified sales:   {len(verified)}")
        print(f"  Verified commission: {sum((s.commission_amount for s in verified), start=0):.2f}")
        print()
        print(f"Output file: {args.output}")
        print("=" * 60)

        return 0

    except KeyboardInterrupt:
        print("\n\nExport interrupted by user")
        return 130

    except Exception as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())

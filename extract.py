"""
Command-line entry point: import one bank statement into the configured database.
"""
import argparse
import json
import logging
import sys
from pathlib import Path

from config import Settings
from errors import StatementError
from file_loader import FileLoader
from importer import STRATEGY_AI, STRATEGY_LOCAL, build_importer
from snapshot import format_inr, snapshot_for_user

logger = logging.getLogger(__name__)


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(description='Import transactions from a bank statement')
    parser.add_argument('file_path', help='Path to a CSV or PDF bank statement')
    parser.add_argument('--user', default='local', help='Owner of the imported transactions')
    parser.add_argument(
        '--strategy',
        choices=[STRATEGY_LOCAL, STRATEGY_AI],
        help='PDF parsing strategy (defaults to PDF_STRATEGY)',
    )
    parser.add_argument('-o', '--output', help='Output JSON file path')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')

    args = parser.parse_args(argv)

    settings = Settings.from_env()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    if not Path(args.file_path).exists():
        print(f"Error: File not found - {args.file_path}")
        return 1

    try:
        kind, content = FileLoader().load_file(args.file_path)
        importer = build_importer(settings)
        result = importer.import_statement(
            args.user,
            Path(args.file_path).name,
            content,
            kind,
            strategy=args.strategy,
        )
    except StatementError as e:
        logger.error(f"Import failed: {e.message}")
        print(f"Error: {e.message}")
        return 1

    output_data = result.model_dump()
    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            json.dump(output_data, f, indent=2, ensure_ascii=False)
        print(f"Results written to: {args.output}")
    else:
        print(json.dumps(output_data, indent=2, ensure_ascii=False))

    snapshot = snapshot_for_user(importer.store, args.user)
    if snapshot is not None:
        print(f"\nSummary:")
        print(f"- Window: {snapshot.from_date} to {snapshot.to_date}")
        print(f"- Monthly burn: {format_inr(snapshot.burn_monthly_paise)}")
        if snapshot.runway_months is not None:
            print(f"- Runway: {snapshot.runway_months:.1f} months")

    return 0


if __name__ == "__main__":
    sys.exit(main())

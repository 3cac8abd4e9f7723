#!/usr/bin/env python3
"""
Delete pseudonym mappings whose retention window has passed.

Intended to run daily from cron or a scheduled container job.

Usage:
    python scripts/cleanup_expired_mappings.py
    python scripts/cleanup_expired_mappings.py --dry-run
    python scripts/cleanup_expired_mappings.py --batch-size 1000
"""

import argparse
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()


def main():
    parser = argparse.ArgumentParser(description='Delete expired pseudonym mappings')
    parser.add_argument('--dry-run', action='store_true', help='Only report how many mappings are expired')
    parser.add_argument('--batch-size', type=int, default=None,
                        help='Mappings deleted per transaction (default: SystemConfig setting)')
    args = parser.parse_args()

    from app import create_app
    from ai.services import build_expiry_sweeper

    app = create_app()
    with app.app_context():
        sweeper = build_expiry_sweeper()
        if args.batch_size:
            if args.batch_size < 1:
                parser.error('--batch-size must be positive')
            sweeper.batch_size = args.batch_size

        if args.dry_run:
            print(f"[DRY RUN] {sweeper.count_expired()} expired mappings would be deleted")
            return 0

        deleted = sweeper.sweep()
        print(f"Deleted {deleted} expired mappings")
    return 0


if __name__ == '__main__':
    sys.exit(main())

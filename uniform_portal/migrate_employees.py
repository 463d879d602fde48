from __future__ import annotations

import argparse

from uniform_portal.db import SessionLocal
from uniform_portal.dependencies import get_cycle_config, get_field_cipher
from uniform_portal.logging_config import configure_logging
from uniform_portal.services.migration_service import backfill_cycle_durations, reencrypt_employee_emails


def main() -> None:
    parser = argparse.ArgumentParser(description='One-off employee record migrations.')
    parser.add_argument(
        'task',
        choices=['reencrypt-emails', 'backfill-cycles'],
        help='reencrypt-emails: move legacy/old-scheme emails to the current scheme and write lookup tokens. '
        'backfill-cycles: persist default reissuance cycles on employees without one.',
    )
    parser.add_argument('--batch-size', type=int, default=500)
    parser.add_argument('--dry-run', action='store_true', help='Report what would change without writing.')
    args = parser.parse_args()

    configure_logging()

    with SessionLocal() as db:
        if args.task == 'reencrypt-emails':
            result = reencrypt_employee_emails(
                db,
                cipher=get_field_cipher(),
                batch_size=args.batch_size,
                dry_run=args.dry_run,
            )
            summary = (
                f'scanned={result.scanned}, reencrypted={result.reencrypted}, '
                f'tokens_backfilled={result.tokens_backfilled}, failed={len(result.failed)}'
            )
        else:
            updated = backfill_cycle_durations(db, config=get_cycle_config(), dry_run=args.dry_run)
            summary = f'updated={updated}'

        if args.dry_run:
            db.rollback()
        else:
            db.commit()

    print(f'{args.task} complete{" (dry run)" if args.dry_run else ""}: {summary}')


if __name__ == '__main__':
    main()

#!/usr/bin/env python3
"""Run the dispute deadline scanner from cron.

Usage:
    python scripts/run_dispute_scanner.py reminders   # hourly
    python scripts/run_dispute_scanner.py overdue     # daily
    python scripts/run_dispute_scanner.py all
"""

import sys
import os

# Add parent directory to path to import app modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from chama_disputes import create_app
from chama_disputes.services.dispute_reminders import check_approaching_deadlines, check_overdue_disputes

PASSES = {
    'reminders': [check_approaching_deadlines],
    'overdue': [check_overdue_disputes],
    'all': [check_approaching_deadlines, check_overdue_disputes],
}


def main(argv):
    if len(argv) != 2 or argv[1] not in PASSES:
        print(__doc__)
        return 2

    app = create_app(os.getenv('FLASK_ENV', 'production'))
    with app.app_context():
        for scan in PASSES[argv[1]]:
            summary = scan()
            print(f"{scan.__name__}: {summary}")
            if summary.get('errors'):
                return 1
    return 0


if __name__ == '__main__':
    sys.exit(main(sys.argv))

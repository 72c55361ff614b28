#!/usr/bin/env python
"""Database initialization script for the chama disputes service.

Creates all tables from the SQLAlchemy models. Production databases should
use `flask db upgrade` instead; this is for local setups.

Usage:
    python init_db.py
"""

import os
import sys
from chama_disputes import create_app, db


TABLES_INFO = [
    ("users", "Platform users (display and admin checks)"),
    ("chama_members", "Chama membership and officer roles"),
    ("disputes", "Disputes and their lifecycle state"),
    ("dispute_evidence", "Evidence attached to disputes"),
    ("dispute_comments", "Discussion comments"),
    ("dispute_votes", "Member votes, one per member per dispute"),
    ("dispute_escalations", "Platform review requests"),
    ("dispute_reminders", "Deadline reminder markers"),
    ("dispute_audit_logs", "Lifecycle audit trail"),
    ("notifications", "In-app notifications"),
    ("push_subscriptions", "Web push subscriptions"),
]


def init_database():
    """Initialize the database by creating all tables."""
    config_name = os.getenv('FLASK_ENV', 'development')
    app = create_app(config_name)

    print(f"\n{'='*60}")
    print(f"Database Initialization for {config_name.upper()} Environment")
    print(f"{'='*60}\n")

    with app.app_context():
        try:
            print("Creating database tables...")
            print(f"Database URI: {app.config['SQLALCHEMY_DATABASE_URI']}\n")

            db.create_all()

            print("Created tables:")
            for table_name, description in TABLES_INFO:
                print(f"  - {table_name:<25} {description}")

            print(f"\n{'='*60}")
            print("Database initialization complete!")
            print(f"{'='*60}\n")
            print("Next steps:")
            print("  1. Start the Flask server: python wsgi.py")
            print("  2. Schedule the scanner: flask disputes check-reminders (hourly)")
            print("     and flask disputes check-overdue (daily)\n")
            return True

        except Exception as e:
            print(f"Error creating database: {type(e).__name__}: {e}\n")
            return False


if __name__ == '__main__':
    success = init_database()
    sys.exit(0 if success else 1)

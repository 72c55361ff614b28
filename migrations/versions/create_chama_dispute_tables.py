"""Create chama dispute tables

Revision ID: create_chama_dispute_tables
Revises:
Create Date: 2026-10-19

Creates users, chama membership, notification, push subscription and the
dispute lifecycle tables (disputes, evidence, comments, votes,
escalations, reminder markers and the audit log).
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision = 'create_chama_dispute_tables'
down_revision = None
branch_labels = None
depends_on = None


def table_exists(table_name):
    """Check if a table exists."""
    bind = op.get_bind()
    inspector = inspect(bind)
    return table_name in inspector.get_table_names()


def upgrade():
    if not table_exists('users'):
        op.create_table(
            'users',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('username', sa.String(80), nullable=False),
            sa.Column('email', sa.String(120), nullable=True),
            sa.Column('phone', sa.String(20), nullable=True),
            sa.Column('first_name', sa.String(80), nullable=True),
            sa.Column('last_name', sa.String(80), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_users_username', 'users', ['username'], unique=True)
        op.create_index('ix_users_email', 'users', ['email'], unique=True)

    if not table_exists('chama_members'):
        op.create_table(
            'chama_members',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('chama_id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('role', sa.String(20), nullable=False),
            sa.Column('status', sa.String(20), nullable=False),
            sa.Column('joined_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('chama_id', 'user_id', name='uq_chama_members_chama_user'),
        )
        op.create_index('ix_chama_members_chama_id', 'chama_members', ['chama_id'])
        op.create_index('ix_chama_members_user_id', 'chama_members', ['user_id'])

    if not table_exists('notifications'):
        op.create_table(
            'notifications',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('type', sa.String(50), nullable=False),
            sa.Column('title', sa.String(200), nullable=False),
            sa.Column('message', sa.Text(), nullable=False),
            sa.Column('data', sa.Text(), nullable=True),
            sa.Column('related_type', sa.String(50), nullable=True),
            sa.Column('related_id', sa.Integer(), nullable=True),
            sa.Column('is_read', sa.Boolean(), nullable=True),
            sa.Column('read_at', sa.DateTime(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=True),
        )
        op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])

    if not table_exists('push_subscriptions'):
        op.create_table(
            'push_subscriptions',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('endpoint', sa.Text(), nullable=False, unique=True),
            sa.Column('p256dh_key', sa.Text(), nullable=False),
            sa.Column('auth_key', sa.Text(), nullable=False),
            sa.Column('device_name', sa.String(100), nullable=True),
            sa.Column('notify_disputes', sa.Boolean(), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=True),
            sa.Column('last_used_at', sa.DateTime(), nullable=True),
            sa.Column('failed_count', sa.Integer(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=True),
        )

    if not table_exists('disputes'):
        op.create_table(
            'disputes',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('chama_id', sa.Integer(), nullable=False),
            sa.Column('filed_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('filed_against_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
            sa.Column('dispute_type', sa.String(30), nullable=False),
            sa.Column('title', sa.String(200), nullable=False),
            sa.Column('description', sa.Text(), nullable=False),
            sa.Column('priority', sa.String(20), nullable=False),
            sa.Column('amount_disputed', sa.Numeric(12, 2), nullable=True),
            sa.Column('related_transaction_id', sa.String(64), nullable=True),
            sa.Column('related_loan_id', sa.String(64), nullable=True),
            sa.Column('related_contribution_id', sa.String(64), nullable=True),
            sa.Column('related_payout_id', sa.String(64), nullable=True),
            sa.Column('status', sa.String(20), nullable=False),
            sa.Column('discussion_deadline', sa.DateTime(), nullable=True),
            sa.Column('voting_deadline', sa.DateTime(), nullable=True),
            sa.Column('required_votes', sa.Integer(), nullable=True),
            sa.Column('resolution_type', sa.String(30), nullable=True),
            sa.Column('resolution_notes', sa.Text(), nullable=True),
            sa.Column('resolved_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
            sa.Column('resolved_at', sa.DateTime(), nullable=True),
            sa.Column('escalated_at', sa.DateTime(), nullable=True),
            sa.Column('platform_resolution', sa.Text(), nullable=True),
            sa.Column('extra', sa.JSON(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
        )
        for column in ('chama_id', 'filed_by_user_id', 'filed_against_user_id', 'dispute_type', 'status',
                       'discussion_deadline', 'voting_deadline', 'escalated_at', 'created_at'):
            op.create_index(f'ix_disputes_{column}', 'disputes', [column])

    if not table_exists('dispute_evidence'):
        op.create_table(
            'dispute_evidence',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('dispute_id', sa.Integer(), sa.ForeignKey('disputes.id'), nullable=False),
            sa.Column('submitted_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('evidence_type', sa.String(30), nullable=False),
            sa.Column('title', sa.String(200), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('file_url', sa.String(500), nullable=True),
            sa.Column('file_key', sa.String(300), nullable=True),
            sa.Column('file_type', sa.String(100), nullable=True),
            sa.Column('file_size', sa.Integer(), nullable=True),
            sa.Column('external_reference', sa.String(255), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_dispute_evidence_dispute_id', 'dispute_evidence', ['dispute_id'])

    if not table_exists('dispute_comments'):
        op.create_table(
            'dispute_comments',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('dispute_id', sa.Integer(), sa.ForeignKey('disputes.id'), nullable=False),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('parent_comment_id', sa.Integer(), sa.ForeignKey('dispute_comments.id'), nullable=True),
            sa.Column('content', sa.Text(), nullable=False),
            sa.Column('is_internal', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_dispute_comments_dispute_id', 'dispute_comments', ['dispute_id'])
        op.create_index('ix_dispute_comments_user_id', 'dispute_comments', ['user_id'])

    if not table_exists('dispute_votes'):
        op.create_table(
            'dispute_votes',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('dispute_id', sa.Integer(), sa.ForeignKey('disputes.id'), nullable=False),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('decision', sa.String(10), nullable=False),
            sa.Column('reason', sa.Text(), nullable=True),
            sa.Column('cast_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('dispute_id', 'user_id', name='uq_dispute_votes_dispute_user'),
        )
        op.create_index('ix_dispute_votes_dispute_id', 'dispute_votes', ['dispute_id'])
        op.create_index('ix_dispute_votes_user_id', 'dispute_votes', ['user_id'])

    if not table_exists('dispute_escalations'):
        op.create_table(
            'dispute_escalations',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('dispute_id', sa.Integer(), sa.ForeignKey('disputes.id'), nullable=False),
            sa.Column('escalated_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
            sa.Column('reason', sa.Text(), nullable=False),
            sa.Column('escalated_at', sa.DateTime(), nullable=False),
            sa.Column('status', sa.String(20), nullable=False),
            sa.Column('reviewed_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
            sa.Column('reviewed_at', sa.DateTime(), nullable=True),
            sa.Column('decision', sa.String(20), nullable=True),
            sa.Column('decision_notes', sa.Text(), nullable=True),
            sa.Column('platform_action', sa.JSON(), nullable=True),
        )
        op.create_index('ix_dispute_escalations_dispute_id', 'dispute_escalations', ['dispute_id'])
        op.create_index('ix_dispute_escalations_escalated_at', 'dispute_escalations', ['escalated_at'])
        op.create_index('ix_dispute_escalations_status', 'dispute_escalations', ['status'])

    if not table_exists('dispute_reminders'):
        op.create_table(
            'dispute_reminders',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('dispute_id', sa.Integer(), sa.ForeignKey('disputes.id'), nullable=False),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('phase', sa.String(30), nullable=False),
            sa.Column('last_sent_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('dispute_id', 'user_id', 'phase', name='uq_dispute_reminders_target'),
        )
        op.create_index('ix_dispute_reminders_dispute_id', 'dispute_reminders', ['dispute_id'])

    if not table_exists('dispute_audit_logs'):
        op.create_table(
            'dispute_audit_logs',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('dispute_id', sa.Integer(), sa.ForeignKey('disputes.id'), nullable=False),
            sa.Column('actor_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
            sa.Column('action', sa.String(50), nullable=False),
            sa.Column('from_status', sa.String(20), nullable=True),
            sa.Column('to_status', sa.String(20), nullable=True),
            sa.Column('details', sa.JSON(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_dispute_audit_logs_dispute_id', 'dispute_audit_logs', ['dispute_id'])


def downgrade():
    for table_name in ('dispute_audit_logs', 'dispute_reminders', 'dispute_escalations', 'dispute_votes',
                       'dispute_comments', 'dispute_evidence', 'disputes', 'push_subscriptions',
                       'notifications', 'chama_members', 'users'):
        if table_exists(table_name):
            op.drop_table(table_name)

"""dispatch core schema

Revision ID: c4e1a9b27d10
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c4e1a9b27d10'
down_revision = None
branch_labels = None
depends_on = None


def _ts(name, nullable=False):
    return sa.Column(name, sa.DateTime(), nullable=nullable)


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('personal_code', sa.String(length=12), nullable=True),
        sa.Column('check_in_token', sa.String(length=64), nullable=True),
        sa.Column('daily_status', sa.String(length=16), nullable=False, server_default='off'),
        _ts('created_at'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_phone', 'users', ['phone'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_personal_code', 'users', ['personal_code'], unique=True)

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('requester_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('matched_helper_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('company_name', sa.String(length=120), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price_per_unit', sa.Integer(), nullable=False),
        sa.Column('is_urgent', sa.Boolean(), nullable=False),
        sa.Column('min_applied', sa.Boolean(), nullable=False),
        sa.Column('urgent_applied', sa.Boolean(), nullable=False),
        sa.Column('scheduled_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        _ts('created_at'),
        _ts('updated_at'),
    )
    op.create_index('ix_orders_requester_id', 'orders', ['requester_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_matched_helper_id', 'orders', ['matched_helper_id'])

    op.create_table(
        'order_applications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('helper_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('status', sa.String(length=24), nullable=False),
        _ts('checked_in_at', nullable=True),
        _ts('created_at'),
        _ts('updated_at'),
        sa.UniqueConstraint('order_id', 'helper_id', name='uq_order_application_helper'),
    )
    op.create_index('ix_order_applications_order_id', 'order_applications', ['order_id'])
    op.create_index('ix_order_applications_helper_id', 'order_applications', ['helper_id'])
    op.create_index('ix_order_applications_status', 'order_applications', ['status'])

    op.create_table(
        'order_transitions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('from_status', sa.String(length=32), nullable=False),
        sa.Column('to_status', sa.String(length=32), nullable=False),
        sa.Column('actor_type', sa.String(length=32), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('reason', sa.String(length=240), nullable=True),
        sa.Column('metadata_json', sa.Text(), nullable=True),
        _ts('created_at'),
    )
    op.create_index('ix_order_transitions_order_id', 'order_transitions', ['order_id'])

    op.create_table(
        'check_in_records',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('helper_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('requester_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=True),
        _ts('check_in_time'),
        sa.Column('check_in_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=24), nullable=False),
        sa.Column('method', sa.String(length=16), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.UniqueConstraint('helper_id', 'requester_id', 'check_in_date', name='uq_check_in_helper_requester_day'),
    )
    op.create_index('ix_check_in_records_helper_id', 'check_in_records', ['helper_id'])
    op.create_index('ix_check_in_records_requester_id', 'check_in_records', ['requester_id'])
    op.create_index('ix_check_in_records_order_id', 'check_in_records', ['order_id'])
    op.create_index('ix_check_in_records_check_in_date', 'check_in_records', ['check_in_date'])

    op.create_table(
        'courier_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('courier_name', sa.String(length=120), nullable=True),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('base_price_per_box', sa.Integer(), nullable=False),
        sa.Column('min_total', sa.Integer(), nullable=False),
        sa.Column('commission_rate', sa.Integer(), nullable=False),
        sa.Column('urgent_commission_rate', sa.Integer(), nullable=False),
        sa.Column('urgent_surcharge_rate', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        _ts('created_at'),
        _ts('updated_at'),
    )
    op.create_index('ix_courier_settings_courier_name', 'courier_settings', ['courier_name'])
    op.create_index('ix_courier_settings_category', 'courier_settings', ['category'])

    op.create_table(
        'teams',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('leader_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('commission_rate', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        _ts('created_at'),
    )
    op.create_index('ix_teams_leader_id', 'teams', ['leader_id'])

    op.create_table(
        'team_members',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('team_id', sa.Integer(), sa.ForeignKey('teams.id'), nullable=False),
        sa.Column('helper_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        _ts('joined_at'),
        sa.UniqueConstraint('team_id', 'helper_id', name='uq_team_member_helper'),
    )
    op.create_index('ix_team_members_team_id', 'team_members', ['team_id'])
    op.create_index('ix_team_members_helper_id', 'team_members', ['helper_id'])

    op.create_table(
        'closing_reports',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=False, unique=True),
        sa.Column('helper_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('delivered_count', sa.Integer(), nullable=False),
        sa.Column('returned_count', sa.Integer(), nullable=False),
        sa.Column('other_count', sa.Integer(), nullable=False),
        sa.Column('extra_costs', sa.Integer(), nullable=False),
        sa.Column('supply_amount', sa.Integer(), nullable=False),
        sa.Column('vat_amount', sa.Integer(), nullable=False),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('memo', sa.Text(), nullable=True),
        _ts('created_at'),
    )
    op.create_index('ix_closing_reports_helper_id', 'closing_reports', ['helper_id'])

    op.create_table(
        'settlement_statements',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('helper_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('team_id', sa.Integer(), sa.ForeignKey('teams.id'), nullable=True),
        sa.Column('period', sa.String(length=7), nullable=False),
        sa.Column('order_count', sa.Integer(), nullable=False),
        sa.Column('supply_amount', sa.Integer(), nullable=False),
        sa.Column('vat_amount', sa.Integer(), nullable=False),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('commission_amount', sa.Integer(), nullable=False),
        sa.Column('platform_commission_amount', sa.Integer(), nullable=False),
        sa.Column('team_commission_amount', sa.Integer(), nullable=False),
        sa.Column('deduction_amount', sa.Integer(), nullable=False),
        sa.Column('net_payout', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('warning', sa.String(length=240), nullable=True),
        sa.Column('order_ids_json', sa.Text(), nullable=True),
        _ts('paid_at', nullable=True),
        _ts('created_at'),
        _ts('updated_at'),
        sa.UniqueConstraint('helper_id', 'period', name='uq_settlement_helper_period'),
    )
    op.create_index('ix_settlement_statements_helper_id', 'settlement_statements', ['helper_id'])
    op.create_index('ix_settlement_statements_period', 'settlement_statements', ['period'])
    op.create_index('ix_settlement_statements_status', 'settlement_statements', ['status'])

    op.create_table(
        'disputes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('settlement_id', sa.Integer(), sa.ForeignKey('settlement_statements.id'), nullable=True),
        sa.Column('reporter_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('dispute_type', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('requested_delivered_count', sa.Integer(), nullable=True),
        sa.Column('requested_returned_count', sa.Integer(), nullable=True),
        sa.Column('deduction_amount', sa.Integer(), nullable=True),
        sa.Column('resolution', sa.Text(), nullable=True),
        sa.Column('admin_reply', sa.Text(), nullable=True),
        _ts('resolved_at', nullable=True),
        sa.Column('resolved_by', sa.Integer(), nullable=True),
        _ts('created_at'),
        _ts('updated_at'),
    )
    op.create_index('ix_disputes_order_id', 'disputes', ['order_id'])
    op.create_index('ix_disputes_settlement_id', 'disputes', ['settlement_id'])
    op.create_index('ix_disputes_status', 'disputes', ['status'])

    op.create_table(
        'deductions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('helper_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=240), nullable=False),
        sa.Column('dispute_id', sa.Integer(), sa.ForeignKey('disputes.id'), nullable=True, unique=True),
        sa.Column('settlement_id', sa.Integer(), sa.ForeignKey('settlement_statements.id'), nullable=True),
        sa.Column('settlement_applied', sa.Boolean(), nullable=False),
        sa.Column('created_by', sa.Integer(), nullable=True),
        _ts('created_at'),
    )
    op.create_index('ix_deductions_helper_id', 'deductions', ['helper_id'])
    op.create_index('ix_deductions_settlement_id', 'deductions', ['settlement_id'])

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('purpose', sa.String(length=24), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('provider_payment_id', sa.String(length=128), nullable=False, unique=True),
        sa.Column('transaction_id', sa.String(length=128), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        _ts('paid_at', nullable=True),
        _ts('cancelled_at', nullable=True),
        _ts('created_at'),
    )
    op.create_index('ix_payments_order_id', 'payments', ['order_id'])
    op.create_index('ix_payments_status', 'payments', ['status'])

    op.create_table(
        'webhook_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('event_id', sa.String(length=128), nullable=False, unique=True),
        sa.Column('event_type', sa.String(length=64), nullable=True),
        sa.Column('reference', sa.String(length=128), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        _ts('processed_at', nullable=True),
        sa.Column('request_id', sa.String(length=64), nullable=True),
        sa.Column('payload_hash', sa.String(length=128), nullable=True),
        sa.Column('payload_json', sa.Text(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        _ts('created_at'),
    )
    op.create_index('ix_webhook_events_reference', 'webhook_events', ['reference'])

    op.create_table(
        'platform_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        _ts('created_at'),
        sa.Column('event_type', sa.String(length=80), nullable=False),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('subject_type', sa.String(length=40), nullable=True),
        sa.Column('subject_id', sa.String(length=64), nullable=True),
        sa.Column('request_id', sa.String(length=80), nullable=True),
        sa.Column('dedupe_key', sa.String(length=180), nullable=True, unique=True),
        sa.Column('severity', sa.String(length=16), nullable=False),
        sa.Column('metadata_json', sa.Text(), nullable=True),
    )
    for col in ('created_at', 'event_type', 'actor_user_id', 'subject_type', 'subject_id', 'request_id'):
        op.create_index(f'ix_platform_events_{col}', 'platform_events', [col])

    op.create_table(
        'idempotency_keys',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('key', sa.String(length=128), nullable=False),
        sa.Column('scope', sa.String(length=128), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('request_hash', sa.String(length=64), nullable=False),
        sa.Column('response_json', sa.Text(), nullable=True),
        sa.Column('status_code', sa.Integer(), nullable=False),
        _ts('created_at'),
        sa.UniqueConstraint('user_id', 'scope', 'key', name='uq_idempotency_user_scope_key'),
    )
    op.create_index('ix_idempotency_keys_key', 'idempotency_keys', ['key'])

    op.create_table(
        'reconciliation_reports',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('scope', sa.String(length=64), nullable=False),
        sa.Column('period', sa.String(length=7), nullable=True),
        sa.Column('summary_json', sa.Text(), nullable=True),
        sa.Column('drift_count', sa.Integer(), nullable=False),
        sa.Column('created_by', sa.Integer(), nullable=True),
        _ts('created_at'),
    )
    op.create_index('ix_reconciliation_reports_created_at', 'reconciliation_reports', ['created_at'])


def downgrade():
    for table in (
        'reconciliation_reports',
        'idempotency_keys',
        'platform_events',
        'webhook_events',
        'payments',
        'deductions',
        'disputes',
        'settlement_statements',
        'closing_reports',
        'team_members',
        'teams',
        'courier_settings',
        'check_in_records',
        'order_transitions',
        'order_applications',
        'orders',
        'users',
    ):
        op.drop_table(table)

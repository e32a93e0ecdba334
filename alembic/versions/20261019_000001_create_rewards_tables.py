"""Create volunteer rewards tables.

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '20261019_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create profiles, referral graph, ledger, tasks, teams and budget runs."""

    # Volunteer profiles
    op.create_table(
        'volunteer_profiles',
        sa.Column('user_id', sa.Integer(), autoincrement=False, nullable=False, comment='External user id'),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('total_experience', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('activity_multiplier', sa.Float(), nullable=False, server_default='1.0'),
        sa.Column('multiplier_calculated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('referral_code', sa.String(length=32), nullable=False),
        sa.Column('referrer_id', sa.Integer(), nullable=True, comment='Direct referrer, set at most once'),
        sa.Column('tasks_completed_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('version_id', sa.Integer(), nullable=False, comment='Optimistic lock counter'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('level >= 1', name='ck_volunteer_profiles_level_positive'),
        sa.CheckConstraint('total_experience >= 0', name='ck_volunteer_profiles_experience_non_negative'),
        sa.CheckConstraint(
            'activity_multiplier >= 1.0 AND activity_multiplier <= 3.0',
            name='ck_volunteer_profiles_multiplier_bounds',
        ),
        sa.CheckConstraint(
            'referrer_id IS NULL OR referrer_id <> user_id',
            name='ck_volunteer_profiles_no_self_referrer',
        ),
        sa.PrimaryKeyConstraint('user_id', name='pk_volunteer_profiles'),
        sa.UniqueConstraint('referral_code', name='uq_volunteer_profiles_referral_code'),
    )
    op.create_index('ix_volunteer_profiles_organization_id', 'volunteer_profiles', ['organization_id'])
    op.create_index('ix_volunteer_profiles_referrer_id', 'volunteer_profiles', ['referrer_id'])
    op.create_index('idx_volunteer_profiles_org_active', 'volunteer_profiles', ['organization_id', 'is_active'])

    # Referral graph
    op.create_table(
        'referral_edges',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('referrer_id', sa.Integer(), nullable=False),
        sa.Column('referred_id', sa.Integer(), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False, comment='Ancestor distance (1 = direct referrer)'),
        sa.Column('commission_rate', sa.DECIMAL(5, 4), nullable=False, comment='Fraction of the base amount (0.10 = 10%)'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('total_commission_paid', sa.DECIMAL(18, 8), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('level >= 1 AND level <= 5', name='ck_referral_edges_level_range'),
        sa.CheckConstraint('commission_rate >= 0 AND commission_rate < 1', name='ck_referral_edges_rate_range'),
        sa.CheckConstraint('referrer_id <> referred_id', name='ck_referral_edges_no_self_edge'),
        sa.CheckConstraint('total_commission_paid >= 0', name='ck_referral_edges_paid_non_negative'),
        sa.ForeignKeyConstraint(
            ['referrer_id'], ['volunteer_profiles.user_id'],
            name='fk_referral_edges_referrer_id_volunteer_profiles',
        ),
        sa.ForeignKeyConstraint(
            ['referred_id'], ['volunteer_profiles.user_id'],
            name='fk_referral_edges_referred_id_volunteer_profiles',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_referral_edges'),
        sa.UniqueConstraint('referred_id', 'level', name='uq_referral_edges_referred_level'),
        sa.UniqueConstraint('referrer_id', 'referred_id', name='uq_referral_edges_pair'),
    )
    op.create_index('idx_referral_edges_referrer_active', 'referral_edges', ['referrer_id', 'active'])
    op.create_index('idx_referral_edges_referred', 'referral_edges', ['referred_id'])

    # Append-only ledger
    op.create_table(
        'ledger_entries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('idempotency_key', sa.String(length=255), nullable=False),
        sa.Column('trigger_id', sa.String(length=255), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('entry_type', sa.String(length=32), nullable=False),
        sa.Column('amount', sa.DECIMAL(18, 8), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='completed'),
        sa.Column('source_kind', sa.String(length=32), nullable=False),
        sa.Column('source_id', sa.String(length=255), nullable=False),
        sa.Column(
            'reverses_entry_id', sa.Integer(), nullable=True,
            comment='Entry corrected by this reversal (one reversal per entry)',
        ),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('extra_data', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='{}'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('amount >= 0', name='ck_ledger_entries_amount_non_negative'),
        sa.ForeignKeyConstraint(
            ['user_id'], ['volunteer_profiles.user_id'],
            name='fk_ledger_entries_user_id_volunteer_profiles',
        ),
        sa.ForeignKeyConstraint(
            ['reverses_entry_id'], ['ledger_entries.id'],
            name='fk_ledger_entries_reverses_entry_id_ledger_entries',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_ledger_entries'),
        sa.UniqueConstraint('idempotency_key', name='uq_ledger_entries_idempotency_key'),
        sa.UniqueConstraint('reverses_entry_id', name='uq_ledger_entries_reverses_entry_id'),
    )
    op.create_index('ix_ledger_entries_trigger_id', 'ledger_entries', ['trigger_id'])
    op.create_index('ix_ledger_entries_created_at', 'ledger_entries', ['created_at'])
    op.create_index('idx_ledger_entries_user_type', 'ledger_entries', ['user_id', 'entry_type'])
    op.create_index('idx_ledger_entries_source', 'ledger_entries', ['source_kind', 'source_id'])

    # Tasks
    op.create_table(
        'task_templates',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('xp_reward', sa.Integer(), nullable=False, server_default='20'),
        sa.Column('level_required', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('xp_reward >= 0', name='ck_task_templates_xp_reward_non_negative'),
        sa.CheckConstraint('level_required >= 1', name='ck_task_templates_level_required_positive'),
        sa.PrimaryKeyConstraint('id', name='pk_task_templates'),
    )
    op.create_index('ix_task_templates_organization_id', 'task_templates', ['organization_id'])

    op.create_table(
        'task_assignments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('task_template_id', sa.Integer(), nullable=False),
        sa.Column('assignee_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reviewer_id', sa.Integer(), nullable=True),
        sa.Column('review_notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(
            ['task_template_id'], ['task_templates.id'],
            name='fk_task_assignments_task_template_id_task_templates',
        ),
        sa.ForeignKeyConstraint(
            ['assignee_id'], ['volunteer_profiles.user_id'],
            name='fk_task_assignments_assignee_id_volunteer_profiles',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_task_assignments'),
    )
    op.create_index('idx_task_assignments_assignee_status', 'task_assignments', ['assignee_id', 'status'])
    op.create_index('idx_task_assignments_reviewed_at', 'task_assignments', ['reviewed_at'])

    # Teams (read for leadership bonus)
    op.create_table(
        'teams',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('leader_id', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(
            ['leader_id'], ['volunteer_profiles.user_id'],
            name='fk_teams_leader_id_volunteer_profiles',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_teams'),
    )
    op.create_index('ix_teams_organization_id', 'teams', ['organization_id'])
    op.create_index('ix_teams_leader_id', 'teams', ['leader_id'])

    op.create_table(
        'team_memberships',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('team_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['team_id'], ['teams.id'], name='fk_team_memberships_team_id_teams'),
        sa.ForeignKeyConstraint(
            ['user_id'], ['volunteer_profiles.user_id'],
            name='fk_team_memberships_user_id_volunteer_profiles',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_team_memberships'),
        sa.UniqueConstraint('team_id', 'user_id', name='uq_team_memberships_team_user'),
    )
    op.create_index('ix_team_memberships_team_id', 'team_memberships', ['team_id'])

    # Budget runs
    op.create_table(
        'budget_runs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('run_key', sa.String(length=128), nullable=False, comment='{period_type}:{period_start}:{organization_id}'),
        sa.Column('period_type', sa.String(length=16), nullable=False),
        sa.Column('period_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('pool_amount', sa.DECIMAL(18, 8), nullable=False),
        sa.Column('distributed_amount', sa.DECIMAL(18, 8), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_budget_runs'),
        sa.UniqueConstraint('run_key', name='uq_budget_runs_run_key'),
    )


def downgrade() -> None:
    """Drop volunteer rewards tables."""

    op.drop_table('budget_runs')

    op.drop_index('ix_team_memberships_team_id', 'team_memberships')
    op.drop_table('team_memberships')

    op.drop_index('ix_teams_leader_id', 'teams')
    op.drop_index('ix_teams_organization_id', 'teams')
    op.drop_table('teams')

    op.drop_index('idx_task_assignments_reviewed_at', 'task_assignments')
    op.drop_index('idx_task_assignments_assignee_status', 'task_assignments')
    op.drop_table('task_assignments')

    op.drop_index('ix_task_templates_organization_id', 'task_templates')
    op.drop_table('task_templates')

    op.drop_index('idx_ledger_entries_source', 'ledger_entries')
    op.drop_index('idx_ledger_entries_user_type', 'ledger_entries')
    op.drop_index('ix_ledger_entries_created_at', 'ledger_entries')
    op.drop_index('ix_ledger_entries_trigger_id', 'ledger_entries')
    op.drop_table('ledger_entries')

    op.drop_index('idx_referral_edges_referred', 'referral_edges')
    op.drop_index('idx_referral_edges_referrer_active', 'referral_edges')
    op.drop_table('referral_edges')

    op.drop_index('idx_volunteer_profiles_org_active', 'volunteer_profiles')
    op.drop_index('ix_volunteer_profiles_referrer_id', 'volunteer_profiles')
    op.drop_index('ix_volunteer_profiles_organization_id', 'volunteer_profiles')
    op.drop_table('volunteer_profiles')

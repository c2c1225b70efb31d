"""labbook schema: teams, statuses, experiments, templates and their children

Revision ID: 20261018_01
Revises:
Create Date: 2026-10-18 09:12:04.118320
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = '20261018_01'
down_revision = None
branch_labels = None
depends_on = None


def _uuid():
    return postgresql.UUID(as_uuid=True)


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('email', sa.String(), nullable=False, unique=True),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('full_name', sa.String()),
        sa.Column('orcid_id', sa.String()),
        sa.Column('is_admin', sa.Boolean(), server_default='0'),
        sa.Column('is_active', sa.Boolean(), server_default='1'),
        sa.Column('team_id', _uuid()),
        sa.Column('default_read', sa.String()),
        sa.Column('default_write', sa.String()),
        sa.Column('created_at', sa.DateTime()),
    )
    op.create_table(
        'teams',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('created_by', _uuid(), sa.ForeignKey('users.id')),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('force_exp_tpl', sa.Boolean(), server_default='0', nullable=False),
        sa.Column('common_template', sa.Text(), server_default='', nullable=False),
        sa.Column('do_force_canread', sa.Boolean(), server_default='0', nullable=False),
        sa.Column('force_canread', sa.String(), server_default='team', nullable=False),
        sa.Column('do_force_canwrite', sa.Boolean(), server_default='0', nullable=False),
        sa.Column('force_canwrite', sa.String(), server_default='user', nullable=False),
        sa.Column('deletable_xp', sa.Boolean(), server_default='1', nullable=False),
    )
    op.create_foreign_key('fk_users_team_id', 'users', 'teams', ['team_id'], ['id'])
    op.create_table(
        'team_members',
        sa.Column('team_id', _uuid(), sa.ForeignKey('teams.id'), primary_key=True),
        sa.Column('user_id', _uuid(), sa.ForeignKey('users.id'), primary_key=True),
        sa.Column('role', sa.String(), server_default='member'),
    )
    op.create_table(
        'status',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('team_id', _uuid(), sa.ForeignKey('teams.id'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('color', sa.String(), server_default='29AEB9'),
        sa.Column('is_default', sa.Boolean(), server_default='0', nullable=False),
        sa.Column('is_timestampable', sa.Boolean(), server_default='1', nullable=False),
        sa.Column('ordering', sa.Integer(), server_default='0'),
    )
    op.create_table(
        'inventory_items',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('item_type', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('team_id', _uuid(), sa.ForeignKey('teams.id')),
        sa.Column('owner_id', _uuid(), sa.ForeignKey('users.id')),
        sa.Column('created_at', sa.DateTime()),
    )
    op.create_table(
        'experiments_templates',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('team_id', _uuid(), sa.ForeignKey('teams.id')),
        sa.Column('user_id', _uuid(), sa.ForeignKey('users.id')),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('body', sa.Text(), server_default=''),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('canread', sa.String(), server_default='team', nullable=False),
        sa.Column('canwrite', sa.String(), server_default='user', nullable=False),
        sa.Column('locked', sa.Boolean(), server_default='0', nullable=False),
        sa.Column('locked_by', _uuid(), sa.ForeignKey('users.id')),
        sa.Column('ordering', sa.Integer(), server_default='0'),
        sa.Column('created_at', sa.DateTime()),
    )
    op.create_table(
        'experiments',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('body', sa.Text(), server_default=''),
        sa.Column('category', _uuid(), sa.ForeignKey('status.id')),
        sa.Column('elabid', sa.String(), nullable=False, unique=True),
        sa.Column('canread', sa.String(), server_default='team', nullable=False),
        sa.Column('canwrite', sa.String(), server_default='user', nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('user_id', _uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('team_id', _uuid(), sa.ForeignKey('teams.id')),
        sa.Column('locked', sa.Boolean(), server_default='0', nullable=False),
        sa.Column('locked_by', _uuid(), sa.ForeignKey('users.id')),
        sa.Column('locked_at', sa.DateTime()),
        sa.Column('timestamped', sa.Boolean(), server_default='0', nullable=False),
        sa.Column('timestamped_by', _uuid(), sa.ForeignKey('users.id')),
        sa.Column('timestamped_at', sa.DateTime()),
        sa.Column('timestamp_token', sa.String()),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
    )
    op.create_table(
        'tags',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('team_id', _uuid(), sa.ForeignKey('teams.id')),
        sa.Column('tag', sa.String(), nullable=False),
        sa.UniqueConstraint('team_id', 'tag'),
    )
    op.create_table(
        'tags2entity',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('tag_id', _uuid(), sa.ForeignKey('tags.id', ondelete='CASCADE'), nullable=False),
        sa.Column('entity_type', sa.String(), nullable=False),
        sa.Column('entity_id', _uuid(), nullable=False),
        sa.UniqueConstraint('tag_id', 'entity_type', 'entity_id'),
    )
    op.create_index('ix_tags2entity_entity_id', 'tags2entity', ['entity_id'])
    op.create_table(
        'experiments_links',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('experiment_id', _uuid(), sa.ForeignKey('experiments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('item_id', _uuid(), sa.ForeignKey('inventory_items.id', ondelete='CASCADE'), nullable=False),
    )
    op.create_table(
        'experiments_templates_links',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('template_id', _uuid(), sa.ForeignKey('experiments_templates.id', ondelete='CASCADE'), nullable=False),
        sa.Column('item_id', _uuid(), sa.ForeignKey('inventory_items.id', ondelete='CASCADE'), nullable=False),
    )
    for table, owner, target in (
        ('experiments_steps', 'experiment_id', 'experiments.id'),
        ('experiments_templates_steps', 'template_id', 'experiments_templates.id'),
    ):
        op.create_table(
            table,
            sa.Column('id', _uuid(), primary_key=True),
            sa.Column(owner, _uuid(), sa.ForeignKey(target, ondelete='CASCADE'), nullable=False),
            sa.Column('body', sa.Text(), nullable=False),
            sa.Column('ordering', sa.Integer(), server_default='0'),
            sa.Column('finished', sa.Boolean(), server_default='0', nullable=False),
            sa.Column('finished_at', sa.DateTime()),
        )
    op.create_table(
        'uploads',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('experiment_id', _uuid(), sa.ForeignKey('experiments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('real_name', sa.String(), nullable=False),
        sa.Column('storage_path', sa.String(), nullable=False),
        sa.Column('file_type', sa.String()),
        sa.Column('file_size', sa.Integer(), server_default='0'),
        sa.Column('hash', sa.String()),
        sa.Column('hash_algorithm', sa.String(), server_default='sha256'),
        sa.Column('comment', sa.Text()),
        sa.Column('uploaded_by', _uuid(), sa.ForeignKey('users.id')),
        sa.Column('created_at', sa.DateTime()),
    )
    op.create_table(
        'pin2users',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('user_id', _uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('entity_type', sa.String(), nullable=False),
        sa.Column('entity_id', _uuid(), nullable=False),
        sa.UniqueConstraint('user_id', 'entity_type', 'entity_id'),
    )
    op.create_index('ix_pin2users_entity_id', 'pin2users', ['entity_id'])
    op.create_table(
        'team_events',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('team_id', _uuid(), sa.ForeignKey('teams.id'), nullable=False),
        sa.Column('item_id', _uuid(), sa.ForeignKey('inventory_items.id')),
        sa.Column('user_id', _uuid(), sa.ForeignKey('users.id')),
        sa.Column('title', sa.String()),
        sa.Column('start', sa.DateTime(), nullable=False),
        sa.Column('end', sa.DateTime(), nullable=False),
        sa.Column('experiment', _uuid(), sa.ForeignKey('experiments.id', ondelete='SET NULL')),
    )
    op.create_table(
        'audit_logs',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('user_id', _uuid(), sa.ForeignKey('users.id')),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('target_type', sa.String()),
        sa.Column('target_id', _uuid()),
        sa.Column('details', sa.JSON()),
        sa.Column('created_at', sa.DateTime()),
    )


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('team_events')
    op.drop_index('ix_pin2users_entity_id', table_name='pin2users')
    op.drop_table('pin2users')
    op.drop_table('uploads')
    op.drop_table('experiments_templates_steps')
    op.drop_table('experiments_steps')
    op.drop_table('experiments_templates_links')
    op.drop_table('experiments_links')
    op.drop_index('ix_tags2entity_entity_id', table_name='tags2entity')
    op.drop_table('tags2entity')
    op.drop_table('tags')
    op.drop_table('experiments')
    op.drop_table('experiments_templates')
    op.drop_table('inventory_items')
    op.drop_table('status')
    op.drop_table('team_members')
    op.drop_constraint('fk_users_team_id', 'users', type_='foreignkey')
    op.drop_table('teams')
    op.drop_table('users')

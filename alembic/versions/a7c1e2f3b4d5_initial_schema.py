"""initial schema: profiles, roles, links, config, ads, funnel events

Revision ID: a7c1e2f3b4d5
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

# revision identifiers, used by Alembic.
revision: str = 'a7c1e2f3b4d5'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'profiles',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('supabase_id', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_profiles_supabase_id', 'profiles', ['supabase_id'], unique=True)
    op.create_index('ix_profiles_email', 'profiles', ['email'])

    op.create_table(
        'user_roles',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', sa.String(10), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("role IN ('user', 'admin')", name='ck_user_roles_role'),
    )
    op.create_index('ix_user_roles_user_id', 'user_roles', ['user_id'])

    op.create_table(
        'links',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('owner_id', UUID(as_uuid=True), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('original_url', sa.Text(), nullable=False),
        sa.Column('short_code', sa.String(32), nullable=False),
        sa.Column('clicks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('impressions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('earnings', sa.Numeric(12, 4), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_links_short_code', 'links', ['short_code'], unique=True)
    op.create_index('ix_links_owner_id', 'links', ['owner_id'])
    op.create_index('ix_links_owner_created', 'links', ['owner_id', 'created_at'])

    op.create_table(
        'config',
        sa.Column('key', sa.String(100), primary_key=True),
        sa.Column('value', JSONB(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'ads',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('page_number', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('image_url', sa.Text(), nullable=False),
        sa.Column('link_url', sa.Text(), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('page_number BETWEEN 1 AND 4', name='ck_ads_page_number'),
    )
    op.create_index('ix_ads_page_number', 'ads', ['page_number'])
    op.create_index('ix_ads_page_position', 'ads', ['page_number', 'position'])

    op.create_table(
        'ad_visits',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('page', sa.Integer(), nullable=False),
        sa.Column('ts', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_ad_visits_page', 'ad_visits', ['page'])

    op.create_table(
        'ad_clicks',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('ad_id', sa.String(64), nullable=False),
        sa.Column('ts', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_ad_clicks_ad_id', 'ad_clicks', ['ad_id'])

    op.create_table(
        'downloads',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('link_id', UUID(as_uuid=True), nullable=True),
        sa.Column('completion_token', sa.String(64), nullable=True),
        sa.Column('ts', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_downloads_link_id', 'downloads', ['link_id'])
    op.create_index('ix_downloads_completion_token', 'downloads', ['completion_token'], unique=True)

    # Rate singletons start at zero until an admin sets them
    op.execute("""
        INSERT INTO config (key, value, version) VALUES
            ('cpm_rate', '0'::jsonb, 1),
            ('cpc_rate', '0'::jsonb, 1)
        ON CONFLICT (key) DO NOTHING
    """)


def downgrade() -> None:
    op.drop_index('ix_downloads_completion_token', table_name='downloads')
    op.drop_index('ix_downloads_link_id', table_name='downloads')
    op.drop_table('downloads')
    op.drop_index('ix_ad_clicks_ad_id', table_name='ad_clicks')
    op.drop_table('ad_clicks')
    op.drop_index('ix_ad_visits_page', table_name='ad_visits')
    op.drop_table('ad_visits')
    op.drop_index('ix_ads_page_position', table_name='ads')
    op.drop_index('ix_ads_page_number', table_name='ads')
    op.drop_table('ads')
    op.drop_table('config')
    op.drop_index('ix_links_owner_created', table_name='links')
    op.drop_index('ix_links_owner_id', table_name='links')
    op.drop_index('ix_links_short_code', table_name='links')
    op.drop_table('links')
    op.drop_index('ix_user_roles_user_id', table_name='user_roles')
    op.drop_table('user_roles')
    op.drop_index('ix_profiles_email', table_name='profiles')
    op.drop_index('ix_profiles_supabase_id', table_name='profiles')
    op.drop_table('profiles')

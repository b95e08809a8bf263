"""Create endpoint, token and relation tables

Revision ID: 4f1c2b7d9a30
Revises: 
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '4f1c2b7d9a30'
down_revision = None
branch_labels = None
depends_on = None

# Mirrors the broker's JSON column type: JSONB on Postgres, text elsewhere
json_type = sa.Text().with_variant(postgresql.JSONB(), 'postgresql')


def timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade():
    op.create_table(
        'cnsis',
        sa.Column('guid', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('cnsi_type', sa.String(32), nullable=False),
        sa.Column('sub_type', sa.String(32), nullable=True),
        sa.Column('version', sa.String(64), nullable=True),
        sa.Column('api_endpoint', sa.String(255), nullable=False),
        sa.Column('skip_ssl_validation', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('sso_allowed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('metadata', json_type, nullable=True),
        *timestamps(),
    )
    op.create_index('ix_cnsis_cnsi_type', 'cnsis', ['cnsi_type'])

    op.create_table(
        'tokens',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('endpoint_guid', sa.String(36), nullable=False),
        sa.Column('user_guid', sa.String(100), nullable=False),
        sa.Column('system_shared', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('auth_type', sa.String(32), nullable=False),
        sa.Column('auth_token', sa.Text(), nullable=False),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('token_expiry', sa.DateTime(timezone=True), nullable=True),
        sa.Column('linked_user_guid', sa.String(100), nullable=True),
        sa.Column('linked_user_name', sa.String(255), nullable=True),
        sa.Column('linked_user_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('linked_user_scopes', json_type, nullable=True),
        sa.Column('metadata', json_type, nullable=True),
        *timestamps(),
    )
    op.create_index('ix_tokens_endpoint_guid', 'tokens', ['endpoint_guid'])
    op.create_index('ix_token_lookup', 'tokens', ['endpoint_guid', 'user_guid'], unique=True)

    op.create_table(
        'relations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(36), nullable=False),
        sa.Column('target', sa.String(36), nullable=False),
        sa.Column('relation_type', sa.String(64), nullable=False),
        sa.Column('metadata', json_type, nullable=True),
        *timestamps(),
    )
    op.create_index('ix_relations_sequence', 'relations', ['sequence'])
    op.create_index('ix_relations_provider', 'relations', ['provider'])
    op.create_index('ix_relations_target', 'relations', ['target'])
    op.create_index(
        'ix_relation_edge', 'relations', ['provider', 'target', 'relation_type'], unique=True
    )


def downgrade():
    op.drop_index('ix_relation_edge', table_name='relations')
    op.drop_index('ix_relations_target', table_name='relations')
    op.drop_index('ix_relations_provider', table_name='relations')
    op.drop_index('ix_relations_sequence', table_name='relations')
    op.drop_table('relations')

    op.drop_index('ix_token_lookup', table_name='tokens')
    op.drop_index('ix_tokens_endpoint_guid', table_name='tokens')
    op.drop_table('tokens')

    op.drop_index('ix_cnsis_cnsi_type', table_name='cnsis')
    op.drop_table('cnsis')

"""create profile, points_record and redemption tables

Revision ID: 5c2e8a1f0b7d
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2e8a1f0b7d'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa.inspect(bind).get_table_names())

    if 'profile' not in existing_tables:
        op.create_table(
            'profile',
            sa.Column('participant_id', sa.String(length=128), primary_key=True),
            sa.Column('name', sa.String(length=128), nullable=True),
            sa.Column('category', sa.String(length=1), nullable=True),
            sa.Column('token', sa.String(length=128), nullable=True),
            sa.Column('avatar_url', sa.String(length=512), nullable=True),
            sa.Column('bio', sa.Text(), nullable=True),
            sa.Column('updated_at', sa.BigInteger(), nullable=True),
        )
        op.create_index('ix_profile_category', 'profile', ['category'])
        op.create_index('ix_profile_token', 'profile', ['token'], unique=True)

    if 'points_record' not in existing_tables:
        op.create_table(
            'points_record',
            sa.Column('participant_id', sa.String(length=128), primary_key=True),
            sa.Column('points', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('last_updated', sa.BigInteger(), nullable=True),
        )

    if 'redemption' not in existing_tables:
        op.create_table(
            'redemption',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('participant_id', sa.String(length=128), sa.ForeignKey('points_record.participant_id'), nullable=False),
            sa.Column('target_id', sa.String(length=128), nullable=False),
            sa.Column('redeemed_at', sa.BigInteger(), nullable=False),
            sa.UniqueConstraint('participant_id', 'target_id', name='uq_redemption_participant_target'),
        )
        op.create_index('ix_redemption_participant_id', 'redemption', ['participant_id'])


def downgrade():
    op.drop_index('ix_redemption_participant_id', table_name='redemption')
    op.drop_table('redemption')
    op.drop_table('points_record')
    op.drop_index('ix_profile_token', table_name='profile')
    op.drop_index('ix_profile_category', table_name='profile')
    op.drop_table('profile')

"""track verified emails and provider avatars

Revision ID: c41f7a2e6d10
Revises: 5b1e0c3d9a42
Create Date: 2026-10-20 09:12:47.530211

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c41f7a2e6d10'
down_revision = '5b1e0c3d9a42'
branch_labels = None
depends_on = None


def upgrade():
    # Existing addresses were never checked, so they start unverified
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.add_column(sa.Column('email_verified', sa.Boolean(), nullable=False, server_default=sa.false()))

    with op.batch_alter_table('identities', schema=None) as batch_op:
        batch_op.add_column(sa.Column('avatar_url', sa.String(length=500), nullable=True))


def downgrade():
    with op.batch_alter_table('identities', schema=None) as batch_op:
        batch_op.drop_column('avatar_url')

    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.drop_column('email_verified')

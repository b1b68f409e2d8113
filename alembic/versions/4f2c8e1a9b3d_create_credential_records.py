"""create_credential_records

Revision ID: 4f2c8e1a9b3d
Revises:
Create Date: 2026-10-19 09:12:44.218301

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '4f2c8e1a9b3d'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'credential_records',
        sa.Column('tenant_id', sa.String(length=100), nullable=False),
        sa.Column('instance_id', sa.String(length=36), nullable=False),
        sa.Column('connection_definition_id', sa.String(length=100), nullable=False),
        sa.Column('definition_version', sa.Integer(), nullable=False),
        # Field name -> Fernet token
        sa.Column('encrypted_values', sa.Text().with_variant(postgresql.JSONB(), 'postgresql'), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('tenant_id', 'instance_id'),
    )
    op.create_index(
        'ix_credential_records_definition',
        'credential_records',
        ['tenant_id', 'connection_definition_id'],
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_credential_records_definition', table_name='credential_records')
    op.drop_table('credential_records')

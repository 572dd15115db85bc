"""webhook_events.signature_verified

Marks audit rows whose delivery passed signature verification. Session
recovery reads only these rows.

Revision ID: 9a4e2f6b8c13
Revises: 5d1c0a7e9b21
Create Date: 2026-10-20 10:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "9a4e2f6b8c13"
down_revision: Union[str, Sequence[str], None] = "5d1c0a7e9b21"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    with op.batch_alter_table("webhook_events") as batch_op:
        batch_op.add_column(
            sa.Column(
                "signature_verified",
                sa.Boolean(),
                nullable=False,
                server_default=sa.false(),
            )
        )


def downgrade() -> None:
    with op.batch_alter_table("webhook_events") as batch_op:
        batch_op.drop_column("signature_verified")

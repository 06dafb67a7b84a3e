"""Tie return_items to the transaction line they came back from

Revision ID: 20261019_return_lines
Revises: 20261018_initial
Create Date: 2026-10-19

Returned units are priced per sale line, so a variant sold on two lines at
different prices is refunded at what each line actually charged.
Existing rows are attached to the first line of the same variant.
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_return_lines"
down_revision = "20261018_initial"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("return_items", schema=None) as batch_op:
        batch_op.add_column(sa.Column("transaction_item_id", sa.Integer(), nullable=True))

    op.execute(
        """
        UPDATE return_items
        SET transaction_item_id = (
            SELECT MIN(ti.id)
            FROM transaction_items ti
            JOIN returns r ON r.transaction_id = ti.transaction_id
            WHERE r.id = return_items.return_id
              AND ti.variant_id = return_items.variant_id
        )
        """
    )

    with op.batch_alter_table("return_items", schema=None) as batch_op:
        batch_op.alter_column("transaction_item_id", existing_type=sa.Integer(), nullable=False)
        batch_op.create_foreign_key(
            "fk_return_items_transaction_item",
            "transaction_items",
            ["transaction_item_id"],
            ["id"],
        )
        batch_op.create_index("ix_return_items_transaction_item_id", ["transaction_item_id"])


def downgrade():
    with op.batch_alter_table("return_items", schema=None) as batch_op:
        batch_op.drop_index("ix_return_items_transaction_item_id")
        batch_op.drop_constraint("fk_return_items_transaction_item", type_="foreignkey")
        batch_op.drop_column("transaction_item_id")

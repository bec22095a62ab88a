"""collapse the legacy boolean martyrs.approved into martyrs.status

Databases imported from the old schema carry ``approved``, with or without
``status``. Without ``status`` the column is added and filled from the boolean
(true -> approved, anything else -> pending). With both, ``approved`` is dropped
once it is shown to agree with ``status`` on every row; rows where the two
disagree are listed and the migration stops. Older layouts that differ in
other columns (e.g. a single ``full_name``) are not converted here.

Revision ID: 0002_collapse_legacy_approved
Revises: 0001_initial_schema
Create Date: 2024-06-15 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0002_collapse_legacy_approved"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    columns = {c["name"] for c in sa.inspect(bind).get_columns("martyrs")}
    if "approved" not in columns:
        return

    martyrs = sa.table(
        "martyrs",
        sa.column("id", sa.Integer),
        sa.column("status", sa.String),
        sa.column("approved", sa.Boolean),
    )

    if "status" not in columns:
        # boolean-only layout: status is derived, nothing can disagree
        with op.batch_alter_table("martyrs") as batch:
            batch.add_column(sa.Column("status", sa.String(20), nullable=False, server_default="pending"))
        bind.execute(
            martyrs.update().values(
                status=sa.case((martyrs.c.approved == sa.true(), "approved"), else_="pending")
            )
        )
    else:
        conflicting = bind.execute(
            sa.select(martyrs.c.id)
            .where(
                sa.or_(
                    sa.and_(martyrs.c.approved == sa.true(), martyrs.c.status != "approved"),
                    sa.and_(
                        sa.or_(martyrs.c.approved == sa.false(), martyrs.c.approved.is_(None)),
                        martyrs.c.status == "approved",
                    ),
                )
            )
            .order_by(martyrs.c.id)
        ).scalars().all()

        if conflicting:
            raise RuntimeError(
                "martyrs.approved disagrees with martyrs.status for ids "
                f"{', '.join(str(i) for i in conflicting)}; fix these rows, then rerun the migration"
            )

    with op.batch_alter_table("martyrs") as batch:
        batch.drop_column("approved")


def downgrade():
    # forward-only: the boolean is derived from status at the API boundary
    pass

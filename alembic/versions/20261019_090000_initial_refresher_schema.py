"""initial_refresher_schema

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3f1c9a7d2b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ARTIFACT_TABLES = (
    # table, url column, expiry column, extra columns
    ("audio_records", "audio_url", "audio_url_expires_at", ("text", "storage_path")),
    ("flashcards", "question_audio_url", "question_audio_url_expires_at", ("question",)),
    ("chunks", "chunk_audio", "chunk_audio_expires_at", ("text",)),
)


def _extra_column(name: str) -> sa.Column:
    if name == "storage_path":
        return sa.Column(name, sa.String(), nullable=True)
    return sa.Column(name, sa.Text(), nullable=True)


def _expiry_index(table: str, expires_col: str) -> str:
    # Distinct from the ORM default name so downgrade only drops what this
    # revision created.
    return f"ix_refresher_{table}_{expires_col}"


def upgrade() -> None:
    # The artifact tables usually exist already (owned by the creation flow).
    # Create them only when missing and add the URL/expiry columns otherwise.
    bind = op.get_bind()
    insp = sa.inspect(bind)

    for table, url_col, expires_col, extras in ARTIFACT_TABLES:
        if not insp.has_table(table):
            existing_indexes: list = []
            op.create_table(
                table,
                sa.Column("id", sa.String(), nullable=False),
                *[_extra_column(name) for name in extras],
                sa.Column(url_col, sa.Text(), nullable=True),
                sa.Column(expires_col, sa.DateTime(), nullable=True),
                sa.Column("created_at", sa.DateTime(), nullable=False),
                sa.PrimaryKeyConstraint("id"),
            )
        else:
            existing = {c["name"] for c in insp.get_columns(table)}
            existing_indexes = [i["column_names"] for i in insp.get_indexes(table)]
            with op.batch_alter_table(table) as batch_op:
                for name in extras:
                    if name not in existing:
                        batch_op.add_column(_extra_column(name))
                if url_col not in existing:
                    batch_op.add_column(sa.Column(url_col, sa.Text(), nullable=True))
                if expires_col not in existing:
                    batch_op.add_column(
                        sa.Column(expires_col, sa.DateTime(), nullable=True)
                    )

        if [expires_col] not in existing_indexes:
            op.create_index(
                op.f(_expiry_index(table, expires_col)), table, [expires_col], unique=False
            )

    if not insp.has_table("refresh_locks"):
        op.create_table(
            "refresh_locks",
            sa.Column("family", sa.String(), nullable=False),
            sa.Column("instance_id", sa.String(), nullable=False),
            sa.Column("lock_acquired_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("family"),
        )

    if not insp.has_table("refresh_runs"):
        op.create_table(
            "refresh_runs",
            sa.Column("id", sa.String(), nullable=False),
            sa.Column("family", sa.String(), nullable=False),
            sa.Column("status", sa.String(), nullable=False),
            sa.Column("started_at", sa.DateTime(), nullable=False),
            sa.Column("finished_at", sa.DateTime(), nullable=True),
            sa.Column("scanned", sa.Integer(), nullable=False),
            sa.Column("succeeded", sa.Integer(), nullable=False),
            sa.Column("not_reached", sa.Integer(), nullable=False),
            sa.Column("timed_out", sa.Boolean(), nullable=False),
            sa.Column("failures", sa.Text(), nullable=True),
            sa.Column("error", sa.Text(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_refresh_runs_family"), "refresh_runs", ["family"], unique=False)
        op.create_index(
            op.f("ix_refresh_runs_started_at"), "refresh_runs", ["started_at"], unique=False
        )


def downgrade() -> None:
    # Artifact tables belong to the creation flow; only the refresher's own
    # tables and indexes are removed.
    op.drop_index(op.f("ix_refresh_runs_started_at"), table_name="refresh_runs")
    op.drop_index(op.f("ix_refresh_runs_family"), table_name="refresh_runs")
    op.drop_table("refresh_runs")
    op.drop_table("refresh_locks")
    insp = sa.inspect(op.get_bind())
    for table, _url_col, expires_col, _extras in ARTIFACT_TABLES:
        name = _expiry_index(table, expires_col)
        if not insp.has_table(table):
            continue
        if name in {i["name"] for i in insp.get_indexes(table)}:
            op.drop_index(op.f(name), table_name=table)

"""prompt_pool_baseline

Creates users, skill_scores, onboarding_answers, prompt_pool and utterances
from promptpool/db/schema.sql.

Revision ID: 9c1d2e3f4a5b
Revises:
Create Date: 2026-10-17 09:12:40.118204

"""
from typing import Sequence, Union
from pathlib import Path

from alembic import op
import sqlalchemy as sa


revision: str = "9c1d2e3f4a5b"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _adapt_sql(sql: str, dialect_name: str) -> str:
    """Adapt DDL for the target database dialect."""
    if dialect_name == "postgresql":
        sql = sql.replace("INTEGER PRIMARY KEY AUTOINCREMENT", "SERIAL PRIMARY KEY")
    return sql


def upgrade() -> None:
    """Create the schema; schema.sql uses IF NOT EXISTS throughout."""
    dialect_name = op.get_bind().dialect.name

    schema_path = Path(__file__).resolve().parents[2] / "promptpool" / "db" / "schema.sql"
    schema_sql = schema_path.read_text()
    # Execute each statement individually (op.execute doesn't support executescript)
    for statement in schema_sql.split(";"):
        lines = [
            line for line in statement.splitlines()
            if line.strip() and not line.strip().startswith("--")
        ]
        cleaned = "\n".join(lines).strip()
        if cleaned:
            op.execute(sa.text(_adapt_sql(cleaned, dialect_name)))


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    for table in ("utterances", "prompt_pool", "onboarding_answers", "skill_scores", "users"):
        op.execute(sa.text(f"DROP TABLE IF EXISTS {table}"))

"""
============================================================
TARJETA CRC (Class / Responsibilities / Collaborators)
============================================================
Class: 001_foundation (Alembic Migration)

Responsibilities:
  - Crear el esquema multi-tenant desde cero: users, accounts,
    users_accounts (membresías) y account_preferences.
  - Unicidad de claves naturales SOLO entre filas no archivadas
    (índices únicos parciales WHERE archived_at IS NULL).
  - PK (account_id, name) en account_preferences, nombrada
    account_preferences_pkey (la usa el upsert de Set).

Collaborators:
  - PostgreSQL 14+
  - Alembic (framework de migraciones)
  - Repositorios postgres (usan este esquema como contrato; los nombres
    de índices únicos se traducen a BadRequest(field, "unique")).

Policy:
  - Migración BASELINE. Downgrade elimina todo (solo dev/test).
  - ids: texto de 36 chars (UUID canónico generado por la app).
============================================================
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_foundation"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        # archived_at = soft delete (semántica de “archivo”).
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """
    Orden por dependencias:
      1) users
      2) accounts (signup/billing -> users)
      3) users_accounts
      4) account_preferences
    """

    # =========================================================
    # 1) USERS
    # =========================================================
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.Text, nullable=False),
        sa.Column("first_name", sa.String(255), nullable=False),
        sa.Column("last_name", sa.String(255), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="users_pkey"),
    )
    op.execute(
        "CREATE UNIQUE INDEX users_email_unique "
        "ON users (email) WHERE archived_at IS NULL"
    )

    # =========================================================
    # 2) ACCOUNTS
    # =========================================================
    op.create_table(
        "accounts",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("address1", sa.String(255), nullable=False),
        sa.Column(
            "address2", sa.String(255), nullable=False, server_default=sa.text("''")
        ),
        sa.Column("city", sa.String(255), nullable=False),
        sa.Column("region", sa.String(255), nullable=False),
        sa.Column("country", sa.String(255), nullable=False),
        sa.Column("zipcode", sa.String(32), nullable=False),
        sa.Column(
            "status",
            sa.String(32),
            nullable=False,
            server_default=sa.text("'pending'"),
        ),
        sa.Column("timezone", sa.String(64), nullable=False),
        sa.Column("signup_user_id", sa.String(36), nullable=True),
        sa.Column("billing_user_id", sa.String(36), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="accounts_pkey"),
        sa.CheckConstraint(
            "status IN ('active', 'pending', 'disabled')",
            name="ck_accounts_status",
        ),
        sa.ForeignKeyConstraint(
            ["signup_user_id"],
            ["users.id"],
            name="fk_accounts_signup_user_id__users",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["billing_user_id"],
            ["users.id"],
            name="fk_accounts_billing_user_id__users",
            ondelete="SET NULL",
        ),
    )
    op.execute(
        "CREATE UNIQUE INDEX accounts_name_unique "
        "ON accounts (name) WHERE archived_at IS NULL"
    )
    op.create_index("ix_accounts_created_at", "accounts", ["created_at"])

    # =========================================================
    # 3) USERS_ACCOUNTS (membresías)
    # =========================================================
    op.create_table(
        "users_accounts",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("account_id", sa.String(36), nullable=False),
        sa.Column("roles", postgresql.ARRAY(sa.Text), nullable=False),
        sa.Column(
            "status",
            sa.String(32),
            nullable=False,
            server_default=sa.text("'active'"),
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="users_accounts_pkey"),
        sa.CheckConstraint(
            "status IN ('active', 'invited', 'disabled')",
            name="ck_users_accounts_status",
        ),
        sa.CheckConstraint(
            "cardinality(roles) > 0 AND roles <@ ARRAY['admin', 'user']::text[]",
            name="ck_users_accounts_roles",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_users_accounts_user_id__users"
        ),
        sa.ForeignKeyConstraint(
            ["account_id"],
            ["accounts.id"],
            name="fk_users_accounts_account_id__accounts",
        ),
    )
    op.execute(
        "CREATE UNIQUE INDEX users_accounts_user_account_unique "
        "ON users_accounts (user_id, account_id) WHERE archived_at IS NULL"
    )
    # Lo usan el claims gate (subquery) y las cascadas.
    op.create_index("ix_users_accounts_account_id", "users_accounts", ["account_id"])
    op.create_index("ix_users_accounts_user_id", "users_accounts", ["user_id"])

    # =========================================================
    # 4) ACCOUNT_PREFERENCES
    # =========================================================
    op.create_table(
        "account_preferences",
        sa.Column("account_id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("value", sa.Text, nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("account_id", "name", name="account_preferences_pkey"),
        sa.CheckConstraint(
            "name IN ('datetime_format', 'date_format', 'time_format')",
            name="ck_account_preferences_name",
        ),
        sa.ForeignKeyConstraint(
            ["account_id"],
            ["accounts.id"],
            name="fk_account_preferences_account_id__accounts",
        ),
    )


def downgrade() -> None:
    op.drop_table("account_preferences")
    op.drop_table("users_accounts")
    op.drop_table("accounts")
    op.drop_table("users")

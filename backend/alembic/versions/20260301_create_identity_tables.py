"""Create users, sessions, verification tokens, OAuth and wallet tables."""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20260301_create_identity_tables"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False, with_default=True):
    return sa.Column(
        name,
        sa.TIMESTAMP(timezone=True),
        nullable=nullable,
        server_default=sa.func.now() if with_default else None,
    )


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.TEXT(), nullable=False),
        sa.Column("email", sa.TEXT(), nullable=False, server_default=sa.text("''")),
        sa.Column("email_verified", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("image", sa.TEXT(), nullable=True),
        sa.Column("is_admin", sa.BOOLEAN(), nullable=False, server_default=sa.text("false")),
        sa.Column("superadmin", sa.BOOLEAN(), nullable=False, server_default=sa.text("false")),
        sa.Column("theme", sa.TEXT(), nullable=False, server_default=sa.text("'system'")),
        sa.Column("first_name", sa.TEXT(), nullable=True),
        sa.Column("last_name", sa.TEXT(), nullable=True),
        sa.Column("address1", sa.TEXT(), nullable=True),
        sa.Column("address2", sa.TEXT(), nullable=True),
        sa.Column("address3", sa.TEXT(), nullable=True),
        sa.Column("postcode", sa.TEXT(), nullable=True),
        sa.Column("phone", sa.TEXT(), nullable=True),
        sa.Column("telephone", sa.TEXT(), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_users_name", "users", ["name"])
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "sessions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("session_token", sa.TEXT(), nullable=False, unique=True),
        sa.Column(
            "user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        _timestamp("expires", with_default=False),
    )
    op.create_index("ix_sessions_user_id", "sessions", ["user_id"])

    op.create_table(
        "verification_tokens",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.TEXT(), nullable=False),
        sa.Column(
            "user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        _timestamp("expires", with_default=False),
        sa.Column("token", sa.TEXT(), nullable=False, unique=True),
    )
    op.create_index("ix_verification_tokens_user_id", "verification_tokens", ["user_id"])

    op.create_table(
        "oauth_states",
        sa.Column("state", sa.TEXT(), primary_key=True),
        sa.Column("pkce_verifier", sa.TEXT(), nullable=False),
        sa.Column("provider", sa.TEXT(), nullable=False),
        sa.Column("callback_url", sa.TEXT(), nullable=False),
        _timestamp("created_at"),
    )

    op.create_table(
        "oauth_accounts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("provider", sa.TEXT(), nullable=False),
        sa.Column("provider_account_id", sa.TEXT(), nullable=False),
        sa.Column(
            "user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        _timestamp("created_at"),
        sa.UniqueConstraint("provider", "provider_account_id", name="uq_oauth_accounts_identity"),
    )
    op.create_index("ix_oauth_accounts_user_id", "oauth_accounts", ["user_id"])

    op.create_table(
        "wallets",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("address", sa.TEXT(), nullable=False, unique=True),
        sa.Column("label", sa.TEXT(), nullable=False),
        sa.Column(
            "wallet_type", sa.TEXT(), nullable=False, server_default=sa.text("'metamask'")
        ),
        sa.Column("chain_type", sa.TEXT(), nullable=True),
        sa.Column("chain_id", sa.TEXT(), nullable=True),
        sa.Column(
            "user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("is_primary", sa.BOOLEAN(), nullable=False, server_default=sa.text("false")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_wallets_user_id", "wallets", ["user_id"])


def downgrade():
    op.drop_index("ix_wallets_user_id", table_name="wallets")
    op.drop_table("wallets")
    op.drop_index("ix_oauth_accounts_user_id", table_name="oauth_accounts")
    op.drop_table("oauth_accounts")
    op.drop_table("oauth_states")
    op.drop_index("ix_verification_tokens_user_id", table_name="verification_tokens")
    op.drop_table("verification_tokens")
    op.drop_index("ix_sessions_user_id", table_name="sessions")
    op.drop_table("sessions")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_name", table_name="users")
    op.drop_table("users")

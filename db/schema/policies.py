"""
Row-level access policies and the ``updated_at`` maintenance trigger.

The caller identity expression and the admin role names come from settings so the
same catalog can target any PostgreSQL deployment that exposes a caller id.
"""

from db.config import settings
from db.schema.tables import TABLES
from db.schema.types import RowPolicy, quote, sql_literal

UPDATED_AT_FUNCTION = """CREATE OR REPLACE FUNCTION update_updated_at_column()
RETURNS TRIGGER AS $$
BEGIN
    NEW.updated_at = NOW();
    RETURN NEW;
END;
$$ language 'plpgsql';"""

# Tables holding user data; row-level security is enabled on each of them.
ROW_SECURED_TABLES: tuple[str, ...] = (
    "users",
    "user_profiles",
    "two_factor_auth",
    "investments",
    "user_investments",
    "investors",
    "project_timeline",
    "transactions_mangopay",
    "transactions_blockchain",
    "bank_transfers",
    "withdrawals",
    "reserves",
    "reserves_blockchain",
    "dividends",
    "dividend_claims",
    "wallets",
    "wallet_transactions",
    "wallet_balances",
    "blockchain_balances",
    "kyc_verifications",
    "documents",
    "fiscal_documents",
    "user_bonuses",
    "audit_logs",
    "user_notifications",
    "user_preferences",
    "role_assignments",
    "admin_actions",
    "system_config",
)


def trigger_tables() -> list[str]:
    return [table.name for table in TABLES if table.has_column("updated_at")]


def render_trigger(table: str) -> list[str]:
    trigger = quote(f"update_{table}_updated_at")
    return [
        f"DROP TRIGGER IF EXISTS {trigger} ON {quote(table)};",
        f"CREATE TRIGGER {trigger} BEFORE UPDATE ON {quote(table)} "
        "FOR EACH ROW EXECUTE FUNCTION update_updated_at_column();",
    ]


def render_enable_row_security(table: str) -> str:
    return f"ALTER TABLE {quote(table)} ENABLE ROW LEVEL SECURITY;"


def _caller() -> str:
    return settings.rls_caller_expression


def _owns_row(owner_column: str = "user_id") -> str:
    return f"{_caller()} = (SELECT firebase_uid FROM users WHERE id = {owner_column})"


def _is_admin() -> str:
    roles = ", ".join(sql_literal(name) for name in settings.admin_role_names)
    return (
        "EXISTS (SELECT 1 FROM role_assignments ra JOIN roles r ON ra.role_id = r.id "
        f"JOIN users u ON ra.user_id = u.id WHERE u.firebase_uid = {_caller()} AND r.name IN ({roles}))"
    )


def build_row_policies() -> list[RowPolicy]:
    """Build the policy set against the current settings."""
    own = _owns_row()
    policies = [
        RowPolicy("Users can view own profile", "users", "SELECT", using=f"{_caller()} = firebase_uid"),
        RowPolicy("Users can update own profile", "users", "UPDATE", using=f"{_caller()} = firebase_uid"),
        RowPolicy("Users can view own profile", "user_profiles", "SELECT", using=own),
        RowPolicy("Users can update own profile", "user_profiles", "UPDATE", using=own),
        RowPolicy("Anyone can view active investments", "investments", "SELECT", using="is_hidden = false"),
        RowPolicy("Admins can manage investments", "investments", "ALL", using=_is_admin()),
        RowPolicy("Users can view own investments", "user_investments", "SELECT", using=own),
        RowPolicy("Users can create own investments", "user_investments", "INSERT", with_check=own),
        RowPolicy("Users can view own transactions", "transactions_mangopay", "SELECT", using=own),
        RowPolicy("Users can create own transactions", "transactions_mangopay", "INSERT", with_check=own),
        RowPolicy("Users can view own wallets", "wallets", "SELECT", using=own),
        RowPolicy("Users can manage own wallets", "wallets", "ALL", using=own),
        RowPolicy("Users can view own documents", "documents", "SELECT", using=own),
        RowPolicy("Users can upload own documents", "documents", "INSERT", with_check=own),
        RowPolicy("Users can view own notifications", "user_notifications", "SELECT", using=own),
        RowPolicy("Users can update own notifications", "user_notifications", "UPDATE", using=own),
        RowPolicy("Users can view own preferences", "user_preferences", "SELECT", using=own),
        RowPolicy("Users can update own preferences", "user_preferences", "UPDATE", using=own),
        RowPolicy("Admins can view audit logs", "audit_logs", "SELECT", using=_is_admin()),
        RowPolicy("Admins can manage system config", "system_config", "ALL", using=_is_admin()),
    ]
    return policies

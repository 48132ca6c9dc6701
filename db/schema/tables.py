"""
Destination table catalog, grouped by dependency phase.

Every foreign key points at a table in a strictly earlier phase, so a phase can be
created as soon as all earlier phases exist.
"""

from db.schema.columns import (
    audit_columns,
    created_at,
    flag,
    integer,
    json_object,
    money,
    owner,
    rate,
    source_id,
    status,
    text,
    text_array,
    timestamp,
    updated_at,
    uuid_pk,
)
from db.schema.types import Column, ColumnKind, ForeignKey, MigrationPhase, TableDefinition

PHASE_NAMES = {
    1: "reference",
    2: "users",
    3: "identity",
    4: "investments",
    5: "holdings",
    6: "transactions",
    7: "reserves",
    8: "dividends",
    9: "dividend_claims",
    10: "wallets",
    11: "wallet_ledger",
    12: "blockchain",
    13: "compliance",
    14: "configuration",
    15: "bonuses",
    16: "audit",
    17: "notifications",
    18: "role_assignments",
}


def table(
    name: str,
    phase: int,
    *columns: Column,
    unique_together: tuple[tuple[str, ...], ...] = (),
    source_key: str | None = "firebase_id",
    description: str = "",
) -> TableDefinition:
    return TableDefinition(
        name=name,
        phase=phase,
        columns=(uuid_pk(), *columns, *audit_columns()),
        unique_together=unique_together,
        source_key=source_key,
        description=description,
    )


# Phase 1: lookup tables without dependencies
ROLES = table(
    "roles",
    1,
    text("name", 50, nullable=False, unique=True),
    text("description", 500),
    json_object("permissions"),
    created_at(),
    source_key=None,
)

COUNTRIES = table(
    "countries",
    1,
    text("country_code", 10, nullable=False, unique=True),
    text("country_name", 100, nullable=False),
    flag("is_active", default=True),
    created_at(),
    source_key=None,
)

TRANSACTION_TYPES = table(
    "transaction_types",
    1,
    text("type_code", 50, nullable=False, unique=True),
    text("type_name", 100, nullable=False),
    text("description", 500),
    flag("is_active", default=True),
    created_at(),
    source_key=None,
)

PROJECT_STATUSES = table(
    "project_statuses",
    1,
    text("status_code", 50, nullable=False, unique=True),
    text("status_name", 100, nullable=False),
    text("description", 500),
    flag("is_active", default=True),
    created_at(),
    source_key=None,
)

# Phase 2
USERS = table(
    "users",
    2,
    source_id("firebase_uid", unique=True, nullable=False),
    text("email", nullable=False, unique=True),
    text("display_name", 255),
    text("phone", 20),
    flag("is_active", default=True),
    flag("is_verified", default=False),
    status("profile_type", ("individual", "company")),
    created_at(),
    updated_at(),
    source_key="firebase_uid",
)

# Phase 3: profiles, authentication and permissions
USER_PROFILES = table(
    "user_profiles",
    3,
    owner(),
    status("profile_type", ("individual", "company")),
    text("first_name", 100),
    text("last_name", 100),
    Column("date_of_birth", ColumnKind.DATE),
    text("nationality", 100),
    text("residence_country", 100),
    text("address", 500),
    text("city", 100),
    text("postal_code", 20),
    text("company_name", 255),
    text("tax_id", 50),
    text("representative_name", 100),
    text("representative_last_name", 100),
    status("kyc_status", ("pending", "approved", "rejected")),
    json_object("kyc_data"),
    text("profile_picture_path", 500),
    text("profile_picture_url", 500),
    text_array("documents_paths"),
    text_array("documents_urls"),
    source_id(),
    created_at(),
    updated_at(),
)

TWO_FACTOR_AUTH = table(
    "two_factor_auth",
    3,
    owner(),
    text("secret_key", 100, nullable=False),
    text_array("backup_codes"),
    flag("is_enabled", default=False),
    timestamp("last_used"),
    created_at(),
    source_key=None,
)

PERMISSIONS = table(
    "permissions",
    3,
    owner("role_id", "roles"),
    text("resource", 100, nullable=False),
    text("action", 50, nullable=False),
    created_at(),
    unique_together=(("role_id", "resource", "action"),),
    source_key=None,
)

# Phase 4
INVESTMENTS = table(
    "investments",
    4,
    source_id(unique=True, nullable=False),
    text("title", 255, nullable=False),
    text("description", 1000),
    text("company", 255),
    text("token_symbol", 20),
    text("token_address", 100),
    text("seller_address", 100),
    text("project_wallet", 100),
    money("amount_to_sell", nullable=False),
    money("amount_sold", default=0),
    money("price_token", nullable=False),
    rate("annual_return", nullable=False),
    integer("estimated_delivery_time"),
    status(
        "project_status",
        ("active", "funded", "in_progress", "distributing_dividends", "completed", "sold"),
    ),
    flag("is_hidden", default=False),
    flag("only_investors", default=False),
    rate("percentage_private_sale", default=100),
    text("main_image_path", 500),
    text("main_image_url", 500),
    text_array("images_paths"),
    text_array("images_urls"),
    text("documents_path", 500),
    text("documents_url", 500),
    json_object("documents_metadata"),
    created_at(),
    updated_at(),
)

# Phase 5: holdings that reference users and investments
USER_INVESTMENTS = table(
    "user_investments",
    5,
    owner(),
    owner("investment_id", "investments"),
    money("total_amount", nullable=False),
    money("token_quantity", nullable=False),
    status("investment_type", ("current", "legacy")),
    timestamp("last_activity_date", default_now=True),
    source_id(),
    created_at(),
    updated_at(),
    unique_together=(("user_id", "investment_id"),),
)

INVESTORS = table(
    "investors",
    5,
    owner(),
    integer("total_projects", default=0),
    money("total_volume", default=0),
    money("average_ticket", default=0),
    timestamp("last_investment_date"),
    created_at(),
    updated_at(),
    unique_together=(("user_id",),),
    source_key=None,
)

PROJECT_TIMELINE = table(
    "project_timeline",
    5,
    owner("investment_id", "investments"),
    text("event_type", 50, nullable=False),
    text("title", 255, nullable=False),
    text("description", 1000),
    timestamp("event_date", nullable=False),
    json_object("metadata"),
    created_at(),
    source_key=None,
)

# Phase 6
TRANSACTIONS_MANGOPAY = table(
    "transactions_mangopay",
    6,
    owner(),
    owner("investment_id", "investments"),
    text("transfer_id", 100, nullable=False, unique=True),
    money("amount", nullable=False),
    money("quantity"),
    text("wallet", 100, nullable=False),
    rate("retention_rate", default=0),
    status("status", ("pending", "completed", "failed", "cancelled"), default="pending", nullable=False),
    source_id(),
    created_at(),
    updated_at(),
)

TRANSACTIONS_BLOCKCHAIN = table(
    "transactions_blockchain",
    6,
    text("address", 100, nullable=False),
    text("amount", 100, nullable=False),
    text("project", 100, nullable=False),
    integer("timestamp", big=True, nullable=False),
    text("user", 100, nullable=False),
    source_id(),
    created_at(),
    updated_at(),
)

BANK_TRANSFERS = table(
    "bank_transfers",
    6,
    owner(),
    text("transfer_id", 100, nullable=False, unique=True),
    money("amount", nullable=False),
    text("currency", 10, default="EUR"),
    status("status", ("pending", "confirmed", "failed")),
    timestamp("confirmed_at"),
    source_id(),
    created_at(),
)

WITHDRAWALS = table(
    "withdrawals",
    6,
    owner(),
    money("amount", nullable=False),
    text("currency", 10, default="EUR"),
    text("bank_account_id", 100),
    status("status", ("pending", "processing", "completed", "failed")),
    source_id(),
    created_at(),
    timestamp("processed_at"),
)

# Phase 7
RESERVES = table(
    "reserves",
    7,
    owner(),
    owner("investment_id", "investments"),
    money("token_quantity", nullable=False),
    text("user_wallet", 100),
    text("project_wallet", 100),
    text("transfer_id", 100),
    status("status", ("PENDING", "CONFIRMED", "MINTED", "FAILED")),
    flag("is_external", default=False),
    source_id(),
    created_at(),
    updated_at(),
)

RESERVES_BLOCKCHAIN = table(
    "reserves_blockchain",
    7,
    owner(),
    owner("investment_id", "investments"),
    money("token_quantity", nullable=False),
    text("wallet_address", 100, nullable=False),
    text("transaction_hash", 100),
    status("status", ("pending", "confirmed", "expired", "failed")),
    timestamp("expire_at", nullable=False),
    source_id(),
    created_at(),
)

# Phase 8
DIVIDENDS = table(
    "dividends",
    8,
    owner("investment_id", "investments"),
    rate("interest_rate", nullable=False),
    money("total_amount", nullable=False),
    flag("retention_applied", default=False),
    flag("is_rent", default=False),
    flag("is_last_dividend", default=False),
    source_id(),
    created_at(),
)

# Phase 9: claims reference dividends, so they live one phase later
DIVIDEND_CLAIMS = table(
    "dividend_claims",
    9,
    owner(),
    owner("investment_id", "investments"),
    owner("dividend_id", "dividends"),
    money("capital_invested", nullable=False),
    money("token_quantity", nullable=False),
    money("gross_interest", nullable=False),
    money("gross_return", nullable=False),
    rate("tax_rate", nullable=False),
    money("retention_applied", nullable=False),
    money("net_interest", nullable=False),
    money("net_return", nullable=False),
    timestamp("return_date", nullable=False),
    timestamp("claimed_at"),
    status("claim_type", ("wallet", "blockchain"), default="wallet"),
    text("wallet_address", 100),
    text("transaction_hash", 100),
    status("status", ("pending", "claimed", "failed"), default="pending"),
    source_id(),
    created_at(),
    updated_at(),
)

# Phase 10
WALLETS = table(
    "wallets",
    10,
    owner(),
    text("wallet_id", 100, nullable=False, unique=True),
    status("wallet_type", ("company", "personal")),
    text("currency", 10, default="EUR"),
    text("description", 500),
    flag("is_active", default=True),
    flag("is_primary", default=False),
    source_id(),
    created_at(),
    updated_at(),
)

# Phase 11
WALLET_TRANSACTIONS = table(
    "wallet_transactions",
    11,
    owner("wallet_id", "wallets"),
    status("transaction_type", ("credit", "debit")),
    money("amount", nullable=False),
    text("currency", 10, default="EUR"),
    text("description", 500),
    source_id(),
    created_at(),
)

WALLET_BALANCES = table(
    "wallet_balances",
    11,
    owner("wallet_id", "wallets"),
    money("balance", nullable=False),
    text("currency", 10, default="EUR"),
    updated_at(),
    source_key=None,
)

# Phase 12
BLOCKCHAIN_BALANCES = table(
    "blockchain_balances",
    12,
    owner(),
    owner("investment_id", "investments"),
    text("token_address", 100, nullable=False),
    text("balance_wei", 100, nullable=False),
    money("balance_tokens"),
    updated_at(),
    unique_together=(("user_id", "investment_id", "token_address"),),
    source_key=None,
)

# Phase 13
KYC_VERIFICATIONS = table(
    "kyc_verifications",
    13,
    owner(),
    text("external_identifier", 100, nullable=False, unique=True),
    status("status", ("pending", "approved", "rejected")),
    json_object("verification_data"),
    json_object("error_details"),
    source_id(),
    created_at(),
    updated_at(),
)

DOCUMENTS = table(
    "documents",
    13,
    owner(),
    text("document_type", 50, nullable=False),
    text("title", 255, nullable=False),
    text("filename", 255, nullable=False),
    text("file_path", 500, nullable=False),
    text("file_url", 500),
    text("bucket_name", 50, nullable=False),
    integer("file_size", big=True),
    text("mime_type", 100),
    source_id(),
    created_at(),
)

FISCAL_DOCUMENTS = table(
    "fiscal_documents",
    13,
    owner(),
    text("document_type", 50, nullable=False),
    text("tax_id", 50),
    text("country", 100),
    status("status", ("pending", "approved", "rejected")),
    source_id(),
    created_at(),
    updated_at(),
)

# Phase 14
SYSTEM_CONFIG = table(
    "system_config",
    14,
    text("config_key", 100, nullable=False, unique=True),
    json_object("config_value", nullable=False),
    text("description", 500),
    flag("is_active", default=True),
    created_at(),
    updated_at(),
    source_key=None,
)

CACHE_DATA = table(
    "cache_data",
    14,
    text("cache_key", 255, nullable=False, unique=True),
    json_object("cache_value", nullable=False),
    timestamp("expires_at", nullable=False),
    created_at(),
    source_key=None,
)

# Phase 15
USER_BONUSES = table(
    "user_bonuses",
    15,
    owner(),
    text("bonus_type", 50, nullable=False),
    money("amount", nullable=False),
    rate("percentage"),
    text("project_name", 255),
    text("project_id", 100),
    text("user_email", 255),
    flag("is_applied", default=False),
    flag("email_sent", default=False),
    source_id(),
    created_at(),
)

# Phase 16
AUDIT_LOGS = table(
    "audit_logs",
    16,
    owner(on_delete="SET NULL"),
    text("action_type", 50, nullable=False),
    text("resource_type", 50, nullable=False),
    text("resource_id", 100),
    json_object("old_values"),
    json_object("new_values"),
    Column("ip_address", ColumnKind.INET),
    text("user_agent", 500),
    created_at(),
    source_key=None,
)

# Phase 17
USER_NOTIFICATIONS = table(
    "user_notifications",
    17,
    owner(),
    text("notification_type", 50, nullable=False),
    text("title", 255, nullable=False),
    text("message", 1000, nullable=False),
    flag("is_read", default=False),
    source_id(),
    created_at(),
    timestamp("read_at"),
)

USER_PREFERENCES = table(
    "user_preferences",
    17,
    owner(),
    flag("alert_new_document", default=True),
    flag("alert_withdrawn_success", default=True),
    flag("alert_deposit_success", default=True),
    flag("alert_invest_success", default=True),
    flag("alert_new_project", default=True),
    flag("alert_project_financed", default=True),
    flag("alert_transfer_digital_wallet", default=True),
    flag("alert_otp", default=True),
    source_id(),
    created_at(),
    updated_at(),
)

# Phase 18
ROLE_ASSIGNMENTS = table(
    "role_assignments",
    18,
    owner(),
    owner("role_id", "roles"),
    Column("assigned_by", ColumnKind.UUID, references=ForeignKey("users", on_delete=None)),
    timestamp("assigned_at", default_now=True),
    timestamp("expires_at"),
    unique_together=(("user_id", "role_id"),),
    source_key=None,
)

ADMIN_ACTIONS = table(
    "admin_actions",
    18,
    owner("admin_id"),
    text("action_type", 50, nullable=False),
    text("resource_type", 50, nullable=False),
    text("resource_id", 100),
    json_object("details"),
    Column("ip_address", ColumnKind.INET),
    text("user_agent", 500),
    created_at(),
    source_key=None,
)


TABLES: tuple[TableDefinition, ...] = (
    ROLES,
    COUNTRIES,
    TRANSACTION_TYPES,
    PROJECT_STATUSES,
    USERS,
    USER_PROFILES,
    TWO_FACTOR_AUTH,
    PERMISSIONS,
    INVESTMENTS,
    USER_INVESTMENTS,
    INVESTORS,
    PROJECT_TIMELINE,
    TRANSACTIONS_MANGOPAY,
    TRANSACTIONS_BLOCKCHAIN,
    BANK_TRANSFERS,
    WITHDRAWALS,
    RESERVES,
    RESERVES_BLOCKCHAIN,
    DIVIDENDS,
    DIVIDEND_CLAIMS,
    WALLETS,
    WALLET_TRANSACTIONS,
    WALLET_BALANCES,
    BLOCKCHAIN_BALANCES,
    KYC_VERIFICATIONS,
    DOCUMENTS,
    FISCAL_DOCUMENTS,
    SYSTEM_CONFIG,
    CACHE_DATA,
    USER_BONUSES,
    AUDIT_LOGS,
    USER_NOTIFICATIONS,
    USER_PREFERENCES,
    ROLE_ASSIGNMENTS,
    ADMIN_ACTIONS,
)

TABLES_BY_NAME: dict[str, TableDefinition] = {t.name: t for t in TABLES}


def get_table(name: str) -> TableDefinition | None:
    return TABLES_BY_NAME.get(name)


def build_phases(tables: tuple[TableDefinition, ...] | list[TableDefinition] = TABLES) -> list[MigrationPhase]:
    """Group table definitions into phases, ascending, keeping declaration order within a phase."""
    grouped: dict[int, list[TableDefinition]] = {}
    for definition in tables:
        grouped.setdefault(definition.phase, []).append(definition)
    return [
        MigrationPhase(number=number, name=PHASE_NAMES.get(number, f"phase{number}"), tables=tuple(grouped[number]))
        for number in sorted(grouped)
    ]


PHASES: list[MigrationPhase] = build_phases()

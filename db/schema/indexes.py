from db.schema.types import IndexDefinition


def _index(table: str, *columns: str) -> IndexDefinition:
    return IndexDefinition(table=table, columns=columns)


INDEXES: tuple[IndexDefinition, ...] = (
    # users
    _index("users", "firebase_uid"),
    _index("users", "email"),
    _index("users", "is_active"),
    _index("users", "is_deleted"),
    # investments
    _index("investments", "firebase_id"),
    _index("investments", "project_status"),
    _index("investments", "is_hidden"),
    _index("investments", "is_deleted"),
    _index("investments", "project_status", "is_hidden"),
    # transactions
    _index("transactions_mangopay", "user_id"),
    _index("transactions_mangopay", "investment_id"),
    _index("transactions_mangopay", "status"),
    _index("transactions_mangopay", "user_id", "status"),
    _index("transactions_mangopay", "investment_id", "status"),
    # reserves
    _index("reserves", "user_id"),
    _index("reserves", "investment_id"),
    _index("reserves", "status"),
    _index("reserves", "user_id", "investment_id"),
    _index("reserves", "user_id", "status"),
    # dividend claims
    _index("dividend_claims", "user_id"),
    _index("dividend_claims", "investment_id"),
    _index("dividend_claims", "status"),
    _index("dividend_claims", "user_id", "investment_id"),
    _index("dividend_claims", "user_id", "status"),
    # audit
    _index("audit_logs", "user_id"),
    _index("audit_logs", "resource_type"),
    _index("audit_logs", "created_at"),
    _index("audit_logs", "user_id", "created_at"),
    _index("audit_logs", "resource_type", "created_at"),
    # composite lookups
    _index("user_investments", "user_id", "investment_id"),
    _index("user_investments", "user_id", "is_deleted"),
    _index("user_notifications", "user_id", "is_read"),
    _index("wallet_transactions", "wallet_id", "transaction_type"),
    _index("kyc_verifications", "user_id", "status"),
    _index("documents", "user_id", "document_type"),
    _index("user_profiles", "user_id", "profile_type"),
    _index("wallets", "user_id", "wallet_type"),
    _index("wallets", "user_id", "is_active"),
)

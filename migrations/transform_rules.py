"""
Per-collection transform rules.

A rule is a plain value: an ordered list of FieldRules naming the destination column,
the source field aliases tried in order, and an optional default. Collections without
a specific rule fall back to the registry's default entry, the generic rule, which
copies every field whose name (or snake_case form) is a destination column.
"""

from dataclasses import dataclass, field
from typing import Any, Callable

from db.config import settings

# Sentinel source alias meaning "the document's own identifier".
SOURCE_ID = "__source_id__"


class _Unset:
    def __repr__(self):
        return "UNSET"


UNSET: Any = _Unset()


@dataclass(frozen=True)
class FieldRule:
    column: str
    sources: tuple[str, ...] = ()
    default: Any = UNSET
    default_factory: Callable[[], Any] | None = None
    reference: str | None = None

    def resolve_default(self) -> Any:
        if self.default_factory is not None:
            return self.default_factory()
        return self.default


@dataclass(frozen=True)
class TransformRule:
    fields: tuple[FieldRule, ...] = ()
    copy_matching: bool = False
    timestamps: bool = True

    @property
    def columns(self) -> set[str]:
        return {rule.column for rule in self.fields}

    @property
    def references(self) -> set[str]:
        return {rule.reference for rule in self.fields if rule.reference}


GENERIC_RULE = TransformRule(copy_matching=True)


def _preference_default() -> bool:
    return settings.preference_default_enabled


def _owner(*sources: str) -> FieldRule:
    return FieldRule("user_id", sources or ("userId", "uid", "user"), reference="users")


def _investment(*sources: str) -> FieldRule:
    return FieldRule("investment_id", sources or ("investmentId", "projectId", "project"), reference="investments")


def _preference(column: str, source: str) -> FieldRule:
    return FieldRule(column, (source, column), default_factory=_preference_default)


USERS_RULE = TransformRule(
    fields=(
        FieldRule("email", ("email",), default=""),
        FieldRule("display_name", ("displayName", "name"), default=""),
        FieldRule("phone", ("phone", "phoneNumber"), default=""),
        FieldRule("is_active", ("isActive",), default=True),
        FieldRule("is_verified", ("emailVerified", "isVerified"), default=False),
        FieldRule("profile_type", ("profileType",), default="individual"),
    )
)

INVESTMENTS_RULE = TransformRule(
    fields=(
        FieldRule("title", ("title",), default=""),
        FieldRule("description", ("description",), default=""),
        FieldRule("company", ("company",), default=""),
        FieldRule("token_symbol", ("tokenSymbol",), default=""),
        FieldRule("token_address", ("tokenAddress",), default=""),
        FieldRule("seller_address", ("sellerAddress",), default=""),
        FieldRule("project_wallet", ("projectWallet",), default=""),
        FieldRule("amount_to_sell", ("amountToSell",)),
        FieldRule("amount_sold", ("amountSold",)),
        FieldRule("price_token", ("priceToken",)),
        FieldRule("annual_return", ("annualReturn",)),
        FieldRule("estimated_delivery_time", ("estimatedDeliveryTime",)),
        FieldRule("project_status", ("projectStatus",), default="active"),
        FieldRule("is_hidden", ("isHidden",), default=False),
        FieldRule("only_investors", ("onlyInvestors",), default=False),
        FieldRule("percentage_private_sale", ("percentagePrivateSale",), default=100),
        FieldRule("main_image_path", ("mainImagePath",), default=None),
        FieldRule("main_image_url", ("mainImage", "mainImageUrl"), default=None),
        FieldRule("images_paths", ("imagesPaths",)),
        FieldRule("images_urls", ("images", "imagesUrls")),
        FieldRule("documents_path", ("documentsPath",), default=None),
        FieldRule("documents_url", ("documentsUrl",), default=None),
        FieldRule("documents_metadata", ("documents", "documentsMetadata")),
    )
)

USER_INVESTMENTS_RULE = TransformRule(
    fields=(
        _owner(),
        _investment(),
        FieldRule("total_amount", ("totalAmount",)),
        FieldRule("token_quantity", ("tokenQuantity",)),
        FieldRule("investment_type", ("investmentType",), default="current"),
        FieldRule("last_activity_date", ("lastActivityDate",)),
    )
)

TRANSACTIONS_MANGOPAY_RULE = TransformRule(
    fields=(
        _owner(),
        _investment(),
        FieldRule("transfer_id", ("transferId", "transactionId")),
        FieldRule("amount", ("amount",)),
        FieldRule("quantity", ("quantity", "tokenQuantity")),
        FieldRule("wallet", ("wallet", "walletId")),
        FieldRule("retention_rate", ("retentionRate",)),
        FieldRule("status", ("status",), default="pending"),
    )
)

DIVIDEND_CLAIMS_RULE = TransformRule(
    fields=(
        _owner(),
        _investment(),
        FieldRule("dividend_id", ("dividendId",), reference="dividends"),
        FieldRule("capital_invested", ("capitalInvested",)),
        FieldRule("token_quantity", ("tokenQuantity",)),
        FieldRule("gross_interest", ("grossInterest",)),
        FieldRule("gross_return", ("grossReturn",)),
        FieldRule("tax_rate", ("taxRate",)),
        FieldRule("retention_applied", ("retentionApplied",)),
        FieldRule("net_interest", ("netInterest",)),
        FieldRule("net_return", ("netReturn",)),
        FieldRule("return_date", ("returnDate",)),
        FieldRule("claimed_at", ("claimedAt",), default=None),
        FieldRule("claim_type", ("claimType",), default="wallet"),
        FieldRule("wallet_address", ("walletAddress",), default=None),
        FieldRule("transaction_hash", ("transactionHash", "txHash"), default=None),
        FieldRule("status", ("status",), default="pending"),
    )
)

USER_PREFERENCES_RULE = TransformRule(
    fields=(
        _owner("userId", "uid", SOURCE_ID),
        _preference("alert_new_document", "alertNewDocument"),
        _preference("alert_withdrawn_success", "alertWithdrawnSuccess"),
        _preference("alert_deposit_success", "alertDepositSuccess"),
        _preference("alert_invest_success", "alertInvestSuccess"),
        _preference("alert_new_project", "alertNewProject"),
        _preference("alert_project_financed", "alertProjectFinanced"),
        _preference("alert_transfer_digital_wallet", "alertTransferDigitalWallet"),
        _preference("alert_otp", "alertOtp"),
    )
)

USER_NOTIFICATIONS_RULE = TransformRule(
    fields=(
        _owner(),
        FieldRule("notification_type", ("notificationType", "type"), default="general"),
        FieldRule("title", ("title",), default=""),
        FieldRule("message", ("message", "body"), default=""),
        FieldRule("is_read", ("isRead", "read"), default=False),
        FieldRule("read_at", ("readAt",), default=None),
    )
)


class RuleRegistry:
    """Collection name to TransformRule, with the generic rule as default entry."""

    def __init__(self, rules: dict[str, TransformRule], default: TransformRule = GENERIC_RULE):
        self._rules = dict(rules)
        self.default = default

    def get(self, collection: str) -> TransformRule:
        return self._rules.get(collection, self.default)

    def has_specific_rule(self, collection: str) -> bool:
        return collection in self._rules

    def __contains__(self, collection: str) -> bool:
        return collection in self._rules


TRANSFORM_RULES = RuleRegistry(
    {
        "users": USERS_RULE,
        "investments": INVESTMENTS_RULE,
        "user-investments": USER_INVESTMENTS_RULE,
        "transactions-mangopay": TRANSACTIONS_MANGOPAY_RULE,
        "dividend-claims": DIVIDEND_CLAIMS_RULE,
        "user-panel": USER_PREFERENCES_RULE,
        "user-notifications": USER_NOTIFICATIONS_RULE,
    }
)

from dataclasses import dataclass

from migrations.exceptions import NotMappedError


@dataclass(frozen=True)
class CollectionMapping:
    source_collection: str
    target_table: str


COLLECTION_MAPPINGS: tuple[CollectionMapping, ...] = (
    CollectionMapping("users", "users"),
    CollectionMapping("investments", "investments"),
    CollectionMapping("user-investments", "user_investments"),
    CollectionMapping("transactions-mangopay", "transactions_mangopay"),
    CollectionMapping("transactions-blockchain", "transactions_blockchain"),
    CollectionMapping("reserves", "reserves"),
    CollectionMapping("dividends", "dividends"),
    CollectionMapping("dividend-claims", "dividend_claims"),
    CollectionMapping("wallets", "wallets"),
    CollectionMapping("kyc-results", "kyc_verifications"),
    CollectionMapping("documents", "documents"),
    CollectionMapping("fiscal-documents", "fiscal_documents"),
    CollectionMapping("user-bonuses", "user_bonuses"),
    CollectionMapping("user-notifications", "user_notifications"),
    CollectionMapping("user-panel", "user_preferences"),
)


class CollectionMapper:
    """Static lookup from source collection name to destination table."""

    def __init__(self, mappings: tuple[CollectionMapping, ...] | list[CollectionMapping] = COLLECTION_MAPPINGS):
        self._mappings: dict[str, str] = {}
        for mapping in mappings:
            if mapping.source_collection in self._mappings:
                raise ValueError(f"Duplicate mapping for collection '{mapping.source_collection}'")
            self._mappings[mapping.source_collection] = mapping.target_table

    def resolve(self, source_collection: str) -> str:
        try:
            return self._mappings[source_collection]
        except KeyError:
            raise NotMappedError(source_collection) from None

    def is_mapped(self, source_collection: str) -> bool:
        return source_collection in self._mappings

    def collections(self) -> list[str]:
        return list(self._mappings)

    def items(self) -> list[tuple[str, str]]:
        return list(self._mappings.items())

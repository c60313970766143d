from wallet_engine.store.api_keys import ApiKeyStore, Merchant
from wallet_engine.store.transactions import StatusUpdate, TransactionStore

__all__ = ["ApiKeyStore", "Merchant", "StatusUpdate", "TransactionStore"]

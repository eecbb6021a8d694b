"""Wiring of settings into ledger, store and publisher instances."""

from pathlib import Path

from eth_account import Account

from keeper.audit.publisher import AuditLogPublisher
from keeper.audit.schema import KEEPER_LOG_SCHEMA, STREAM_UPDATE_SCHEMA
from keeper.audit.store import SQLiteStreamsStore
from keeper.core.config import ConfigurationError, Settings
from keeper.core.logging import get_logger
from keeper.ledger.web3_ledger import Web3Ledger

logger = get_logger(__name__)

KEEPER_SCHEMAS = (KEEPER_LOG_SCHEMA, STREAM_UPDATE_SCHEMA)


def build_ledger(settings: Settings) -> Web3Ledger:
    """Create the web3 ledger; credentials must already be validated."""
    settings.require_keeper_credentials()
    return Web3Ledger(
        rpc_url=settings.SOMNIA_RPC_URL,
        contract_address=settings.LUCIDPAY_ADDRESS or "",
        private_key=settings.KEEPER_PRIVATE_KEY or "",
        chain_id=settings.CHAIN_ID,
    )


def publisher_identity(settings: Settings) -> str:
    """Address the keeper publishes under.

    Prefers the signing key's address, falling back to KEEPER_ADDRESS for
    read-only tools that hold no key.
    """
    if settings.KEEPER_PRIVATE_KEY:
        return Account.from_key(settings.KEEPER_PRIVATE_KEY).address
    if settings.KEEPER_ADDRESS:
        return settings.KEEPER_ADDRESS
    raise ConfigurationError("Set KEEPER_PRIVATE_KEY or KEEPER_ADDRESS")


def build_publisher(settings: Settings, identity: str) -> AuditLogPublisher:
    store = SQLiteStreamsStore(Path(settings.AUDIT_STORE_PATH), publisher=identity)
    return AuditLogPublisher(store, namespace=settings.AUDIT_NAMESPACE)


def register_keeper_schemas(publisher: AuditLogPublisher) -> dict[str, str]:
    """Register both keeper schemas, tolerating existing registrations.

    Returns:
        Schema name to schema id
    """
    schema_ids = {}
    for schema in KEEPER_SCHEMAS:
        publisher.register_schema(schema)
        schema_ids[schema.name] = publisher.schema_id(schema)
    return schema_ids

# Infrastructure clients
from clients.vault_client import (
    VaultClient,
    VaultError,
    get_cached_secret,
    get_database_url,
    get_admin_database_url,
    get_secret_fields,
    get_numbering_defaults,
)
from clients.postgres_client import PostgresClient

"""Database module - DynamoDB session store and storage exceptions.

DynamoDBSessionStore is imported from paratransit_client.database.dynamodb_client
so that the store interface in paratransit_client.auth can depend on these
exceptions without a circular import.
"""

from .exceptions import (
    SessionStoreError,
    StoreNetworkError,
    StorePermissionError,
    StoreThrottlingError,
)

__all__ = [
    "SessionStoreError",
    "StoreNetworkError",
    "StorePermissionError",
    "StoreThrottlingError",
]

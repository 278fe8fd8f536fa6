# ==============================================
# MongoClient
# ==============================================
#
# PURPOSE:
#   Manages the MongoDB (source) connection and the three reads the
#   sync loop needs: list collections, fetch one document, fetch
#   every document of a collection.
#
# WHY THIS CLASS EXISTS:
#   MongoDB is schemaless, so there is no model registry: a
#   collection is just a name and a document is just a mapping.
#   Values are tagged (TypeDetector.tag_document) the moment they
#   are read so nothing downstream inspects raw BSON types.
#
# CLASS: MongoClient
# ------------------
#   Stateful: holds connection to MongoDB.
#
#   Constructor:
#   ------------
#   - __init__(host, port, database, user=None, password=None,
#              uri=None, retry=None)
#
#   Methods:
#   --------
#   - connect() -> None
#       Establish connection and ping. Raise StoreConnectionError.
#
#   - disconnect() -> None
#
#   - list_collection_names() -> set[str]
#   - find_one(collection_name) -> dict[str, TaggedValue] | None
#   - find_all(collection_name) -> list[dict[str, TaggedValue]]
#
#   Context Manager:
#   ----------------
#   - __enter__ / __exit__ for `with MongoClient(...) as db:` usage.
#
# ==============================================

from typing import Callable, Dict, List, Optional, Set, TypeVar
from urllib.parse import quote_plus

from loguru import logger
from pymongo import MongoClient as PyMongoClient
from pymongo.errors import AutoReconnect, ConnectionFailure, NetworkTimeout, OperationFailure, ServerSelectionTimeoutError

from docsync.config import RetryConfig
from docsync.errors import StoreConnectionError
from docsync.normalization.type_detector import TaggedValue, TypeDetector
from docsync.retry import call_with_retry


T = TypeVar("T")

TaggedDocument = Dict[str, TaggedValue]


def is_transient_mongo_error(error: BaseException) -> bool:
    # AutoReconnect covers NetworkTimeout and NotPrimaryError
    return isinstance(error, (AutoReconnect, NetworkTimeout, ServerSelectionTimeoutError, ConnectionFailure))


class MongoClient:
    def __init__(self, host, port, database, user=None, password=None, uri=None, retry: Optional[RetryConfig] = None):
        # Store connection params. Don't connect yet.
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.uri = uri
        self.retry = retry or RetryConfig()
        self.client = None  # Will hold the actual MongoDB client connection

    def connection_uri(self) -> str:
        if self.uri:
            return self.uri
        if self.user and self.password:
            return (
                f"mongodb://{quote_plus(self.user)}:{quote_plus(self.password)}"
                f"@{self.host}:{self.port}/{self.database}"
            )
        return f"mongodb://{self.host}:{self.port}/{self.database}"

    def connect(self) -> None:
        def _open() -> None:
            self.client = PyMongoClient(self.connection_uri())
            # Test connection
            self.client.admin.command("ping")

        try:
            self._with_retry(_open, f"MongoDB connect to {self.host}:{self.port}")
        except OperationFailure as e:
            logger.error(f"MongoDB authentication failed: {e}")
            raise StoreConnectionError(f"MongoDB authentication failed: {e}") from e
        logger.info(f"Connected to MongoDB database '{self.database}'")

    def disconnect(self) -> None:
        if self.client:
            self.client.close()
            self.client = None
            logger.info("Disconnected from MongoDB")

    def list_collection_names(self) -> Set[str]:
        db = self._require_client()[self.database]
        return set(self._with_retry(db.list_collection_names, "MongoDB listCollections"))

    def find_one(self, collection_name: str) -> Optional[TaggedDocument]:
        collection = self._require_client()[self.database][collection_name]
        raw = self._with_retry(collection.find_one, f"MongoDB findOne on '{collection_name}'")
        if raw is None:
            return None
        return TypeDetector.tag_document(raw)

    def find_all(self, collection_name: str) -> List[TaggedDocument]:
        # Full rescan: the whole read restarts if the cursor dies mid-way
        collection = self._require_client()[self.database][collection_name]
        raw_documents = self._with_retry(
            lambda: list(collection.find()),
            f"MongoDB find on '{collection_name}'"
        )
        return [TypeDetector.tag_document(raw) for raw in raw_documents]

    def _with_retry(self, operation: Callable[[], T], description: str) -> T:
        return call_with_retry(
            operation,
            description=description,
            is_transient=is_transient_mongo_error,
            policy=self.retry,
        )

    def _require_client(self):
        if not self.client:
            raise StoreConnectionError("MongoDB connection is not established")
        return self.client

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()

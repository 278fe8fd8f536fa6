# ==============================================
# CollectionEnumerator
# ==============================================
#
# PURPOSE:
#   Decides which source collections a cycle visits: every user
#   collection, minus "system.*", narrowed to the allow-list when
#   one is configured.
#
# CLASS: CollectionEnumerator
# ---------------------------
#   - __init__(mongo_client, allow_list=None)
#   - list_collections() -> set[str]
#       Raises StoreConnectionError when the source is not connected.
#
# ==============================================

from typing import Iterable, Optional, Set

from loguru import logger

from docsync.errors import StoreConnectionError


class CollectionEnumerator:
    """
    Lists the collections a sync cycle should visit.

    System collections are never synced. When an allow-list is given,
    only its members are returned (names missing at the source are
    simply absent from the result).
    """

    SYSTEM_PREFIX = "system."

    def __init__(self, mongo_client, allow_list: Optional[Iterable[str]] = None):
        self._mongo = mongo_client
        self._allow_list = set(allow_list or [])

    def list_collections(self) -> Set[str]:
        """
        Returns:
            Collection names currently known to the source

        Raises:
            StoreConnectionError: the source link is not established
        """
        if self._mongo is None:
            raise StoreConnectionError("MongoDB connection is not established")

        names = {
            name for name in self._mongo.list_collection_names()
            if not name.startswith(self.SYSTEM_PREFIX)
        }
        if self._allow_list:
            names &= self._allow_list

        logger.info(f"MongoDB collections: {sorted(names)}")
        return names

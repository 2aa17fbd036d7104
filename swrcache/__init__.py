from ._async import *  # noqa: F403
from ._exceptions import InstallError, ManifestError, OfflineCacheError, UnsupportedRequestError
from ._manifest import Manifest
from ._serializers import *  # noqa: F403

__all__ = (
    # Lifecycle
    "AsyncOfflineCache",
    "StoreState",
    # Interception boundary
    "AsyncOfflineTransport",
    "AsyncOfflineClient",
    "MockAsyncTransport",
    # Stores
    "AsyncCache",
    "AsyncBaseStorage",
    "AsyncFileStorage",
    "AsyncInMemoryStorage",
    "AsyncSQLiteStorage",
    # Serializers
    "BaseSerializer",
    "JSONSerializer",
    "PickleSerializer",
    "YAMLSerializer",
    "Metadata",
    # Manifest
    "Manifest",
    # Exceptions
    "OfflineCacheError",
    "ManifestError",
    "InstallError",
    "UnsupportedRequestError",
)

__version__ = "0.1.0"

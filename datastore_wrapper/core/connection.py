"""
Datastore Connection Handle

This module holds the connection state shared by every query builder:
project, database and namespace identity plus a lazily created
``google.cloud.datastore.Client``.

The handle owns no retry or backoff logic; that is left to the client
library transport. A single DatastoreDB is meant to be shared across many
builders (the underlying client is safe for concurrent use), while each
QueryBuilder is owned by one caller.
"""

import json
import logging
from typing import Any, Optional, Type

from google.cloud import datastore
from google.oauth2 import service_account

from ..config import DatastoreConfig
from ..exceptions import ConnectionError

logger = logging.getLogger(__name__)


class DatastoreDB:
    """
    Connection to a Google Cloud Datastore database.

    Wraps ``datastore.Client`` and stores connection metadata. The client is
    created on first access; use ``connect()`` to create it eagerly and fail
    fast on bad credentials.
    """

    def __init__(self, config: DatastoreConfig):
        """Initialize connection handle.

        Args:
            config: Datastore configuration
        """
        self.config = config
        self._client = None

        if config.enable_debug_logging:
            logging.getLogger("datastore_wrapper").setLevel(logging.DEBUG)

    @property
    def project_id(self) -> Optional[str]:
        """Google Cloud project ID for this connection."""
        if self._client is not None:
            return self._client.project
        return self.config.project_id

    @property
    def database_id(self) -> str:
        """Datastore database ID ('' is the default database)."""
        return self.config.database_id

    @property
    def namespace(self) -> Optional[str]:
        """Partition namespace applied to keys and queries."""
        return self.config.namespace

    @property
    def client(self) -> datastore.Client:
        """
        Lazy initialization of the Datastore client.

        Exposed for advanced operations not covered by the wrapper.
        """
        if self._client is None:
            try:
                client_kwargs = {
                    'project': self.config.project_id,
                    'namespace': self.config.namespace,
                }

                if self.config.database_id:
                    client_kwargs['database'] = self.config.database_id

                if self.config.credentials_json:
                    info = json.loads(self.config.credentials_json)
                    client_kwargs['credentials'] = service_account.Credentials.from_service_account_info(info)
                    if not client_kwargs['project']:
                        client_kwargs['project'] = info.get('project_id')

                self._client = datastore.Client(**client_kwargs)
                logger.debug(
                    f"Created Datastore client for project={self._client.project} "
                    f"database={self.config.database_id or '(default)'}"
                )
            except Exception as e:
                logger.error(f"Failed to create Datastore client: {e}")
                raise ConnectionError(
                    f"Failed to connect to Datastore: {e}",
                    e,
                    {'project_id': self.config.project_id, 'database_id': self.config.database_id},
                ) from e
        return self._client

    def kind_name(self, base_name: str) -> str:
        """Return the kind name with the configured prefix applied."""
        return self.config.get_kind_name(base_name)

    def key(self, kind: str, identifier: Any = None, parent: Optional[datastore.Key] = None) -> datastore.Key:
        """
        Build a key in this connection's namespace and database.

        Args:
            kind: Entity kind
            identifier: String name or numeric id; None builds an incomplete key
            parent: Optional ancestor key

        Returns:
            datastore.Key
        """
        path = [kind] if identifier is None else [kind, identifier]
        if parent is not None:
            return self.client.key(*path, parent=parent)
        return self.client.key(*path)

    def query(self, model_class: Type[Any], kind: Optional[str] = None):
        """Create a QueryBuilder bound to this connection. See ``query.builder.query``."""
        from ..query.builder import query
        return query(self, model_class, kind)


def connect(
    project_id: Optional[str] = None,
    database_id: str = "",
    credentials_json: str = "",
    namespace: Optional[str] = None,
    config: Optional[DatastoreConfig] = None,
) -> DatastoreDB:
    """
    Establish a connection to Google Cloud Datastore.

    Explicit arguments override the matching fields of ``config`` (or of
    ``DatastoreConfig.from_env()`` when no config is given).

    Args:
        project_id: Google Cloud project ID
        database_id: Datastore database ID ('' for the default database)
        credentials_json: Service account JSON ('' for default credentials)
        namespace: Optional partition namespace
        config: Base configuration

    Returns:
        Connected DatastoreDB

    Raises:
        ConnectionError: If the client cannot be created

    Example:
        # Using default credentials (e.g., GOOGLE_APPLICATION_CREDENTIALS)
        db = connect("my-project")

        # Using explicit credentials
        db = connect("my-project", "my-db", cred_json)
    """
    base = config or DatastoreConfig.from_env()
    overrides = {}
    if project_id:
        overrides['project_id'] = project_id
    if database_id:
        overrides['database_id'] = database_id
    if credentials_json:
        overrides['credentials_json'] = credentials_json
    if namespace:
        overrides['namespace'] = namespace

    db = DatastoreDB(base.model_copy(update=overrides) if overrides else base)
    # Force client creation so credential problems surface here
    _ = db.client
    logger.info(f"Connected to Datastore project={db.project_id} database={db.database_id or '(default)'}")
    return db

"""Cassandra session lifecycle and schema bootstrap.

The session comes from cassandra-asyncio-driver, so stores await
``session.aexecute()`` instead of blocking on ``execute()``. On startup the
keyspace and every table owned by a feature package are created if missing.
"""

import structlog
from cassandra.auth import PlainTextAuthProvider
from cassandra.cluster import EXEC_PROFILE_DEFAULT, ExecutionProfile
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra_asyncio.cluster import Cluster

from src.certificates.models import CERTIFICATES_TABLES_CQL
from src.config.settings import get_settings
from src.email.models import EMAIL_TABLES_CQL
from src.notifications.models import NOTIFICATIONS_TABLES_CQL
from src.training.models import TRAINING_TABLES_CQL


logger = structlog.get_logger(__name__)

# Creation order matters only for readability of the startup log
SCHEMA: dict[str, list[str]] = {
    "training": TRAINING_TABLES_CQL,
    "certificates": CERTIFICATES_TABLES_CQL,
    "notifications": NOTIFICATIONS_TABLES_CQL,
    "email": EMAIL_TABLES_CQL,
}


class AsyncCassandraConnection:
    """Process-wide cluster and session holder."""

    _cluster: Cluster | None = None
    _session = None

    @classmethod
    def connect(cls):
        """Open the session once and reuse it afterwards.

        Raises:
            ConnectionError: If no contact point accepts the connection
        """
        if cls._session is not None:
            return cls._session

        settings = get_settings()

        auth_provider = None
        if settings.cassandra_username and settings.cassandra_password:
            auth_provider = PlainTextAuthProvider(
                username=settings.cassandra_username,
                password=settings.cassandra_password,
            )

        profile = ExecutionProfile(
            load_balancing_policy=TokenAwarePolicy(DCAwareRoundRobinPolicy()),
            request_timeout=settings.cassandra_request_timeout,
        )
        cls._cluster = Cluster(
            contact_points=settings.cassandra_hosts,
            port=settings.cassandra_port,
            auth_provider=auth_provider,
            protocol_version=settings.cassandra_protocol_version,
            execution_profiles={EXEC_PROFILE_DEFAULT: profile},
            connect_timeout=settings.cassandra_connect_timeout,
        )

        try:
            cls._session = cls._cluster.connect()
        except Exception as e:
            logger.error("cassandra_connection_failed", error=str(e))
            raise ConnectionError(f"Failed to connect to Cassandra: {e}") from e

        logger.info(
            "cassandra_connected",
            hosts=settings.cassandra_hosts,
            port=settings.cassandra_port,
            request_timeout=settings.cassandra_request_timeout,
        )
        return cls._session

    @classmethod
    def disconnect(cls) -> None:
        if cls._session is not None:
            cls._session.shutdown()
            cls._session = None
        if cls._cluster is not None:
            cls._cluster.shutdown()
            cls._cluster = None
            logger.info("cassandra_disconnected")

    @classmethod
    def is_connected(cls) -> bool:
        return cls._session is not None and not cls._session.is_shutdown


def _replication_clause() -> str:
    if get_settings().is_production:
        return "{'class': 'NetworkTopologyStrategy', 'datacenter1': 3}"
    return "{'class': 'SimpleStrategy', 'replication_factor': 1}"


async def init_async_cassandra():
    """Connect, create the keyspace and every table, and return the session."""
    keyspace = get_settings().cassandra_keyspace
    session = AsyncCassandraConnection.connect()

    await session.aexecute(
        f"CREATE KEYSPACE IF NOT EXISTS {keyspace} "
        f"WITH replication = {_replication_clause()} AND durable_writes = true"
    )
    session.set_keyspace(keyspace)

    for feature, statements in SCHEMA.items():
        for cql in statements:
            await session.aexecute(cql.format(keyspace=keyspace))
        logger.info("cassandra_tables_ready", feature=feature, tables=len(statements))

    return session


async def shutdown_async_cassandra() -> None:
    AsyncCassandraConnection.disconnect()

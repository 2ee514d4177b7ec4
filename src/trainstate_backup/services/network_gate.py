"""Connection-safety policy for network operations.

Every networked entry point calls :meth:`NetworkGate.check` before touching
the record store. The connection classifier is injected so the gate can be
exercised without a real network.
"""

import asyncio
import logging
import socket
from enum import Enum
from typing import Awaitable, Callable

from ..errors import NetworkBlocked

logger = logging.getLogger(__name__)


class ConnectionType(str, Enum):
    UNMETERED = "unmetered"
    METERED = "metered"
    OFFLINE = "offline"


Classifier = Callable[[], ConnectionType]
Continuation = Callable[[], Awaitable[bool]]


class StaticClassifier:
    """Classifier that always reports a fixed connection type."""

    def __init__(self, connection: ConnectionType = ConnectionType.UNMETERED):
        self.connection = connection
        self.calls = 0

    def __call__(self) -> ConnectionType:
        self.calls += 1
        return self.connection


class ProbeClassifier:
    """Classify by TCP-probing a host.

    A failed connect means offline. Whether a live link is metered cannot be
    detected portably, so it comes from configuration.
    """

    def __init__(
        self,
        host: str | None,
        port: int = 443,
        metered: bool = False,
        timeout: float = 5.0,
    ):
        self.host = host
        self.port = port
        self.metered = metered
        self.timeout = timeout

    def __call__(self) -> ConnectionType:
        online = True
        if self.host:
            try:
                sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
                sock.close()
            except OSError as e:
                logger.debug("Probe of %s:%d failed: %s", self.host, self.port, e)
                online = False

        if not online:
            return ConnectionType.OFFLINE
        return ConnectionType.METERED if self.metered else ConnectionType.UNMETERED


class NetworkGate:
    """Decides whether a network operation may proceed.

    Classifiers are plain callables that may block (a TCP probe), so they
    run in a worker thread and never stall the event loop.
    """

    def __init__(self, classifier: Classifier):
        self.classifier = classifier

    async def classify(self) -> ConnectionType:
        return await asyncio.to_thread(self.classifier)

    async def is_safe(self) -> bool:
        """Safe to transfer means unmetered."""
        return await self.classify() == ConnectionType.UNMETERED

    async def allows(self, allow_metered: bool = False) -> bool:
        """Non-raising form of :meth:`check`."""
        connection = await self.classify()
        if connection == ConnectionType.UNMETERED:
            return True
        return allow_metered and connection == ConnectionType.METERED

    async def check(self, allow_metered: bool = False) -> ConnectionType:
        """Fail fast unless the connection permits transfer.

        ``allow_metered`` lets a metered link through; an offline link is
        always blocked.

        Raises:
            NetworkBlocked: If the connection is unsafe
        """
        connection = await self.classify()
        if connection == ConnectionType.UNMETERED:
            return connection
        if connection == ConnectionType.METERED and allow_metered:
            logger.info("Proceeding on metered connection (explicitly allowed)")
            return connection

        logger.warning("Blocked network operation on %s connection", connection.value)
        if connection == ConnectionType.OFFLINE:
            raise NetworkBlocked(connection.value, "No network connection available")
        raise NetworkBlocked(
            connection.value,
            "Refusing to transfer over a metered connection; pass --allow-metered to override",
        )

    def continuation(self, allow_metered: bool = False) -> Continuation:
        """Build a ``should_continue`` callback that re-checks the connection."""

        async def should_continue() -> bool:
            return await self.allows(allow_metered)

        return should_continue

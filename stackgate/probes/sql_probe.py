"""Relational store probe backed by SQLAlchemy connectivity checks."""

from __future__ import annotations

import asyncio
import threading

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.exc import SQLAlchemyError

from stackgate.domain import HealthCheckFailure
from stackgate.manifest import HealthProbeSpec, ServiceDescriptor

from .interfaces import ProbePort


def probe_create_engine(database_url: str) -> Engine:
    """Create the SQLAlchemy engine used for connectivity checks.

    Args:
        database_url: SQLAlchemy database URL.

    Returns:
        Engine: Configured SQLAlchemy engine.

    Raises:
        ValueError: Raised when the database URL is blank.
    """

    if not database_url.strip():
        raise ValueError("database_url must not be blank")

    return create_engine(database_url, pool_pre_ping=True)


class SqlProbe(ProbePort):
    """Probe that runs `SELECT 1` against the service's database URL.

    Engines are cached per URL. SQLAlchemy calls are blocking and run on a
    worker thread; the runner's timeout bounds the wait, not the thread.
    """

    def __init__(self):
        self._engines: dict[str, Engine] = {}
        self._engines_lock = threading.Lock()

    def probe_kind(self) -> str:
        return "sql"

    def _probe_engine_for(self, database_url: str) -> Engine:
        with self._engines_lock:
            engine = self._engines.get(database_url)
            if engine is None:
                engine = probe_create_engine(database_url)
                self._engines[database_url] = engine
            return engine

    @staticmethod
    def _probe_select_one(engine: Engine) -> None:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))

    async def probe_check(self, spec: HealthProbeSpec, descriptor: ServiceDescriptor) -> None:
        """Verify database connectivity using a deterministic lightweight query.

        Args:
            spec: Probe configuration with `database_url`.
            descriptor: Service being probed.

        Returns:
            None: Returning normally means connectivity was verified.

        Raises:
            HealthCheckFailure: Raised when the engine cannot be created or the query fails.
        """

        try:
            engine = self._probe_engine_for(str(spec.database_url))
            await asyncio.to_thread(self._probe_select_one, engine)
        except (SQLAlchemyError, ValueError) as error:
            raise HealthCheckFailure(
                f"service={descriptor.name} database connectivity check failed: {error}"
            ) from error

    def probe_dispose(self) -> None:
        """Dispose every cached engine and its connection pool."""

        with self._engines_lock:
            engines = list(self._engines.values())
            self._engines.clear()
        for engine in engines:
            engine.dispose()

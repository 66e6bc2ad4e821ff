"""
Session stores with a fixed time-to-live.

The pipeline needs two operations from its store:

    get(serial) -> SondeSession | None
    put(serial, session, ttl)   replaces the entry and resets its expiry

An entry that has not been written for `ttl` seconds must read back as
absent; that is the only way a tracked sonde returns to "new". Neither
store offers atomic get-then-put: per-serial serialization is the job of
DeviceLock.

Backend errors are raised as LookupFailure so the caller can drop the
record without special-casing Redis or SQLAlchemy.
"""

import logging
import time
from typing import Callable, Optional

import redis
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from balloony.config import SESSION_TTL_SECONDS, StoreConfig
from balloony.errors import ConfigError, LookupFailure
from balloony.models import SondeSession, SondeSessionRow, init_db, make_engine, make_session_factory

logger = logging.getLogger(__name__)


class RedisSessionStore:
    """
    Redis-backed store: one key per serial, value is the session JSON,
    expiry handled by Redis itself (SET ... EX ttl).
    """

    backend = 'redis'

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_config(cls, store_config: StoreConfig) -> 'RedisSessionStore':
        if store_config.redis_url:
            client = redis.Redis.from_url(store_config.redis_url)
        else:
            host, _, port = store_config.redis_addr.partition(':')
            client = redis.Redis(
                host=host or 'localhost',
                port=int(port or 6379),
                password=store_config.redis_password,
                db=store_config.redis_db,
            )
        return cls(client)

    def ping(self) -> None:
        """Check the connection. Raises ConfigError when Redis is unreachable."""
        try:
            self.client.ping()
        except redis.RedisError as e:
            raise ConfigError(f'Error connecting to Redis: {e}') from e

    def get(self, serial: str) -> Optional[SondeSession]:
        try:
            data = self.client.get(serial)
        except redis.RedisError as e:
            raise LookupFailure(f'Redis get failed for {serial}: {e}') from e

        if data is None:
            return None

        try:
            return SondeSession.from_json(data)
        except (ValueError, TypeError) as e:
            raise LookupFailure(f'Corrupt session for {serial}: {e}') from e

    def put(self, serial: str, session: SondeSession, ttl: int = SESSION_TTL_SECONDS) -> None:
        try:
            self.client.set(serial, session.to_json(), ex=ttl)
        except redis.RedisError as e:
            raise LookupFailure(f'Redis set failed for {serial}: {e}') from e


class SqlSessionStore:
    """
    SQLAlchemy-backed store for deployments without Redis.

    Each row carries an absolute expires_at. Reads treat expired rows as
    absent (and drop them), so expiry holds across process restarts.
    """

    backend = 'sql'

    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Callable[[], float] = time.time,
    ):
        self.session_factory = session_factory
        self.clock = clock

    @classmethod
    def from_config(cls, store_config: StoreConfig, echo: bool = False) -> 'SqlSessionStore':
        engine = make_engine(store_config.database_url, echo=echo)
        init_db(engine)
        return cls(make_session_factory(engine))

    def ping(self) -> None:
        try:
            self.purge_expired()
        except LookupFailure as e:
            raise ConfigError(f'Error connecting to session database: {e}') from e

    def get(self, serial: str) -> Optional[SondeSession]:
        try:
            with self.session_factory() as db:
                row = db.get(SondeSessionRow, serial)
                if row is None:
                    return None
                if row.expires_at <= self.clock():
                    db.delete(row)
                    db.commit()
                    return None
                payload = row.payload
        except SQLAlchemyError as e:
            raise LookupFailure(f'Session lookup failed for {serial}: {e}') from e

        try:
            return SondeSession.from_json(payload)
        except (ValueError, TypeError) as e:
            raise LookupFailure(f'Corrupt session for {serial}: {e}') from e

    def put(self, serial: str, session: SondeSession, ttl: int = SESSION_TTL_SECONDS) -> None:
        try:
            with self.session_factory() as db:
                db.merge(SondeSessionRow(
                    serial=serial,
                    payload=session.to_json(),
                    expires_at=self.clock() + ttl,
                ))
                db.commit()
        except SQLAlchemyError as e:
            raise LookupFailure(f'Session save failed for {serial}: {e}') from e

    def purge_expired(self) -> int:
        """Delete expired rows. Returns how many were removed."""
        try:
            with self.session_factory() as db:
                result = db.execute(
                    delete(SondeSessionRow).where(SondeSessionRow.expires_at <= self.clock())
                )
                db.commit()
        except SQLAlchemyError as e:
            raise LookupFailure(f'Session purge failed: {e}') from e

        if result.rowcount:
            logger.info(f'Purged {result.rowcount} expired sessions')
        return result.rowcount


def create_session_store(store_config: StoreConfig, echo: bool = False):
    """Build the store selected by SESSION_BACKEND ('redis' or 'sql')."""
    if store_config.is_redis:
        return RedisSessionStore.from_config(store_config)
    if store_config.backend == 'sql':
        return SqlSessionStore.from_config(store_config, echo=echo)
    raise ConfigError(f'Unknown SESSION_BACKEND: {store_config.backend}')

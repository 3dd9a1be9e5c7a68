"""
Durable store connection: credential strategies, provisioning and caching.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

import core.config as config
from core.errors import AuthFailure, BackendUnavailable
from core.models import Base

_AUTH_ERROR_MARKERS = (
    "authentication failed",
    "password",
    "access denied",
    "permission denied",
    "not authorized",
)


@dataclass(frozen=True)
class CredentialStrategy:
    name: str
    url: URL | str

    def describe(self) -> str:
        return make_url(self.url).render_as_string(hide_password=True)


def credential_strategies_from_config() -> list[CredentialStrategy]:
    """Ambient credential first, then the explicit shared secret if configured."""
    if not config.DATABASE_URL:
        return []
    url = make_url(config.DATABASE_URL)
    strategies = [CredentialStrategy("ambient", url)]
    if config.NOTES_DB_USER and config.NOTES_DB_PASSWORD:
        strategies.append(
            CredentialStrategy(
                "shared_secret",
                url.set(username=config.NOTES_DB_USER, password=config.NOTES_DB_PASSWORD),
            )
        )
    return strategies


def _engine_kwargs(url: URL) -> dict:
    engine_kwargs = {"pool_pre_ping": True}
    backend = url.get_backend_name()
    if backend == "sqlite":
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    elif backend == "postgresql":
        engine_kwargs["connect_args"] = {
            "connect_timeout": max(1, int(config.DB_CONNECT_TIMEOUT_SECONDS)),
        }
    return engine_kwargs


def _classify_connect_error(strategy: CredentialStrategy, exc: Exception) -> BackendUnavailable:
    message = str(exc).lower()
    if any(marker in message for marker in _AUTH_ERROR_MARKERS):
        return AuthFailure(f"{strategy.name} credential rejected")
    return BackendUnavailable(f"{strategy.name} connection failed")


class DurableConnection:
    """
    Lazily resolved handle to the durable notes table.

    A successful connection is cached for the process lifetime. Failed
    attempts are not cached, so the next call tries every strategy again.
    """

    def __init__(self, strategies: Optional[list[CredentialStrategy]] = None):
        self._strategies = list(strategies) if strategies is not None else credential_strategies_from_config()
        self._lock = threading.Lock()
        self.engine = None
        self.SessionLocal = None
        self.strategy_name: Optional[str] = None
        self.last_error: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self._strategies)

    @property
    def ready(self) -> bool:
        return self.SessionLocal is not None

    def _connect(self, strategy: CredentialStrategy):
        url = make_url(strategy.url)
        try:
            engine = create_engine(url, **_engine_kwargs(url))
        except (SQLAlchemyError, ImportError) as exc:
            # Missing DB driver or unusable URL
            raise _classify_connect_error(strategy, exc) from exc
        try:
            # Existence check against the notes table; no-op when already provisioned
            Base.metadata.create_all(engine, checkfirst=True)
        except SQLAlchemyError as exc:
            engine.dispose()
            raise _classify_connect_error(strategy, exc) from exc
        return engine

    def ensure_ready(self) -> Optional[sessionmaker]:
        """Return a session factory for the durable store, or None when unavailable."""
        if self.SessionLocal is not None:
            return self.SessionLocal
        if not self._strategies:
            return None

        with self._lock:
            if self.SessionLocal is not None:
                return self.SessionLocal
            for strategy in self._strategies:
                try:
                    engine = self._connect(strategy)
                except BackendUnavailable as exc:
                    self.last_error = str(exc)
                    config.logger.warning(
                        "durable_store_connect_failed",
                        extra={
                            "strategy": strategy.name,
                            "error_type": type(exc).__name__,
                            "target": strategy.describe(),
                        },
                    )
                    continue
                self.engine = engine
                self.SessionLocal = sessionmaker(bind=engine)
                self.strategy_name = strategy.name
                self.last_error = None
                config.logger.info(
                    "durable_store_ready",
                    extra={"strategy": strategy.name, "target": strategy.describe()},
                )
                return self.SessionLocal

        config.logger.info("durable_store_unavailable")
        return None

    def status(self) -> dict:
        return {
            "configured": self.configured,
            "ready": self.ready,
            "strategy": self.strategy_name,
            "last_error": self.last_error,
        }

    def dispose(self) -> None:
        if self.engine is not None:
            self.engine.dispose()

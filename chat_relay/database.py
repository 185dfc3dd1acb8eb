from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from chat_relay.logging_config import get_logger

logger = get_logger("database")

Base = declarative_base()


class Database:
    """Connection pool owner. Created closed; `open()` makes it usable."""

    def __init__(self, url: Optional[str], *, pool_size: int = 20) -> None:
        self.url = url
        self.pool_size = pool_size
        self.engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.url)

    @property
    def is_connected(self) -> bool:
        return self.engine is not None

    def open(self) -> None:
        if not self.url:
            logger.warning("DATABASE_URL not configured - running without database")
            return

        engine_kwargs: dict = {"pool_pre_ping": True}
        if self.url.startswith("sqlite"):
            # Sessions run in worker threads via asyncio.to_thread.
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        else:
            engine_kwargs.update(pool_size=self.pool_size, pool_recycle=1800)
        engine = create_engine(self.url, **engine_kwargs)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        logger.info("Database connected", extra={"context": {"pool_size": self.pool_size}})

    def create_all(self) -> None:
        if self.engine is None:
            raise RuntimeError("Database is not connected")
        import chat_relay.models  # noqa: F401  registers tables on Base.metadata

        Base.metadata.create_all(self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        if self._session_factory is None:
            raise RuntimeError("Database is not connected")
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def pool_status(self) -> dict:
        if self.engine is None:
            return {"connected": False, "pool_size": 0, "checked_out": 0, "idle": 0, "overflow": 0}
        pool = self.engine.pool
        checked_out = getattr(pool, "checkedout", lambda: 0)()
        idle = getattr(pool, "checkedin", lambda: 0)()
        overflow = getattr(pool, "overflow", lambda: 0)()
        return {
            "connected": True,
            "pool_size": getattr(pool, "size", lambda: self.pool_size)(),
            "checked_out": checked_out,
            "idle": idle,
            "overflow": overflow,
        }

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None
            self._session_factory = None
            logger.info("Database disconnected")

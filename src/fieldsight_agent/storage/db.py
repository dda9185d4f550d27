"""
Инициализация базы данных и сессий SQLAlchemy.

Назначение:
- Создание engine (лениво: при STORAGE_BACKEND=memory БД не трогаем)
- Контекстный менеджер для сессий
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from functools import lru_cache

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from fieldsight_agent.common.config import get_settings


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_engine(get_settings().database_url, pool_pre_ping=True)


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@contextmanager
def db_session(factory: sessionmaker[Session]) -> Iterator[Session]:
    """
    Контекстный менеджер для работы с БД.

    Использование:
        with db_session(factory) as session:
            session.add(...)
    """
    session: Session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

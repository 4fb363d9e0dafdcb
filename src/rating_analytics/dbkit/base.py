import logging
from pathlib import Path
from typing import Union

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

logger = logging.getLogger(__name__)

Base = declarative_base()


def database_url(db_path: Union[Path, str]) -> str:
    text = str(db_path)
    if "://" in text:
        return text
    return f"sqlite:///{text}"


def get_engine(db_path: Union[Path, str]) -> Engine:
    from . import models  # noqa
    url = database_url(db_path)
    engine = create_engine(url, future=True)
    Base.metadata.create_all(engine)
    logger.debug("rating store ready at %s", url)
    return engine


def get_session(db_path: Union[Path, str]) -> Session:
    SessionLocal = sessionmaker(bind=get_engine(db_path), future=True, expire_on_commit=False)
    return SessionLocal()

import logging
from contextlib import contextmanager

from sqlmodel import SQLModel, create_engine, Session

from .config import DATABASE_URL
from .exceptions import HomekeeperError, TransactionError

logger = logging.getLogger(__name__)

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)


def get_session():
    with Session(engine) as session:
        yield session


def init_db():
    SQLModel.metadata.create_all(engine)


@contextmanager
def atomic(session: Session):
    """Commit everything written inside the block, or nothing.

    Domain errors are re-raised untouched after the rollback; anything else
    is wrapped in TransactionError with the original as its cause.
    """
    try:
        yield session
        session.commit()
    except HomekeeperError:
        session.rollback()
        raise
    except Exception as exc:
        session.rollback()
        logger.error("transaction rolled back: %s", exc)
        raise TransactionError(str(exc) or exc.__class__.__name__) from exc

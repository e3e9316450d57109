"""Database sessions.

Two ways to get one:
- get_db(): request-scoped dependency, closed when the request finishes
- session_factory(): for work that outlives the request (streamed
  generations, video finalization, session bookkeeping)

Both come from the sessionmaker stored on app.state.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    # Rows stay readable after commit; handlers serialize them afterwards.
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db(request: Request) -> Iterator[Session]:
    """Yield a session from the app's factory for the duration of a request."""
    factory: sessionmaker[Session] = request.app.state.session_factory
    with factory() as db:
        yield db


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Commit on success, roll back and re-raise on error."""
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    db.commit()

from contextlib import contextmanager
import logging
from models import db

logger = logging.getLogger(__name__)


@contextmanager
def transactional(message="DB transaction failed"):
    """Yield the session and commit on exit.

    Any exception rolls the session back and is re-raised, so a block either
    lands completely or leaves no trace.
    """
    session = db.session
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.exception(message)
        raise

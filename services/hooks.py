# Post-commit side effects (chat messages, notifications)
# These run after the primary transition has committed and never fail it

import logging
from typing import Callable

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def run_post_commit(db: Session, action: str, fn: Callable, *args, **kwargs) -> bool:
    """
    Run `fn` and commit what it wrote, in its own unit of work.

    Any failure is logged and rolled back; the caller's already-committed
    state is untouched. Returns whether the side effect was applied.
    """
    try:
        fn(*args, **kwargs)
        db.commit()
        return True
    except Exception:
        db.rollback()
        logger.exception(f"Post-commit hook failed: {action}")
        return False

"""Create all tables. Run on app startup."""
import logging

from pharmastock.db.base import Base
from pharmastock.db.session import engine
from pharmastock.models import medicine, batch, sale  # noqa: F401 - register models

logger = logging.getLogger(__name__)


def init_db(bind=None):
    target = bind if bind is not None else engine
    Base.metadata.create_all(bind=target)
    logger.info(f"Schema ready on {target.url.render_as_string(hide_password=True)}")

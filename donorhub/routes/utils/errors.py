# donorhub/routes/utils/errors.py
import logging

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from donorhub.services.errors import DonorHubError

logger = logging.getLogger(__name__)


def service_error(db: Session, error: DonorHubError) -> HTTPException:
    """Roll back and translate a rule violation into an HTTP error."""
    db.rollback()
    return HTTPException(status_code=error.status_code, detail=error.to_dict())


def database_error(db: Session, error: Exception, action: str) -> HTTPException:
    db.rollback()
    logger.exception("Database error while %s", action)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Error {action}: {str(error)}"
    )

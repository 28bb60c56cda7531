import logging
from sqlalchemy.orm import Session
from models.log import Log

logger = logging.getLogger(__name__)

def write_log(db: Session, *, user_id, action, resource, status="SUCCESS", ip=None, meta=None):
    entry = Log(user_id=user_id, action=action, resource=resource, status=status, ip=ip, meta=meta or {})
    db.add(entry)
    db.commit()

def audit_hook(db: Session, *, user_id, ip=None, resource="orders"):
    """Observability hook handed to services; records each event as an audit row."""
    def _emit(event: str, payload: dict):
        logger.info("%s %s", event, payload)
        write_log(
            db,
            user_id=user_id,
            action=event.upper().replace(".", "_"),
            resource=resource,
            status="SUCCESS",
            ip=ip,
            meta=payload,
        )
    return _emit

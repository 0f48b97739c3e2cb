import uuid, json
from sqlalchemy.orm import Session
from pickups.models.audit_log import AuditLog

def log_audit(db: Session, actor: str, action: str, date_key: str, entity_id: str, details: dict | None = None):
    db.add(AuditLog(
        id=str(uuid.uuid4()),
        actor=actor or "ops",
        action=action,
        date_key=date_key,
        entity_id=entity_id,
        details_json=json.dumps(details or {}, ensure_ascii=False),
    ))

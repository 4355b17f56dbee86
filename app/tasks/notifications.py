import logging

from sqlalchemy.orm import Session

from app.celery_app import celery_app

logger = logging.getLogger(__name__)

_TITLES = {
    "document.submitted": "Document submitted",
    "document.resubmitted": "Document resubmitted",
    "document.approved": "Document approved",
    "document.rejected": "Document rejected",
    "document.revision_requested": "Revision requested",
    "document.completed": "Document completed",
    "cover.uploaded": "Cover submitted",
    "cover.approved": "Cover approved",
    "cover.rejected": "Cover rejected",
}


@celery_app.task(
    name="app.tasks.notifications.dispatch_notifications", ignore_result=True
)
def dispatch_notifications(
    event_type: str,
    entity_type: str,
    entity_id: str,
    actor_id: str | None = None,
    document_id: str | None = None,
    payload: dict | None = None,
) -> None:
    """Create in-app notifications for the recipients named in the payload."""
    if not document_id:
        return

    from app.db import SessionLocal

    db = SessionLocal()
    try:
        _dispatch(
            db, event_type, entity_type, entity_id, actor_id, document_id, payload
        )
    except Exception as e:
        logger.exception("Failed to dispatch notifications for %s: %s", event_type, e)
    finally:
        db.close()


def _dispatch(
    db: Session,
    event_type: str,
    entity_type: str,
    entity_id: str,
    actor_id: str | None,
    document_id: str,
    payload: dict | None,
) -> int:
    from app.models.workflow import Notification
    from app.services.common import coerce_uuid

    title = _TITLES.get(event_type)
    if title is None:
        return 0
    payload = payload or {}
    recipients = dict.fromkeys(str(r) for r in payload.get("recipient_ids") or [])

    subject = payload.get("subject") or ""
    note = payload.get("note")
    body = f"{subject}: {note}" if note else subject
    for recipient_id in recipients:
        db.add(
            Notification(
                recipient_id=coerce_uuid(recipient_id),
                title=title,
                body=body,
                event_type=event_type,
                entity_type=entity_type,
                entity_id=str(entity_id),
                metadata_={
                    "document_id": document_id,
                    "actor_id": actor_id,
                    "state": payload.get("state"),
                },
            )
        )

    db.commit()
    logger.info(
        "Dispatched %d notifications for event %s on document %s",
        len(recipients),
        event_type,
        document_id,
    )
    return len(recipients)

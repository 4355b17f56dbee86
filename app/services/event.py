import enum
import logging
import uuid

logger = logging.getLogger(__name__)


class EventType(enum.Enum):
    document_created = "document.created"
    document_updated = "document.updated"
    document_submitted = "document.submitted"
    document_approved = "document.approved"
    document_rejected = "document.rejected"
    document_revision_requested = "document.revision_requested"
    document_resubmitted = "document.resubmitted"
    document_completed = "document.completed"

    cover_uploaded = "cover.uploaded"
    cover_approved = "cover.approved"
    cover_rejected = "cover.rejected"


def publish_event(
    event_type: EventType,
    entity_type: str,
    entity_id: str | uuid.UUID,
    actor_id: str | uuid.UUID | None = None,
    document_id: str | uuid.UUID | None = None,
    payload: dict | None = None,
) -> None:
    """Fire-and-forget event publishing.

    Queues a Celery task for fan-out to the notification sink.
    Never raises — logs failures and continues.
    """
    try:
        from app.tasks.events import process_event

        process_event.delay(
            event_type=event_type.value,
            entity_type=entity_type,
            entity_id=str(entity_id),
            actor_id=str(actor_id) if actor_id else None,
            document_id=str(document_id) if document_id else None,
            payload=payload or {},
        )
        logger.debug(
            "Published event %s for %s/%s", event_type.value, entity_type, entity_id
        )
    except Exception as e:
        logger.exception("Failed to publish event %s: %s", event_type.value, e)

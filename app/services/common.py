import uuid

from app.errors import NotFoundError, ValidationError


def coerce_uuid(value):
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise ValidationError(f"Invalid identifier: {value}")


def coerce_document_id(value) -> uuid.UUID:
    # an unparseable id can never name a document
    try:
        return coerce_uuid(value)
    except ValidationError:
        raise NotFoundError("Document not found")


def escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def apply_pagination(query, limit, offset):
    return query.limit(limit).offset(offset)

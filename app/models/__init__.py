from app.models.workflow import (  # noqa: F401
    TERMINAL_STATES,
    AudienceType,
    CoverState,
    DocumentRoute,
    DocumentState,
    DocumentVariant,
    MailboxKind,
    Notification,
    WorkflowAction,
    WorkflowDocument,
    WorkflowHistory,
)

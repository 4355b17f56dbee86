import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _resolve_database_url() -> str:
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        return database_url

    environment = os.getenv("ENVIRONMENT", "").strip().lower()
    if environment == "development":
        return "postgresql+psycopg://localhost:5434/approval_workflow"

    raise ValueError(
        "DATABASE_URL is not set. Set DATABASE_URL for non-development "
        "environments or set ENVIRONMENT=development for local defaults."
    )


def _role_codes(name: str, default: str) -> frozenset[str]:
    raw = os.getenv(name, default)
    return frozenset(
        item.strip().upper() for item in raw.split(",") if item.strip()
    )


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    database_url: str = _resolve_database_url()
    db_pool_size: int = int(os.getenv("DB_POOL_SIZE", "5"))
    db_max_overflow: int = int(os.getenv("DB_MAX_OVERFLOW", "10"))
    db_pool_timeout: int = int(os.getenv("DB_POOL_TIMEOUT", "30"))
    db_pool_recycle: int = int(os.getenv("DB_POOL_RECYCLE", "1800"))

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_format: str = os.getenv("LOG_FORMAT", "readable")

    # Celery
    celery_broker_url: str = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    celery_result_backend: str = os.getenv(
        "CELERY_RESULT_BACKEND", "redis://localhost:6379/1"
    )
    celery_task_always_eager: bool = _env_bool("CELERY_TASK_ALWAYS_EAGER", "false")

    # S3 / MinIO settings
    s3_endpoint_url: str = os.getenv("S3_ENDPOINT_URL", "")
    s3_access_key: str = os.getenv("S3_ACCESS_KEY", "")
    s3_secret_key: str = os.getenv("S3_SECRET_KEY", "")
    s3_bucket_name: str = os.getenv("S3_BUCKET_NAME", "workflow-documents")
    s3_region: str = os.getenv("S3_REGION", "us-east-1")
    s3_presigned_url_expiry: int = int(os.getenv("S3_PRESIGNED_URL_EXPIRY", "3600"))

    # Workflow roles (comma-separated role codes)
    full_admin_roles: frozenset[str] = _role_codes("WORKFLOW_FULL_ADMIN_ROLES", "ADMIN")
    activity_reviewer_roles: frozenset[str] = _role_codes(
        "WORKFLOW_ACTIVITY_REVIEWER_ROLES", "BEM_ADMIN,DEMA_ADMIN"
    )
    report_reviewer_roles: frozenset[str] = _role_codes(
        "WORKFLOW_REPORT_REVIEWER_ROLES", "BEM_ADMIN"
    )
    letter_reviewer_roles: frozenset[str] = _role_codes(
        "WORKFLOW_LETTER_REVIEWER_ROLES", "BEM_ADMIN,DEMA_ADMIN"
    )
    letter_org_reviewer_roles: frozenset[str] = _role_codes(
        "WORKFLOW_LETTER_ORG_REVIEWER_ROLES", "ADMIN,ORG_ADMIN"
    )
    cover_reviewer_roles: frozenset[str] = _role_codes(
        "WORKFLOW_COVER_REVIEWER_ROLES", "BEM_ADMIN"
    )
    default_approval_note: str = os.getenv(
        "WORKFLOW_DEFAULT_APPROVAL_NOTE", "Approved"
    )

    # Branding
    brand_name: str = os.getenv("BRAND_NAME", "Approval Workflow")


settings = Settings()

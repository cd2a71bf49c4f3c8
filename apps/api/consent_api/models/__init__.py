"""SQLAlchemy models."""

from consent_api.models.admin_user import PRIVILEGED_ROLES, AdminRole, AdminUser
from consent_api.models.audit_log import AuditAction, AuditLog
from consent_api.models.base import Base
from consent_api.models.consent_record import (
    ANONYMOUS_EMAIL,
    ConsentRecord,
    ConsentType,
    LegalBasis,
)
from consent_api.models.data_request import DataRequest, DataRequestStatus, DataRequestType
from consent_api.models.issued_token import IssuedToken, TokenPurpose
from consent_api.models.subscriber import Subscriber

__all__ = [
    # Base
    "Base",
    # Subscribers & consent
    "Subscriber",
    "ConsentRecord",
    "ConsentType",
    "LegalBasis",
    "ANONYMOUS_EMAIL",
    # Data-subject requests
    "DataRequest",
    "DataRequestStatus",
    "DataRequestType",
    # Tokens
    "IssuedToken",
    "TokenPurpose",
    # Audit
    "AuditLog",
    "AuditAction",
    # Admin
    "AdminUser",
    "AdminRole",
    "PRIVILEGED_ROLES",
]

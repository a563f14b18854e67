"""Disclosure Governance: completeness, remediation and report versioning for ESG disclosures."""

__version__ = "0.4.0"

from disclosure_governance.access.gate import AccessRequestGate
from disclosure_governance.audit.recorder import AuditRecorder
from disclosure_governance.authz.authorizer import (
    AllowAllAuthorizer,
    Authorizer,
    PatternAuthorizer,
)
from disclosure_governance.completeness.exceptions import ExceptionRegister
from disclosure_governance.completeness.transitions import StatusTransitionManager
from disclosure_governance.completeness.validator import validate
from disclosure_governance.config import GovernanceConfig, find_config, load_config
from disclosure_governance.errors import (
    ConflictError,
    ErrorKind,
    GovernanceError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    StorageUnavailableError,
    ValidationFailedError,
)
from disclosure_governance.generations.comparator import VersionComparator
from disclosure_governance.generations.store import GenerationStore
from disclosure_governance.models import (
    AccessRequest,
    AccessStatus,
    Actor,
    AuditLogEntry,
    CompletenessStatus,
    CompletionException,
    DataPoint,
    DataPointSnapshot,
    ExceptionType,
    Generation,
    GenerationComparison,
    GenerationStatus,
    MissingField,
    PlanStatus,
    Priority,
    RemediationAction,
    RemediationPlan,
    ReportSnapshot,
    ResourceType,
    SectionSnapshot,
)
from disclosure_governance.remediation.tracker import RemediationTracker
from disclosure_governance.sdk.client import GovernanceEngine
from disclosure_governance.storage.memory import InMemoryStore
from disclosure_governance.storage.sqlite import SQLiteStore

__all__ = [
    "AccessRequest",
    "AccessRequestGate",
    "AccessStatus",
    "Actor",
    "AllowAllAuthorizer",
    "AuditLogEntry",
    "AuditRecorder",
    "Authorizer",
    "CompletenessStatus",
    "CompletionException",
    "ConflictError",
    "DataPoint",
    "DataPointSnapshot",
    "ErrorKind",
    "ExceptionRegister",
    "ExceptionType",
    "find_config",
    "Generation",
    "GenerationComparison",
    "GenerationStatus",
    "GenerationStore",
    "GovernanceConfig",
    "GovernanceEngine",
    "GovernanceError",
    "InMemoryStore",
    "InvalidInputError",
    "InvalidTransitionError",
    "load_config",
    "MissingField",
    "NotFoundError",
    "PatternAuthorizer",
    "PermissionDeniedError",
    "PlanStatus",
    "Priority",
    "RemediationAction",
    "RemediationPlan",
    "RemediationTracker",
    "ReportSnapshot",
    "ResourceType",
    "SectionSnapshot",
    "SQLiteStore",
    "StatusTransitionManager",
    "StorageUnavailableError",
    "validate",
    "ValidationFailedError",
    "VersionComparator",
    "__version__",
]

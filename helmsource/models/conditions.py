"""Status condition model and the condition/reason vocabulary."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class Condition(BaseModel):
    """A named status flag with reason and message.

    Conditions are unique by ``type`` within a status.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: str
    status: ConditionStatus
    reason: str
    message: str = ""
    observed_generation: int = 0
    last_transition_time: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


# ---------------------------------------------------------------------------
# Condition types
# ---------------------------------------------------------------------------

READY_CONDITION = "Ready"
RECONCILING_CONDITION = "Reconciling"
STALLED_CONDITION = "Stalled"

FETCH_FAILED_CONDITION = "FetchFailed"
STORAGE_OPERATION_FAILED_CONDITION = "StorageOperationFailed"
ARTIFACT_OUTDATED_CONDITION = "ArtifactOutdated"
ARTIFACT_IN_STORAGE_CONDITION = "ArtifactInStorage"

# ---------------------------------------------------------------------------
# Reasons
# ---------------------------------------------------------------------------

SUCCEEDED_REASON = "Succeeded"
FAILED_REASON = "Failed"
PROGRESSING_REASON = "Progressing"
PROGRESSING_WITH_RETRY_REASON = "ProgressingWithRetry"

AUTHENTICATION_FAILED_REASON = "AuthenticationFailed"
URL_INVALID_REASON = "URLInvalid"
INDEXATION_FAILED_REASON = "IndexationFailed"
NEW_REVISION_REASON = "NewRevision"
DIR_CREATION_FAILED_REASON = "DirectoryCreationFailed"
ARCHIVE_OPERATION_FAILED_REASON = "ArchiveOperationFailed"
SYMLINK_UPDATE_FAILED_REASON = "SymlinkUpdateFailed"
CACHE_OPERATION_FAILED_REASON = "CacheOperationFailed"
ARTIFACT_UP_TO_DATE_REASON = "ArtifactUpToDate"
NEW_ARTIFACT_REASON = "NewArtifact"
GARBAGE_COLLECTION_FAILED_REASON = "GarbageCollectionFailed"
GARBAGE_COLLECTION_SUCCEEDED_REASON = "GarbageCollectionSucceeded"

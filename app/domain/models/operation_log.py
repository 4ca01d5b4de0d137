# app/domain/models/operation_log.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum


class OperationKind(str, Enum):
    PROCESS_STARTED = "process_started"
    DOCUMENT_GENERATED = "document_generated"
    DOCUMENT_SIGNED = "document_signed"
    ARTIFACT_STORED = "artifact_stored"
    SUBMITTED = "submitted"
    REMOTE_RESPONSE = "remote_response"
    ERROR = "error"
    RETRY = "retry"
    RETRY_RESPONSE = "retry_response"
    STATE_UPDATE = "state_update"
    RENDERED = "rendered"


class LogLevel(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class OperationLogEntry(BaseModel):
    id: Optional[int] = None
    invoice_id: int
    kind: OperationKind
    description: str
    level: LogLevel = LogLevel.SUCCESS
    previous_state: Optional[str] = None
    next_state: Optional[str] = None
    detail: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

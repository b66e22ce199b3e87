from typing import Any, Dict, List, Literal, Optional, Type, get_args

import pydantic
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic_core import PydanticCustomError

from .domain import ValidationError
from .utils import parse_calendar_date

TITLE_MAX_LENGTH = 500
CONTENT_MAX_LENGTH = 10000

Priority = Literal["low", "medium", "high"]

class UserCreds(BaseModel):
    email: EmailStr
    password: str

# -------------------------------
# Request bodies
# -------------------------------

def non_blank(label: str, value: str) -> str:
    value = value.strip()
    if not value:
        raise PydanticCustomError("blank", f"{label} cannot be empty")
    return value

def drop_nulls(data: Any) -> Any:
    """On create an explicit null counts as absent, so defaults apply."""
    if isinstance(data, dict):
        return {k: v for k, v in data.items() if v is not None}
    return data

class RequestBody(BaseModel):
    """Client-supplied fields. Unknown keys, including ``id`` and ``user_id``, are dropped."""
    model_config = ConfigDict(extra="ignore")

class TaskUpdate(RequestBody):
    # Unset fields stay out of the update; an explicit null on title or priority fails type checks.
    title: str = Field(None, max_length=TITLE_MAX_LENGTH)
    completed: bool = None
    due_date: Optional[str] = None
    priority: Priority = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str) -> str:
        return non_blank("Title", value)

    @field_validator("completed", mode="before")
    @classmethod
    def truthy(cls, value: Any) -> bool:
        return bool(value)

    @field_validator("due_date", mode="before")
    @classmethod
    def normalize_due_date(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        parsed = parse_calendar_date(value) if isinstance(value, str) else None
        if parsed is None:
            raise PydanticCustomError("calendar_date", "Due date must be a valid date (YYYY-MM-DD)")
        return parsed.isoformat()

class TaskCreate(TaskUpdate):
    title: str = Field(max_length=TITLE_MAX_LENGTH)
    completed: bool = False
    due_date: Optional[str] = None
    priority: Priority = "medium"

    @model_validator(mode="before")
    @classmethod
    def nulls_mean_absent(cls, data: Any) -> Any:
        return drop_nulls(data)

class NoteUpdate(RequestBody):
    content: str = Field(None, max_length=CONTENT_MAX_LENGTH)

    @field_validator("content")
    @classmethod
    def strip_content(cls, value: str) -> str:
        return non_blank("Content", value)

class NoteCreate(NoteUpdate):
    content: str = Field(max_length=CONTENT_MAX_LENGTH)

    @model_validator(mode="before")
    @classmethod
    def nulls_mean_absent(cls, data: Any) -> Any:
        return drop_nulls(data)

def describe(model: Type[BaseModel], error: Dict[str, Any]) -> str:
    """Turn one pydantic error into the message sent to clients."""
    kind = error["type"]
    loc = error.get("loc") or ()
    if kind == "json_invalid":
        return "Request body must be valid JSON"
    if not loc:
        return "Request body must be a JSON object"
    name = str(loc[0])
    label = name.replace("_", " ").capitalize()
    if kind == "missing":
        return f"{label} is required"
    if kind == "string_type":
        return f"{label} must be a string"
    if kind == "string_too_long":
        return f"{label} must be at most {error['ctx']['max_length']} characters"
    if kind == "literal_error":
        allowed = get_args(model.model_fields[name].annotation)
        return f"{label} must be one of: {', '.join(allowed)}"
    return error["msg"]

def parse_body(model: Type[BaseModel], raw: bytes) -> BaseModel:
    """Decode and validate a raw JSON body, raising ValidationError with every failure."""
    try:
        if not raw.strip():
            return model.model_validate(None)
        return model.model_validate_json(raw)
    except pydantic.ValidationError as e:
        raise ValidationError([describe(model, err) for err in e.errors()])

# -------------------------------
# Responses
# -------------------------------

class TaskRecord(BaseModel):
    id: str
    user_id: str
    title: str
    completed: bool = False
    due_date: Optional[str] = None
    priority: str = "medium"
    created_at: str

class NoteRecord(BaseModel):
    id: str
    user_id: str
    content: str
    created_at: str

class ServiceStatus(BaseModel):
    api: str = "ok"
    database: str = "unknown"

class HealthReport(BaseModel):
    status: str = "ok"
    timestamp: str
    uptime: float
    services: ServiceStatus = ServiceStatus()

class Envelope(BaseModel):
    """Uniform response wrapper. Keys left as None are omitted from the body."""
    success: bool
    data: Optional[Any] = None
    message: Optional[str] = None
    error: Optional[str] = None
    count: Optional[int] = None
    stack: Optional[List[str]] = None

    def body(self) -> Dict[str, Any]:
        dumped = self.model_dump()
        return {k: v for k, v in dumped.items() if v is not None}

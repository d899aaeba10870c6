"""
Action parameter models.

The classifier returns one loose parameter map for every action. Each action
declares only the fields its executor needs; required fields are checked
here, before anything touches an external service. Models are frozen: a
title lookup produces a new resolved object instead of editing the
classifier's output.
"""

from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Type, TypeVar

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from src.utils.errors import ActionExecutionError, MissingParameterError


class ActionParams(BaseModel):
    """Base for all action parameter models (camelCase aliases, frozen)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    def missing_fields(self) -> List[str]:
        """Cross-field requirements that plain required fields cannot express."""
        return []


def _as_list(value: Any) -> Any:
    # The model sometimes sends "a@x.com, b@y.com" instead of a list
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


StringList = Annotated[List[str], BeforeValidator(_as_list)]


# ============================================================================
# Gmail
# ============================================================================

class SendEmailParams(ActionParams):
    to: str
    subject: str = ""
    body: str
    reply_to_message_id: Optional[str] = None


class ReadEmailsParams(ActionParams):
    sender: Optional[str] = None
    subject: Optional[str] = None
    is_unread: Optional[bool] = None
    has_attachment: Optional[bool] = None
    date_after: Optional[str] = None
    date_before: Optional[str] = None
    query: Optional[str] = None
    max_results: int = Field(default=10, ge=1, le=50)


class SearchEmailsParams(ActionParams):
    query: str
    max_results: int = Field(default=20, ge=1, le=50)


class MarkEmailsAsReadParams(ActionParams):
    message_ids: StringList = Field(min_length=1)
    mark_as_read: bool = True


class GetEmailThreadParams(ActionParams):
    thread_id: str


# ============================================================================
# Calendar
# ============================================================================

class ScheduleMeetingParams(ActionParams):
    title: str
    start: str
    end: str
    description: str = ""
    attendees: StringList = Field(default_factory=list)


class CreateRecurringEventParams(ScheduleMeetingParams):
    recurrence: List[str] = Field(min_length=1)

    @field_validator("recurrence", mode="before")
    @classmethod
    def _wrap_rule(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = [value]
        if isinstance(value, list):
            return [rule if rule.startswith("RRULE:") else f"RRULE:{rule}" for rule in value]
        return value


class GetUpcomingEventsParams(ActionParams):
    max_results: int = Field(default=10, ge=1, le=100)
    time_min: Optional[str] = None
    time_max: Optional[str] = None


class GetEventParams(ActionParams):
    event_id: str


class EventTargetParams(ActionParams):
    """An event addressed by id or, failing that, by title."""
    event_id: Optional[str] = None
    event_title: Optional[str] = None

    def missing_fields(self) -> List[str]:
        if not self.event_id and not self.event_title:
            return ["eventId or eventTitle"]
        return []


class UpdateEventParams(EventTargetParams):
    title: Optional[str] = None
    description: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None
    attendees: Optional[StringList] = None
    location: Optional[str] = None


class DeleteEventParams(EventTargetParams):
    notify_attendees: bool = True


class FindFreeTimeSlotsParams(ActionParams):
    start_date: str
    end_date: str
    duration_minutes: int = Field(default=60, ge=5, le=1440)
    attendees: StringList = Field(default_factory=list)


class SearchEventsParams(ActionParams):
    query: str
    max_results: int = Field(default=20, ge=1, le=100)
    time_min: Optional[str] = None
    time_max: Optional[str] = None


class CheckEventConflictsParams(ActionParams):
    start: str
    end: str
    exclude_event_id: Optional[str] = None


class ListCalendarsParams(ActionParams):
    pass


# ============================================================================
# Docs
# ============================================================================

class CreateDocumentParams(ActionParams):
    title: str
    content: Optional[str] = None
    folder_id: Optional[str] = None


class DocumentTargetParams(ActionParams):
    """A document addressed by id or, failing that, by title."""
    document_id: Optional[str] = None
    document_title: Optional[str] = None

    def missing_fields(self) -> List[str]:
        if not self.document_id and not self.document_title:
            return ["documentId or documentTitle"]
        return []


class ReadDocumentParams(DocumentTargetParams):
    pass


class UpdateDocumentParams(DocumentTargetParams):
    mode: Literal["append", "replace", "insert"] = Field(
        default="append",
        validation_alias=AliasChoices("mode", "action"),
    )
    content: str
    replace_text: Optional[str] = None
    insert_index: Optional[int] = Field(default=None, ge=1)

    def missing_fields(self) -> List[str]:
        missing = super().missing_fields()
        if self.mode == "replace" and not self.replace_text:
            missing.append("replaceText")
        return missing


class ShareDocumentParams(DocumentTargetParams):
    email: str
    role: Literal["reader", "writer", "commenter"] = "reader"
    notify: bool = True
    message: Optional[str] = None


class DeleteDocumentParams(DocumentTargetParams):
    permanent: bool = False


class GetDocumentPermissionsParams(DocumentTargetParams):
    pass


class SearchDocumentsParams(ActionParams):
    query: Optional[str] = None
    folder_id: Optional[str] = None
    modified_after: Optional[str] = None
    max_results: int = Field(default=10, ge=1, le=50)


# ============================================================================
# Validation
# ============================================================================

P = TypeVar("P", bound=ActionParams)

MISSING_ERROR_TYPES = {"missing", "too_short"}


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_parameters(action_name: str, model: Type[P], raw: Optional[Mapping[str, Any]]) -> P:
    """
    Validate the classifier's parameter map for one action.

    None values and blank strings count as absent.

    Raises:
        MissingParameterError: One or more required fields are absent
        ActionExecutionError: A field is present but has an invalid value
    """
    cleaned: Dict[str, Any] = {k: v for k, v in (raw or {}).items() if not _is_blank(v)}

    try:
        params = model.model_validate(cleaned)
    except ValidationError as e:
        errors = e.errors()
        missing = [
            ".".join(str(part) for part in err["loc"])
            for err in errors
            if err["type"] in MISSING_ERROR_TYPES
        ]
        if missing:
            raise MissingParameterError(action_name, missing) from e
        invalid = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in errors
        )
        raise ActionExecutionError(f"Invalid parameter(s) for {action_name}: {invalid}") from e

    missing = params.missing_fields()
    if missing:
        raise MissingParameterError(action_name, missing)
    return params

"""
Response schemas for the Google Tasks and Calendar APIs.

Every resource the clients return is validated before the engine sees
it. Unknown fields are kept so the raw payload reaches the providers
unchanged; fields the providers read must have the expected type.
"""

from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

from dashboard_sync.errors import SyncError, SyncErrorKind


class GoogleResource(BaseModel):
    """Base for API resources: an id is required, extra fields pass through."""

    model_config = ConfigDict(extra="allow")

    id: str


class CollectionResource(GoogleResource):
    """A task list (title) or calendar list entry (summary)."""

    title: str | None = None
    summary: str | None = None
    primary: bool | None = None
    updated: str | None = None


class TaskResource(GoogleResource):
    """A Google Tasks task."""

    title: str | None = None
    notes: str | None = None
    status: Literal["needsAction", "completed"] | None = None
    due: str | None = None
    completed: str | None = None
    updated: str | None = None
    position: str | None = None
    parent: str | None = None
    deleted: bool | None = None
    hidden: bool | None = None


class EventResource(GoogleResource):
    """A Google Calendar event."""

    summary: str | None = None
    description: str | None = None
    status: str | None = None
    start: dict[str, Any] | None = None
    end: dict[str, Any] | None = None
    colorId: str | None = None
    created: str | None = None
    updated: str | None = None


class PageResponse(BaseModel):
    """One page of a list call; items are validated one by one afterwards."""

    model_config = ConfigDict(extra="allow")

    items: list[dict[str, Any]] = []
    nextPageToken: str | None = None


ResourceT = TypeVar("ResourceT", bound=BaseModel)


def _describe(error: Any) -> str:
    location = ".".join(str(part) for part in error["loc"]) or "body"
    return f"{location}: {error['msg']}"


def validate_response(
    model: type[ResourceT], data: Any, what: str
) -> dict[str, Any]:
    """
    Validate an API response against a schema.

    Args:
        model: Schema the response must satisfy
        data: Decoded response body
        what: Description of the response for the error message

    Returns:
        The response as a dictionary, unknown fields included

    Raises:
        SyncError: INVALID_DATA if the response does not match the schema
    """
    try:
        resource = model.model_validate(data)
    except ValidationError as e:
        problems = ", ".join(_describe(error) for error in e.errors())
        raise SyncError(
            SyncErrorKind.INVALID_DATA, f"Invalid {what}: {problems}", cause=e
        ) from e
    return resource.model_dump(exclude_none=True)


__all__ = [
    "CollectionResource",
    "TaskResource",
    "EventResource",
    "PageResponse",
    "validate_response",
]

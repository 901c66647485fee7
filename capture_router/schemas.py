from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import AnyUrl, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

ACTION_SAVE_LINK = "save_link"
ACTION_NEW_IDEA = "new_idea"
ACTION_APPEND_TO_PROJECT = "append_to_project"
ACTION_INBOX = "inbox"

_url_adapter = TypeAdapter(AnyUrl)


class WebhookBody(BaseModel):
    """
    Payload accepted by POST /webhook.
    """

    text: str = Field(min_length=1)
    source: str = "unknown"
    timestamp: Optional[str] = None


class _Classification(BaseModel):
    """
    Fields shared by every classification variant.

    Validation happens at construction: a URL must be absolute (have a scheme),
    title and comment must be non-empty and confidence must lie in [0, 1].
    Instances are immutable.
    """

    model_config = ConfigDict(frozen=True, strict=True, extra="ignore")

    url: Optional[str]
    tags: List[str]
    project: Optional[str]
    title: str = Field(min_length=1)
    comment: str = Field(min_length=1)
    confidence: float = Field(ge=0.0, le=1.0)
    # Set only on results rerouted to the inbox: what the model proposed.
    suggested_action: Optional[Literal["save_link", "new_idea", "append_to_project", "inbox"]] = None

    @field_validator("url")
    @classmethod
    def _absolute_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        try:
            parsed = _url_adapter.validate_python(value)
        except ValidationError as exc:
            raise ValueError("url must be an absolute URL") from exc
        if not parsed.scheme:
            raise ValueError("url must be an absolute URL")
        # Keep the string as given; AnyUrl normalises (e.g. adds a trailing slash).
        return value

    def as_inbox(self) -> "InboxCapture":
        """Return a copy routed to the inbox, every other field unchanged."""
        data = self.model_dump(exclude={"action", "suggested_action"})
        return InboxCapture(
            action=ACTION_INBOX,
            suggested_action=self.suggested_action or self.action,
            **data,
        )


class SaveLinkCapture(_Classification):
    action: Literal["save_link"]


class NewIdeaCapture(_Classification):
    action: Literal["new_idea"]


class AppendToProjectCapture(_Classification):
    action: Literal["append_to_project"]


class InboxCapture(_Classification):
    action: Literal["inbox"]


ClassificationResult = Annotated[
    Union[SaveLinkCapture, NewIdeaCapture, AppendToProjectCapture, InboxCapture],
    Field(discriminator="action"),
]

classification_adapter: TypeAdapter = TypeAdapter(ClassificationResult)


def parse_classification(data: Any) -> "ClassificationResult":
    """
    Validate decoded model output into one of the four variants.
    suggested_action is set by the confidence gate only, never by the model.

    Raises:
        pydantic.ValidationError: on any schema violation
    """
    if isinstance(data, dict):
        data = {key: value for key, value in data.items() if key != "suggested_action"}
    return classification_adapter.validate_python(data)


def inbox_result(
    *,
    title: str,
    comment: str,
    tags: Optional[List[str]] = None,
    confidence: float = 0.0,
) -> InboxCapture:
    return InboxCapture(
        action=ACTION_INBOX,
        url=None,
        tags=list(tags or []),
        project=None,
        title=title,
        comment=comment,
        confidence=confidence,
    )

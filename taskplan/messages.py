"""Typed messages exchanged with a presentation layer.

Every message is ``{"type": <kind>, "data": {...}}``. Inbound messages are
validated against a tagged union; anything with an unknown ``type`` or a
malformed ``data`` object is rejected with :class:`ValidationError`.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .models import FileChangeType, Plan, PlanStatus, TaskIntent


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class StepPayload(_Strict):
    id: str = Field(min_length=1)
    description: str
    reasoning: str = Field(min_length=1)
    dependencies: List[str] = Field(default_factory=list)
    completed: bool = False


class FileChangePayload(_Strict):
    path: str = Field(min_length=1)
    type: FileChangeType
    description: str = ""
    reasoning: str = ""


class PlanPayload(_Strict):
    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str
    intent: TaskIntent = TaskIntent.FEATURE
    scope: List[str] = Field(default_factory=list)
    steps: List[StepPayload] = Field(default_factory=list)
    files: List[FileChangePayload] = Field(default_factory=list)
    created_at: str
    updated_at: Optional[str] = None
    status: PlanStatus = PlanStatus.DRAFT
    baseline: Dict[str, Optional[str]] = Field(default_factory=dict)

    @classmethod
    def from_plan(cls, plan: Plan) -> "PlanPayload":
        return cls.model_validate(plan.to_dict())

    def to_plan(self) -> Plan:
        return Plan.from_dict(self.model_dump(mode="json"))


class StepCompletedData(_Strict):
    step_id: str = Field(alias="stepId", min_length=1)
    completed: bool = True


class PlanUpdatedData(_Strict):
    plan: PlanPayload


class RequestDataData(_Strict):
    pass


class StepCompletedMessage(_Strict):
    type: Literal["stepCompleted"]
    data: StepCompletedData


class PlanUpdatedMessage(_Strict):
    type: Literal["planUpdated"]
    data: PlanUpdatedData


class RequestDataMessage(_Strict):
    type: Literal["requestData"]
    data: RequestDataData = Field(default_factory=RequestDataData)


UIMessage = Annotated[
    Union[StepCompletedMessage, PlanUpdatedMessage, RequestDataMessage],
    Field(discriminator="type"),
]

_MESSAGE_ADAPTER: TypeAdapter[UIMessage] = TypeAdapter(UIMessage)


def _describe(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors()[:3]:
        location = ".".join(str(part) for part in error.get("loc", ())) or "message"
        parts.append(f"{location}: {error.get('msg', 'invalid')}")
    return "; ".join(parts)


def parse_message(raw: Union[str, bytes, Dict[str, Any]]) -> UIMessage:
    """Validate an inbound message given as a dict or a JSON document."""
    try:
        if isinstance(raw, (str, bytes)):
            return _MESSAGE_ADAPTER.validate_json(raw)
        return _MESSAGE_ADAPTER.validate_python(raw)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid UI message: {_describe(exc)}") from exc


def dump_message(message: BaseModel) -> Dict[str, Any]:
    return message.model_dump(by_alias=True, mode="json")


def plan_updated(plan: Plan) -> Dict[str, Any]:
    return dump_message(
        PlanUpdatedMessage(type="planUpdated", data=PlanUpdatedData(plan=PlanPayload.from_plan(plan)))
    )


def step_completed(step_id: str, completed: bool = True) -> Dict[str, Any]:
    return dump_message(
        StepCompletedMessage(type="stepCompleted", data=StepCompletedData(step_id=step_id, completed=completed))
    )

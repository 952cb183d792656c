"""
popwarden Message Layer

Tagged-union message models for the extension runtime and a router that
dispatches them to handlers.

Responses:
    {"success": true, "data": ...}
    {"success": false, "error": "...", "errorType": "..."}
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Awaitable, Callable, Dict, Literal, Optional, Union, get_args

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from popwarden.errors import InvalidInputError, PopwardenError

logger = logging.getLogger(__name__)


class _Message(BaseModel):
    model_config = {"populate_by_name": True, "extra": "ignore"}


# ============================================================================
# Core messages
# ============================================================================


class PopupDetected(_Message):
    type: Literal["POPUP_DETECTED"]
    popup_id: str = Field(alias="popupId", min_length=1)
    tab_id: int = Field(alias="tabId")
    characteristics: Dict[str, Any]
    domain: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class UserDecision(_Message):
    type: Literal["USER_DECISION"]
    popup_id: str = Field(alias="popupId", min_length=1)
    decision: str
    response_data: Optional[Dict[str, Any]] = Field(default=None, alias="responseData")


class GetPatternSuggestion(_Message):
    type: Literal["GET_PATTERN_SUGGESTION"]
    characteristics: Dict[str, Any]
    domain: Optional[str] = None


class CleanupExpiredDecisions(_Message):
    type: Literal["CLEANUP_EXPIRED_DECISIONS"]


# ============================================================================
# Queries and management
# ============================================================================


class Ping(_Message):
    type: Literal["PING"]


class GetPendingDecisions(_Message):
    type: Literal["GET_PENDING_DECISIONS"]


class GetPendingDecisionsByTab(_Message):
    type: Literal["GET_PENDING_DECISIONS_BY_TAB"]
    tab_id: int = Field(alias="tabId")


class DecisionFilters(_Message):
    domain: Optional[str] = None
    user_choice: Optional[str] = Field(default=None, alias="userChoice")
    start: Optional[int] = None
    end: Optional[int] = None


class GetUserDecisions(_Message):
    type: Literal["GET_USER_DECISIONS"]
    filters: DecisionFilters = Field(default_factory=DecisionFilters)


class GetLearningStatistics(_Message):
    type: Literal["GET_LEARNING_STATISTICS"]


class GetLearningPatterns(_Message):
    type: Literal["GET_LEARNING_PATTERNS"]
    domain: Optional[str] = None


class ClearLearningPatterns(_Message):
    type: Literal["CLEAR_LEARNING_PATTERNS"]


class GetStatistics(_Message):
    type: Literal["GET_STATISTICS"]


class GetUserPreferences(_Message):
    type: Literal["GET_USER_PREFERENCES"]


class UpdateUserPreferences(_Message):
    type: Literal["UPDATE_USER_PREFERENCES"]
    preferences: Dict[str, Any]


class GetExtensionState(_Message):
    type: Literal["GET_EXTENSION_STATE"]


MESSAGE_MODELS = (
    PopupDetected,
    UserDecision,
    GetPatternSuggestion,
    CleanupExpiredDecisions,
    Ping,
    GetPendingDecisions,
    GetPendingDecisionsByTab,
    GetUserDecisions,
    GetLearningStatistics,
    GetLearningPatterns,
    ClearLearningPatterns,
    GetStatistics,
    GetUserPreferences,
    UpdateUserPreferences,
    GetExtensionState,
)

MESSAGE_TYPES = frozenset(
    get_args(model.model_fields["type"].annotation)[0] for model in MESSAGE_MODELS
)

Message = Annotated[
    Union[
        PopupDetected,
        UserDecision,
        GetPatternSuggestion,
        CleanupExpiredDecisions,
        Ping,
        GetPendingDecisions,
        GetPendingDecisionsByTab,
        GetUserDecisions,
        GetLearningStatistics,
        GetLearningPatterns,
        ClearLearningPatterns,
        GetStatistics,
        GetUserPreferences,
        UpdateUserPreferences,
        GetExtensionState,
    ],
    Field(discriminator="type"),
]

_message_adapter: TypeAdapter = TypeAdapter(Message)

Handler = Callable[[Any], Awaitable[Any]]


def parse_message(raw: Any) -> BaseModel:
    """Validate a raw message mapping, raising InvalidInputError."""
    if not isinstance(raw, dict):
        raise InvalidInputError("message must be an object")
    message_type = raw.get("type")
    if message_type not in MESSAGE_TYPES:
        raise InvalidInputError(f"Unknown message type: {message_type!r}")
    try:
        return _message_adapter.validate_python(raw)
    except ValidationError as e:
        raise InvalidInputError(f"invalid {message_type} message: {e}") from e


def success(data: Any = None) -> Dict[str, Any]:
    return {"success": True, "data": data}


def failure(error: PopwardenError) -> Dict[str, Any]:
    return {"success": False, "error": str(error), "errorType": error.error_type}


class MessageRouter:
    """Dispatches validated messages to one handler per message type."""

    def __init__(self, handlers: Dict[str, Handler]):
        missing = MESSAGE_TYPES - set(handlers)
        if missing:
            raise ValueError(f"No handler for message types: {', '.join(sorted(missing))}")
        unknown = set(handlers) - MESSAGE_TYPES
        if unknown:
            raise ValueError(f"Handlers for unknown message types: {', '.join(sorted(unknown))}")
        self._handlers = dict(handlers)

    async def dispatch(self, raw: Any) -> Dict[str, Any]:
        """Validate, route and wrap the handler result as a response."""
        try:
            message = parse_message(raw)
            data = await self._handlers[message.type](message)
        except PopwardenError as e:
            logger.warning("Message failed (%s): %s", e.error_type, e)
            return failure(e)
        return success(data)

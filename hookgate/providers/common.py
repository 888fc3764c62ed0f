"""Helpers shared by the webhook providers."""

import json
from datetime import datetime
from typing import Any, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic import ValidationError as PydanticValidationError

from hookgate.providers.errors import ContentTypeError, DecodeError, HeaderError
from hookgate.providers.request import HookRequest
from hookgate.utils.logging import get_logger

logger = get_logger(__name__)

CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_FORM = "application/x-www-form-urlencoded"

HEADER_CONTENT_TYPE = "Content-Type"

COMMIT_MESSAGES_ENV_KEY = "BITRISE_WEBHOOK_COMMIT_MESSAGES"
MAX_COMMIT_MESSAGES = 20
COMMIT_MESSAGE_PREFIX = "- "
COMMIT_MESSAGE_SUFFIX = "\n"
TRUNCATION_MARKER = "..."

PayloadT = TypeVar("PayloadT", bound=BaseModel)


class PayloadModel(BaseModel):
    """
    Base for webhook payload models.

    Unknown keys are ignored and explicit JSON nulls fall back to the field
    default, so nested objects never have to be None-checked.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


def require_header(request: HookRequest, name: str) -> str:
    value = request.header(name)
    if not value:
        raise HeaderError(f"Issue with Headers: No {name} Header found", header=name)
    return value


def media_type(content_type: str) -> str:
    """Content-Type without parameters, e.g. ``application/json; charset=utf-8``."""
    return content_type.split(";", 1)[0].strip().lower()


def require_content_type(request: HookRequest, *accepted: str) -> str:
    content_type = require_header(request, HEADER_CONTENT_TYPE)
    mtype = media_type(content_type)
    if mtype not in accepted:
        raise ContentTypeError(f"Content-Type is not supported: {content_type}", content_type=content_type)
    return mtype


def decode_json(model: Type[PayloadT], raw: bytes) -> PayloadT:
    """Parse a JSON object body into a payload model."""
    if not raw:
        raise DecodeError("Failed to parse request body as JSON: empty body")
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as e:
        raise DecodeError(f"Failed to parse request body as JSON: {e}") from e
    if not isinstance(data, dict):
        raise DecodeError("Failed to parse request body as JSON: expected a JSON object")
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise DecodeError(f"Failed to parse request body: {e.error_count()} invalid field(s): {_first_error(e)}") from e


def decode_form_payload(model: Type[PayloadT], request: HookRequest) -> PayloadT:
    """Parse the JSON document embedded in the ``payload`` form field."""
    payload = request.form().get("payload", "")
    if not payload:
        raise DecodeError("Failed to parse request body: empty payload")
    return decode_json(model, payload.encode("utf-8"))


def decode_body(model: Type[PayloadT], request: HookRequest, content_type: str) -> PayloadT:
    if content_type == CONTENT_TYPE_FORM:
        return decode_form_payload(model, request)
    return decode_json(model, request.body)


def _first_error(error: PydanticValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg', '')}"


def generate_triggered_by(provider_id: str, username: str = "") -> str:
    if username:
        return f"webhook-{provider_id}/{username}"
    return f"webhook-{provider_id}"


def strip_prefix(value: str, prefix: str) -> Optional[str]:
    """Return value without prefix, or None when it does not start with it."""
    if value.startswith(prefix):
        return value[len(prefix):]
    return None


def is_zero_sha(value: str) -> bool:
    return bool(value) and set(value) == {"0"}


def parse_timestamp(value: str) -> Optional[datetime]:
    """Lenient ISO-8601 parsing for metric timestamps."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable timestamp in payload", extra={"timestamp_value": value})
        return None


def build_commit_messages_env(messages: List[str], env_bytes_limit: int) -> str:
    """
    Serialize commit messages into a single environment variable value.

    At most MAX_COMMIT_MESSAGES messages are kept. The byte budget is split
    evenly across the messages and each message longer than its share is cut
    and marked with ``...``.

    Raises:
        ValueError: If the budget can not hold even a truncated message
    """
    if len(messages) > MAX_COMMIT_MESSAGES:
        logger.warning(
            f"Too many commit messages, only the first {MAX_COMMIT_MESSAGES} are kept",
            extra={"commit_message_count": len(messages)},
        )
        messages = messages[:MAX_COMMIT_MESSAGES]
    if not messages:
        return ""

    overhead = len(COMMIT_MESSAGE_PREFIX) + len(COMMIT_MESSAGE_SUFFIX)
    budget = env_bytes_limit - overhead * len(messages)
    if budget <= 0:
        raise ValueError(f"commit message budget exhausted ({budget} bytes)")

    per_message = budget // len(messages)
    cut_at = per_message - len(TRUNCATION_MARKER)
    if cut_at <= 0:
        raise ValueError(f"per message budget too small ({per_message} bytes)")

    parts = []
    for message in messages:
        encoded = message.encode("utf-8")
        if len(encoded) > per_message:
            message = encoded[:cut_at].decode("utf-8", errors="ignore") + TRUNCATION_MARKER
        parts.append(f"{COMMIT_MESSAGE_PREFIX}{message}{COMMIT_MESSAGE_SUFFIX}")
    return "".join(parts)

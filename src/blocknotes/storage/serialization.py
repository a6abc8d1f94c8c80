"""JSON (de)serialization of stored documents."""
import logging
from typing import Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from blocknotes.exceptions import ErrorCode, StorageError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def encode(model: BaseModel) -> str:
    return model.model_dump_json()


def decode(model_cls: Type[M], collection: str, key: str, raw: str) -> M:
    """Parse a stored document, treating unreadable data as corruption."""
    try:
        return model_cls.model_validate_json(raw)
    except PydanticValidationError as e:
        logger.error(f"Corrupted {collection} document {key}: {e}")
        raise StorageError(
            f"Stored {collection} document {key} could not be decoded",
            operation="decode",
            key=f"{collection}/{key}",
            code=ErrorCode.STORAGE_CORRUPTED,
            original_error=e,
        ) from e

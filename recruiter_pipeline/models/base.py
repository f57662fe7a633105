"""Shared model plumbing."""
from enum import Enum

from bson import ObjectId
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from recruiter_pipeline.errors import NotFoundError


class PyObjectId(ObjectId):
    """Custom ObjectId type for Pydantic v2."""

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type, handler):
        from pydantic_core import core_schema
        return core_schema.union_schema([
            core_schema.is_instance_schema(ObjectId),
            core_schema.chain_schema([
                core_schema.str_schema(),
                core_schema.no_info_plain_validator_function(cls.validate),
            ])
        ])

    @classmethod
    def validate(cls, v):
        if isinstance(v, ObjectId):
            return v
        if isinstance(v, str) and ObjectId.is_valid(v):
            return ObjectId(v)
        raise ValueError("Invalid ObjectId")


class MongoModel(BaseModel):
    """Base for documents: snake_case attributes, camelCase on the wire and in Mongo."""

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        alias_generator=to_camel,
    )

    def to_document(self) -> dict:
        """Mongo document for this model: camelCase keys, enums stored as their values."""
        return _plain(self.model_dump(by_alias=True, exclude={"id"}))


def _plain(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


def parse_object_id(value, what: str = "Record") -> ObjectId:
    """Turn a path/body id into an ObjectId; malformed ids cannot exist, so they are NotFound."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    raise NotFoundError(f"{what} not found", {"id": str(value)})

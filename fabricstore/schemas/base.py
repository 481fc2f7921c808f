"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that read from ORM objects inherit from
BaseResponseSchema so UUID, Decimal and datetime output stays consistent.
"""

from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for response schemas that read from ORM models.

    Usage:
        class OrderItemResponse(BaseResponseSchema):
            id: UUID
            product_name: str
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.

    Unknown fields (e.g. client-side price hints) are ignored.
    """
    model_config = ConfigDict(
        extra='ignore',
    )


class BaseUpdateSchema(BaseModel):
    """Base class for partial updates; all fields optional."""
    model_config = ConfigDict(
        extra='ignore',
    )


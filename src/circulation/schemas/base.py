from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class APIModel(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
    )


class ORMBase(APIModel):
    # read models are built straight from ORM instances
    model_config = ConfigDict(from_attributes=True)

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorPolicy(str, Enum):
    lenient = "lenient"
    strict = "strict"


class SessionDoc(BaseModel):
    """
    Stored in MongoDB, one document per live session.

    session_key is unique (see SessionProvider.ensure_indexes).
    session_data is the codec blob, None until the first release.
    session_expire is unix seconds; gc removes documents past it.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(default=None, alias="_id")
    session_key: str
    session_data: Optional[bytes] = None
    session_expire: int

    @classmethod
    def from_mongo(cls, doc: dict) -> "SessionDoc":
        doc = dict(doc)
        if doc.get("_id") is not None:
            doc["_id"] = str(doc["_id"])
        return cls.model_validate(doc)

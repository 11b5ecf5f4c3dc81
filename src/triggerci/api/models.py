# api/models.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

# -------------------- Platform records --------------------

# Job statuses seen in practice: created, pending, manual, running, success,
# failed, canceled, skipped, waiting_for_resource, preparing, scheduled, ...
# Any string is accepted; only "manual" is acted on.


class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class PipelineRecord(_Record):
    """Pipeline returned by creation. Only `id` is used after this point."""
    id: int
    ref: str
    sha: str = ""
    status: str = ""
    web_url: str = ""
    project_id: Optional[int] = None


class JobRecord(_Record):
    id: int
    name: str
    stage: str = ""
    status: str
    manual: bool = False

    @property
    def is_manual(self) -> bool:
        # `manual: true` stays set after a job is played; only the status is actionable
        return self.status == "manual"


class ProjectRecord(_Record):
    id: int
    name: str
    path_with_namespace: str = ""
    web_url: str = ""
    default_branch: Optional[str] = None
    archived: bool = False


# -------------------- Request bodies --------------------

class VariableBody(BaseModel):
    key: str
    value: str
    variable_type: str = "env_var"


class CreatePipelineRequest(BaseModel):
    ref: str
    variables: Optional[List[VariableBody]] = Field(default=None)

    def to_json(self) -> dict:
        return self.model_dump(exclude_none=True)

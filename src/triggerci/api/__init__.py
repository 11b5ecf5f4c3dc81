from .client import APIClient
from .models import JobRecord, PipelineRecord, ProjectRecord

__all__ = ["APIClient", "JobRecord", "PipelineRecord", "ProjectRecord"]

from .cascade import CascadeEngine, CascadePolicy
from .config import Settings, load_settings, extract_variables
from .errors import AuthError, ConfigError, NotFoundError, TransientError, TriggerError, ValidationError
from .model import PipelineVariable, Target, TargetResult
from .orchestrator import TargetOrchestrator, trigger

__all__ = [
    "CascadeEngine",
    "CascadePolicy",
    "Settings",
    "load_settings",
    "extract_variables",
    "AuthError",
    "ConfigError",
    "NotFoundError",
    "TransientError",
    "TriggerError",
    "ValidationError",
    "PipelineVariable",
    "Target",
    "TargetResult",
    "TargetOrchestrator",
    "trigger",
]

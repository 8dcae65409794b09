"""LLM-backed judges for functional fidelity and first-time-user experience."""

from .client import JudgeClient, JudgeResponseError, JudgeUnavailableError, LiteLLMJudgeClient
from .fidelity import FidelityJudge
from .models import FidelityVerdict, UxScores, UxVerdict
from .ux import UxJudge

__all__ = [
    "FidelityJudge",
    "FidelityVerdict",
    "JudgeClient",
    "JudgeResponseError",
    "JudgeUnavailableError",
    "LiteLLMJudgeClient",
    "UxJudge",
    "UxScores",
    "UxVerdict",
]

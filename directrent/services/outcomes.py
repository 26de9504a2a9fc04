"""
Result types that keep the scoring answer apart from what happened to its
best-effort persistence, so both can be checked independently.
"""
from dataclasses import dataclass
from typing import Any, Dict, List

from ..models.base import Recommendation


@dataclass(frozen=True)
class SideEffectOutcome:
    attempted: bool
    succeeded: bool
    error: str | None = None

    @classmethod
    def skipped(cls) -> "SideEffectOutcome":
        return cls(attempted=False, succeeded=False)

    @classmethod
    def ok(cls) -> "SideEffectOutcome":
        return cls(attempted=True, succeeded=True)

    @classmethod
    def failed(cls, error: str) -> "SideEffectOutcome":
        return cls(attempted=True, succeeded=False, error=error)


@dataclass(frozen=True)
class FraudCheckOutcome:
    result: Dict[str, Any]
    report: SideEffectOutcome


@dataclass(frozen=True)
class RecommendationOutcome:
    recommendations: List[Recommendation]
    model_status: str
    preferences: SideEffectOutcome
    candidate_source: str = "store"
    message: str | None = None

    def payload(self) -> Dict[str, Any]:
        body = {
            "properties": [r.property for r in self.recommendations],
            "scores": [r.score for r in self.recommendations],
            "reasoning": [r.reason for r in self.recommendations],
            "model_status": self.model_status,
        }
        if self.message:
            body["message"] = self.message
        return body

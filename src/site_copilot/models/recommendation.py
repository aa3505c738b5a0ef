from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class RecommendationStatus(str, Enum):
    proposed = "proposed"
    accepted = "accepted"
    rejected = "rejected"
    deferred = "deferred"


class Severity(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class AuditMode(str, Enum):
    structure = "structure"
    content = "content"
    voice = "voice"
    presentation = "presentation"
    conversion = "conversion"
    coherence = "coherence"
    full = "full"


class RecommendationScores(BaseModel):
    impact: float
    alignment: float
    confidence: float
    disruption: float
    score: float


class CriteriaText(BaseModel):
    impact: str = "This change improves a core goal."
    alignment: str = "It aligns with your stated intent."
    confidence: str = "This is based on known structure rules."
    disruption: str = "It limits change scope."


class Recommendation(BaseModel):
    recommendation_id: str
    key: str
    phase: str
    title: str
    rationale: str
    impact_summary: str = ""
    criteria: CriteriaText = Field(default_factory=CriteriaText)
    scores: RecommendationScores
    tool: str | None = None
    args: dict[str, Any] = Field(default_factory=dict)
    tradeoffs: list[str] = Field(default_factory=list)
    why_not_alternatives: list[str] = Field(default_factory=list)

    @property
    def actionable(self) -> bool:
        return self.recommendation_id != "leaveAsIs"


class RecommendationRecord(BaseModel):
    id: str
    site_id: str
    conversation_id: str | None = None
    status: RecommendationStatus = RecommendationStatus.proposed
    recommendation: Recommendation
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def key(self) -> str:
        return self.recommendation.key


class AuditFinding(BaseModel):
    severity: Severity
    area: str
    issue: str
    rationale: str
    recommendation: str | None = None


class AuditRun(BaseModel):
    id: str
    site_id: str
    conversation_id: str | None = None
    mode: AuditMode
    findings: list[AuditFinding] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)


__all__ = [
    "AuditFinding",
    "AuditMode",
    "AuditRun",
    "CriteriaText",
    "Recommendation",
    "RecommendationRecord",
    "RecommendationScores",
    "RecommendationStatus",
    "Severity",
]

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

RiskLevel = Literal["low", "medium", "high"]
AnalysisStatus = Literal["completed", "indeterminate"]


# -------- Chat --------
class NewChatMessage(BaseModel):
    userId: str
    message: str
    isUser: bool
    persona: str


class ChatMessage(NewChatMessage):
    """A stored chat turn. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: datetime


class ChatRequest(BaseModel):
    """Request model for POST /chat.

    The message is not trimmed or length-checked here; the chat client trims
    before sending and the API accepts whatever it receives.
    """

    userId: str = Field(min_length=1, description="Owner of the conversation")
    message: str = Field(description="User input message")
    persona: Optional[str] = Field(
        default="general",
        description="senior|child|anxious|caregiver|general; unknown values use general",
    )


class ChatResponse(BaseModel):
    userMessage: ChatMessage
    aiMessage: ChatMessage
    confidence: float


# -------- Health assessments --------
class RiskAnalysis(BaseModel):
    riskLevel: RiskLevel
    recommendations: list[str]
    explanation: str
    status: AnalysisStatus = Field(
        default="completed",
        description="indeterminate when the analysis could not be produced and defaults were returned",
    )


class HealthAssessmentRequest(BaseModel):
    userId: str = Field(min_length=1)
    responses: dict[str, Any] = Field(description="Question id -> answer")


class NewHealthAssessment(BaseModel):
    userId: str
    responses: dict[str, Any]
    riskLevel: Optional[RiskLevel] = None
    recommendations: Optional[list[str]] = None
    analysisStatus: Optional[AnalysisStatus] = None


class HealthAssessment(NewHealthAssessment):
    model_config = ConfigDict(frozen=True)

    id: str
    completedAt: datetime


class HealthAssessmentResponse(HealthAssessment):
    analysis: RiskAnalysis


# -------- Health goals --------
class HealthGoalCreate(BaseModel):
    userId: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: Optional[str] = None
    targetValue: Optional[int] = None
    currentValue: int = 0
    unit: Optional[str] = Field(default=None, description="steps, hours, mg, etc.")
    completed: bool = False


class HealthGoal(HealthGoalCreate):
    id: str
    createdAt: datetime


class HealthGoalUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    targetValue: Optional[int] = None
    currentValue: Optional[int] = None
    unit: Optional[str] = None
    completed: Optional[bool] = None


# -------- Medications --------
class MedicationCreate(BaseModel):
    userId: str = Field(min_length=1)
    name: str = Field(min_length=1)
    dosage: str = Field(min_length=1)
    frequency: str = Field(min_length=1, description="daily, twice_daily, weekly, etc.")
    times: Optional[list[str]] = Field(default=None, description='Reminder times, e.g. ["09:00", "21:00"]')
    startDate: datetime
    endDate: Optional[datetime] = None
    active: bool = True


class Medication(MedicationCreate):
    id: str
    createdAt: datetime


class MedicationUpdate(BaseModel):
    name: Optional[str] = None
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    times: Optional[list[str]] = None
    startDate: Optional[datetime] = None
    endDate: Optional[datetime] = None
    active: Optional[bool] = None


class MedicationReminder(BaseModel):
    medication: Medication
    time: str
    timeUntil: int = Field(description="Minutes until the dose is due")


# -------- Emergency contacts --------
class EmergencyContactCreate(BaseModel):
    userId: str = Field(min_length=1)
    name: str = Field(min_length=1)
    relationship: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    isPrimary: bool = False


class EmergencyContact(EmergencyContactCreate):
    id: str
    createdAt: datetime


class EmergencyContactUpdate(BaseModel):
    name: Optional[str] = None
    relationship: Optional[str] = None
    phone: Optional[str] = None
    isPrimary: Optional[bool] = None


__all__ = [
    "RiskLevel",
    "AnalysisStatus",
    "NewChatMessage",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "RiskAnalysis",
    "HealthAssessmentRequest",
    "NewHealthAssessment",
    "HealthAssessment",
    "HealthAssessmentResponse",
    "HealthGoalCreate",
    "HealthGoal",
    "HealthGoalUpdate",
    "MedicationCreate",
    "Medication",
    "MedicationUpdate",
    "MedicationReminder",
    "EmergencyContactCreate",
    "EmergencyContact",
    "EmergencyContactUpdate",
]

from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class AccelerationPoint(BaseModel):
    timestamp: float = Field(..., ge=0, description="Seconds since the session started.")
    x: float
    y: float
    z: float


class SessionCreate(BaseModel):
    """
    Completed-session payload as produced by SessionSnapshot.to_session_payload().

    Field names are camelCase on the wire; snake_case attributes are used in Python.
    """

    model_config = ConfigDict(populate_by_name=True)

    start_time: datetime = Field(..., alias="startTime")
    end_time: datetime = Field(..., alias="endTime")
    total_reps: int = Field(..., alias="totalReps", ge=0)
    max_acceleration: str = Field(..., alias="maxAcceleration", description='e.g. "12.34 m/s²".')
    average_rep_time: str = Field(..., alias="averageRepTime", description='e.g. "1.8s".')
    session_duration: str = Field(
        ..., alias="sessionDuration", pattern=r"^\d{2,}:\d{2}:\d{2}$", description="HH:MM:SS."
    )
    acceleration_data: List[AccelerationPoint] = Field(..., alias="accelerationData")

    @field_validator("end_time")
    @classmethod
    def end_not_before_start(cls, v: datetime, info: ValidationInfo) -> datetime:
        start = info.data.get("start_time")
        if start is not None and v < start:
            raise ValueError("endTime must not be earlier than startTime")
        return v


class SessionRecord(SessionCreate):
    id: int = Field(..., ge=1, description="Store-assigned identifier.")


class HealthResponse(BaseModel):
    status: str = "ok"

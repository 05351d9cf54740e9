# models/extraction.py
"""
Tagged results for everything that comes back from the inference collaborator.
Callers branch on `success` (or isinstance) and never read fields of a failure.
"""
from __future__ import annotations

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field

from models.contact import ExtractedContactData, MentionedConnectionData


class ExtractionSuccess(BaseModel):
    success: Literal[True] = True
    data: ExtractedContactData
    raw_response: Optional[str] = None


class ExtractionFailure(BaseModel):
    success: Literal[False] = False
    reason: str
    raw_response: Optional[str] = None


ExtractionResult = Union[ExtractionSuccess, ExtractionFailure]


class ConnectionsExtractionSuccess(BaseModel):
    success: Literal[True] = True
    contact: ExtractedContactData
    connections: List[MentionedConnectionData] = Field(default_factory=list)
    raw_response: Optional[str] = None


class ConnectionsExtractionFailure(BaseModel):
    success: Literal[False] = False
    reason: str
    raw_response: Optional[str] = None


ConnectionsExtractionResult = Union[ConnectionsExtractionSuccess, ConnectionsExtractionFailure]


class RegistrationExtracted(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone_confirmed: Optional[bool] = None


class RegistrationTurnSuccess(BaseModel):
    success: Literal[True] = True
    response: str
    extracted: RegistrationExtracted = Field(default_factory=RegistrationExtracted)
    is_complete: bool = False
    raw_response: Optional[str] = None


class RegistrationTurnFailure(BaseModel):
    success: Literal[False] = False
    reason: str
    raw_response: Optional[str] = None


RegistrationTurnResult = Union[RegistrationTurnSuccess, RegistrationTurnFailure]

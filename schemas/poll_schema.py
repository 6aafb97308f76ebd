from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field


class PollOptionSchema(BaseModel):
    id: int
    text: str
    poll_id: int

    model_config = {"from_attributes": True}


class PollSchema(BaseModel):
    id: int
    question: str
    user_id: int
    created_at: datetime

    model_config = {"from_attributes": True}


class CreatePollRequestSchema(BaseModel):
    # Blank titles and options are reported by the poll workflow, not here,
    # so that every problem comes back in one response
    title: Optional[str] = Field(None, max_length=300)
    options: List[Optional[str]] = Field(default_factory=list, description="Option inputs; only the first 4 are used")


class UpdatePollRequestSchema(BaseModel):
    question: Optional[str] = Field(None, max_length=300)
    options: List[Optional[str]] = Field(default_factory=list)


class VoteRequestSchema(BaseModel):
    option_id: Optional[int] = Field(None, description="ID of the option to vote for")


class OptionTallySchema(BaseModel):
    option_id: int
    text: str
    votes: int
    percentage: float
    percentage_label: str

    model_config = {"from_attributes": True}


class PollTallySchema(BaseModel):
    total_votes: int
    has_voted: bool
    voted_option_id: Optional[int] = None
    options: List[OptionTallySchema]

    model_config = {"from_attributes": True}


class PollDetailResponseSchema(BaseModel):
    poll: PollSchema
    options: List[PollOptionSchema]
    tally: PollTallySchema

    model_config = {"from_attributes": True}


class VoteResponseSchema(BaseModel):
    """Response for a vote; ``tally`` is read back after the vote is stored."""
    message: str
    poll_id: int
    option_id: int
    tally: PollTallySchema


class DeletePollResponseSchema(BaseModel):
    message: str
    id: int

from typing import Literal

from pydantic import BaseModel


class ApprovalDecisionRequest(BaseModel):
    decision: Literal["approved", "rejected"]

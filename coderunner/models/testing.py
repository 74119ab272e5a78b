from enum import Enum
from typing import Literal

from pydantic import BaseModel


class ActiveTestStatus(str, Enum):
    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"
    ERROR = "error"


class ActiveTest(BaseModel):
    id: str
    name: str
    code: str
    status: ActiveTestStatus = ActiveTestStatus.PENDING
    output: str = ""


class SingleTestResult(BaseModel):
    """Payload printed by the single-test runner inside the runtime."""

    name: str
    status: Literal["PASSED", "FAILED", "ERROR"]
    output: str = ""

"""
Request schemas.

Fields are snake_case in Python and camelCase on the wire, matching what the
React client sends.
"""

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from oapoint.models.test import SECTION_NAMES

SectionName = Literal[SECTION_NAMES]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Test authoring ───────────────────────────────────────────

class OptionIn(CamelModel):
    text: str = ""
    is_correct: bool = False


class ExampleIn(CamelModel):
    input: str
    output: str
    explanation: Optional[str] = None


class TestCaseIn(CamelModel):
    __test__ = False

    input: str
    output: str
    is_hidden: bool = False


class CodingDetailsIn(CamelModel):
    problem_statement: str = ""
    input_format: str = ""
    output_format: str = ""
    examples: List[ExampleIn] = Field(default_factory=list)
    constraints: str = ""
    test_cases: List[TestCaseIn] = Field(default_factory=list)
    time_limit: int = Field(1000, ge=1, description="Milliseconds")
    memory_limit: int = Field(256, ge=1, description="Megabytes")


class QuestionIn(CamelModel):
    question_text: str
    question_image: Optional[str] = None
    question_type: Literal["single-correct", "multi-correct", "coding"]
    options: List[OptionIn] = Field(default_factory=list)
    coding_details: Optional[CodingDetailsIn] = None
    points: float = Field(1, ge=0)


class SectionIn(CamelModel):
    name: SectionName
    time_limit: int = Field(..., ge=1, description="Minutes")
    instructions: Optional[str] = None
    order: Optional[int] = None
    questions: List[QuestionIn] = Field(default_factory=list)


class TestCreate(CamelModel):
    __test__ = False

    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    sections: List[SectionIn] = Field(..., min_length=1)
    start_date: datetime
    end_date: datetime
    enable_camera: bool = True
    enable_full_screen: bool = True
    prevent_copy_paste: bool = True
    prevent_right_click: bool = True

    @model_validator(mode="after")
    def check_window(self):
        if self.end_date <= self.start_date:
            raise ValueError("endDate must be after startDate")
        return self


class TestUpdate(CamelModel):
    __test__ = False

    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    sections: Optional[List[SectionIn]] = Field(None, min_length=1)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    enable_camera: Optional[bool] = None
    enable_full_screen: Optional[bool] = None
    prevent_copy_paste: Optional[bool] = None
    prevent_right_click: Optional[bool] = None
    results_published: Optional[bool] = None


class AddStudentsRequest(CamelModel):
    student_ids: List[str] = Field(default_factory=list)


# ── Test taking ──────────────────────────────────────────────

class BrowserInfo(CamelModel):
    user_agent: Optional[str] = None
    screen_resolution: Optional[str] = None
    timezone: Optional[str] = None


class StartTestRequest(CamelModel):
    browser_info: Optional[BrowserInfo] = None


class TestCaseResult(CamelModel):
    __test__ = False

    passed: bool
    input: str = ""
    expected_output: str = ""
    actual_output: str = ""
    error: Optional[str] = None


class McqAnswer(CamelModel):
    question_type: Literal["single-correct", "multi-correct"]
    selected_options: List[int] = Field(default_factory=list)


class CodingAnswer(CamelModel):
    question_type: Literal["coding"]
    code: str = ""
    language: str = "cpp"
    test_case_results: List[TestCaseResult] = Field(default_factory=list)


AnswerPayload = Annotated[Union[McqAnswer, CodingAnswer], Field(discriminator="question_type")]


class SubmitAnswerRequest(CamelModel):
    question_id: str
    section_id: Optional[str] = None
    answer: AnswerPayload
    time_spent: int = Field(0, ge=0)


class CompleteSectionRequest(CamelModel):
    section_id: str


ProctoringSignal = Literal[
    "focus-lost", "fullscreen-exit", "dev-tools-suspected", "forbidden-key-combo", "right-click"
]


class ViolationRequest(CamelModel):
    """
    A violation type as the client classified it, or a raw proctoring
    signal (with ``key`` for key combinations) for the server to classify.
    """
    type: Optional[str] = None
    signal: Optional[ProctoringSignal] = None
    key: Optional[str] = None
    description: Optional[str] = None
    details: Optional[dict] = None

    @model_validator(mode="after")
    def check_type_or_signal(self):
        if self.type is None and self.signal is None:
            raise ValueError("type or signal is required")
        return self


# ── Compiler ─────────────────────────────────────────────────

class RunCodeRequest(CamelModel):
    code: str
    language: str = "cpp"
    test_id: Optional[str] = None
    question_id: Optional[str] = None
    custom_input: Optional[str] = None


class SubmitCodeRequest(CamelModel):
    code: str
    language: str = "cpp"
    test_id: str
    question_id: str

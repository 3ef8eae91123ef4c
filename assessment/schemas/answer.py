"""
Tagged answer shapes recorded against a question
"""
from pydantic import BaseModel, Field
from typing import Annotated, List, Literal, Union


class SingleChoiceAnswer(BaseModel):
    """One selected option (single choice, true/false)"""
    kind: Literal["single"] = "single"
    option_id: str


class MultiChoiceAnswer(BaseModel):
    """Set of selected options (multi choice)"""
    kind: Literal["multi"] = "multi"
    option_ids: List[str]


class TextAnswer(BaseModel):
    """Free text (short answer)"""
    kind: Literal["text"] = "text"
    text: str


Answer = Annotated[
    Union[SingleChoiceAnswer, MultiChoiceAnswer, TextAnswer],
    Field(discriminator="kind"),
]

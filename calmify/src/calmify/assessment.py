"""
Screening Questionnaires

PHQ-9 (depression) and GAD-7 (anxiety) scoring. Each answer is 0-3 and the
total maps to a severity band through a fixed threshold table.
"""

from dataclasses import dataclass
from typing import Dict, List, Tuple

from calmify.user_state import AssessmentRecord


class AssessmentError(ValueError):
    """Raised when a questionnaire submission is incomplete or out of range."""


PHQ9_QUESTIONS = [
    "Little interest or pleasure in doing things",
    "Feeling down, depressed, or hopeless",
    "Trouble falling or staying asleep, or sleeping too much",
    "Feeling tired or having little energy",
    "Poor appetite or overeating",
    "Feeling bad about yourself - or that you are a failure",
    "Trouble concentrating on things, such as reading the newspaper",
    "Moving or speaking so slowly that other people could have noticed",
    "Thoughts that you would be better off dead, or of hurting yourself",
]

GAD7_QUESTIONS = [
    "Feeling nervous, anxious, or on edge",
    "Not being able to stop or control worrying",
    "Worrying too much about different things",
    "Trouble relaxing",
    "Being so restless that it is hard to sit still",
    "Becoming easily annoyed or irritable",
    "Feeling afraid, as if something awful might happen",
]

OPTIONS = [
    {"value": 0, "label": "Not at all"},
    {"value": 1, "label": "Several days"},
    {"value": 2, "label": "More than half the days"},
    {"value": 3, "label": "Nearly every day"},
]

MAX_ANSWER = 3


@dataclass(frozen=True)
class Questionnaire:
    type: str
    questions: List[str]
    # (minimum score, severity), highest first
    bands: List[Tuple[int, str]]

    def severity(self, score: int) -> str:
        for minimum, label in self.bands:
            if score >= minimum:
                return label
        return "None"


PHQ9 = Questionnaire(
    type="PHQ-9",
    questions=PHQ9_QUESTIONS,
    bands=[
        (20, "Severe"),
        (15, "Moderately Severe"),
        (10, "Moderate"),
        (5, "Mild"),
    ],
)

GAD7 = Questionnaire(
    type="GAD-7",
    questions=GAD7_QUESTIONS,
    bands=[
        (15, "Severe"),
        (10, "Moderate"),
        (5, "Mild"),
    ],
)

QUESTIONNAIRES: Dict[str, Questionnaire] = {q.type: q for q in (PHQ9, GAD7)}


def get_questionnaire(assessment_type: str) -> Questionnaire:
    """Look up a questionnaire by type ("PHQ-9" or "GAD-7", case-insensitive)."""
    normalized = assessment_type.strip().upper()
    if normalized == "PHQ9":
        normalized = "PHQ-9"
    elif normalized == "GAD7":
        normalized = "GAD-7"
    if normalized not in QUESTIONNAIRES:
        raise AssessmentError(f"Unknown assessment type: {assessment_type}")
    return QUESTIONNAIRES[normalized]


def score_answers(answers: List[int], expected_length: int) -> int:
    """
    Sum questionnaire answers.

    Args:
        answers: One answer per question, each 0-3
        expected_length: Number of questions in the questionnaire

    Raises:
        AssessmentError: If answers are missing or out of range
    """
    if len(answers) != expected_length:
        raise AssessmentError(
            f"Expected {expected_length} answers, got {len(answers)}"
        )
    for index, answer in enumerate(answers):
        if isinstance(answer, bool) or not isinstance(answer, int):
            raise AssessmentError(f"Answer {index + 1} must be an integer")
        if answer < 0 or answer > MAX_ANSWER:
            raise AssessmentError(f"Answer {index + 1} must be between 0 and {MAX_ANSWER}")
    return sum(answers)


def phq9_severity(score: int) -> str:
    return PHQ9.severity(score)


def gad7_severity(score: int) -> str:
    return GAD7.severity(score)


def evaluate(assessment_type: str, answers: List[int]) -> AssessmentRecord:
    """Score a submission and build the record to append to the user's history."""
    questionnaire = get_questionnaire(assessment_type)
    score = score_answers(answers, len(questionnaire.questions))
    return AssessmentRecord(
        type=questionnaire.type,
        score=score,
        severity=questionnaire.severity(score),
    )


def recommendation_for(score: int) -> str:
    if score > 10:
        return (
            "Your score indicates you might be experiencing meaningful symptoms. "
            "We recommend using the Chat feature to talk about it or reaching out to a professional."
        )
    return (
        "Your score suggests valid mental well-being. "
        "Keep tracking regularly to maintain your health."
    )

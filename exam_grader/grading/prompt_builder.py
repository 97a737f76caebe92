"""
Prompt builder for AI grading.

Constructs the prompts sent to the model for:
- Grading a single answer against a standard answer
- Grading a student's whole exam in one request
- Repairing malformed JSON output
- Parsing uploaded exam papers into questions
- Reviewing the quality of a question

Templating only: no validation happens here.
"""

from typing import Mapping, Sequence

from exam_grader.models import GradingRequest


def _format_score(value: float) -> str:
    return f"{value:g}"


SCORING_POINT_SCHEMA = """{
      "point": "<aspect being evaluated>",
      "status": "correct|partially|incorrect",
      "comment": "<specific comment about this aspect>"
    }"""


class PromptBuilder:
    """
    Builds grading prompts that produce machine-readable JSON.

    Every grading prompt:
    1. States the grading task
    2. Embeds question, standard answer and candidate answer verbatim
    3. Specifies the exact JSON shape of the response
    4. Forbids any text around the JSON
    """

    SYSTEM_PROMPT = """You are an expert educational grader. You grade student answers against a standard answer.

RULES:
1. Compare the student's answer with the standard answer and award a score between 0 and the maximum score.
2. Partial credit is allowed and may include decimal points.
3. Break the evaluation down into scoring points, each marked correct, partially or incorrect.
4. Report your confidence in the evaluation as a number from 0 to 100.

OUTPUT RULES:
- Your output MUST be valid JSON matching the exact format specified.
- Do not add any text before or after the JSON."""

    JSON_REPAIR_SYSTEM_PROMPT = (
        "You are a JSON repair tool. You return only valid JSON documents, never commentary."
    )

    EXAM_PARSER_SYSTEM_PROMPT = (
        "You are a professional exam-paper parsing assistant who converts exam "
        "papers into structured data."
    )

    @staticmethod
    def build_grading_prompt(request: GradingRequest) -> str:
        """
        Build the user prompt for grading a single answer.

        Args:
            request: The question, standard answer, candidate answer and max score.

        Returns:
            The formatted user prompt.
        """
        max_score = _format_score(request.max_score)

        return f"""GRADING TASK

Question:
{request.question}

Standard Answer:
{request.standard_answer}

Student Answer:
---BEGIN ANSWER---
{request.candidate_answer}
---END ANSWER---

Maximum Score: {max_score}

Evaluate the student's answer and provide:
1. A score between 0 and {max_score} (can include decimal points for partial credit)
2. Your confidence in this evaluation (0-100)
3. Constructive feedback for the student
4. Scoring points that break down the evaluation

OUTPUT FORMAT (respond with ONLY this JSON object, no other text):
{{
  "score": <number>,
  "confidence": <number>,
  "feedback": "<string>",
  "scoringPoints": [
    {SCORING_POINT_SCHEMA}
  ]
}}"""

    @staticmethod
    def build_exam_grading_prompt(requests: Mapping[str, GradingRequest]) -> str:
        """
        Build one prompt covering every answered question of a student.

        Args:
            requests: Grading requests keyed by question id. The id is echoed
                back by the model so results can be correlated.

        Returns:
            The formatted user prompt.
        """
        sections: list[str] = []
        for index, (question_id, request) in enumerate(requests.items(), start=1):
            sections.append(
                f"""### Question {index}
questionId: {question_id}
Maximum Score: {_format_score(request.max_score)}

Question:
{request.question}

Standard Answer:
{request.standard_answer}

Student Answer:
---BEGIN ANSWER---
{request.candidate_answer}
---END ANSWER---"""
            )

        body = "\n\n".join(sections)
        return f"""EXAM GRADING TASK

Grade each of the following {len(requests)} answers from the same student independently.

{body}

For EVERY question above, provide a score between 0 and that question's maximum score,
your confidence (0-100), constructive feedback and a breakdown into scoring points.
Copy each questionId exactly as given.

OUTPUT FORMAT (respond with ONLY this JSON array, one object per question, no other text):
[
  {{
    "questionId": "<questionId exactly as given>",
    "score": <number>,
    "confidence": <number>,
    "feedback": "<string>",
    "scoringPoints": [
      {SCORING_POINT_SCHEMA}
    ]
  }}
]"""

    @staticmethod
    def build_repair_prompt(broken_text: str, error_message: str) -> str:
        """Build the prompt asking the model to fix a JSON document it produced."""
        return f"""The following text was supposed to be a valid JSON document but could not be parsed.

Parser error:
{error_message}

Broken JSON:
---BEGIN JSON---
{broken_text}
---END JSON---

Fix the syntax errors and return ONLY the corrected JSON document.
Keep every key and value that is present; do not invent new data.
Do not add explanations, comments or markdown."""

    @staticmethod
    def build_exam_parsing_prompt(content: str) -> str:
        """Build the prompt that turns an exam paper's text into a question list."""
        return f"""Analyze the following exam paper and extract every question together with its
standard answer and score.

Format the result as a JSON array. Each question has the fields:
- id: question number (string)
- type: 'choice' (single choice), 'multiChoice' (multiple choice), 'fill' (fill in the blank),
  'shortAnswer' (short answer) or 'essay' (essay / long-form)
- content: question text
- options: array of options (choice questions only)
- answer: standard answer
- score: points for the question (number)

Exam paper:
{content}

Only process the exam content; do not include any other text.
Return the JSON array in a markdown code block, for example:
```json
[{{"id": "1", ...}}]
```"""

    @staticmethod
    def build_image_parsing_prompt(page_count: int) -> str:
        """Build the prompt for parsing photographed exam pages."""
        return f"""The {page_count} attached image(s) are pages of one exam paper, in order.
Read every page and extract every question together with its standard answer and score.

Format the result as a JSON array. Each question has the fields:
- id: question number (string)
- type: 'choice', 'multiChoice', 'fill', 'shortAnswer' or 'essay'
- content: question text
- options: array of options (choice questions only)
- answer: standard answer (empty string if the paper does not show one)
- score: points for the question (number)

Return only the JSON array in a markdown code block."""

    @staticmethod
    def build_question_analysis_prompt(
        question: str,
        standard_answer: str,
        student_answers: Sequence[str],
        scores: Sequence[float],
    ) -> str:
        """Build the prompt asking the model to review a question's quality."""
        responses = "\n\n".join(
            f"Student {i} (Score: {_format_score(score)}): {answer}"
            for i, (answer, score) in enumerate(zip(student_answers, scores), start=1)
        )
        return f"""You are an expert in educational assessment. Analyze the following exam question
and the student responses.

Question:
{question}

Standard Answer:
{standard_answer}

Student Answers and Scores:
{responses}

Provide:
1. difficulty (0-100): how challenging the question is for students
2. discrimination (0-100): how well it separates high and low performing students
3. clarity (0-100): how clear and unambiguous the question is
4. suggestions: specific suggestions to improve the question

OUTPUT FORMAT (respond with ONLY this JSON object, no other text):
{{
  "difficulty": <number>,
  "discrimination": <number>,
  "clarity": <number>,
  "suggestions": "<string>"
}}"""

    @staticmethod
    def build_feedback_prompt(
        student_name: str,
        subject: str,
        strengths: Sequence[str],
        weaknesses: Sequence[str],
        total_score: float,
        total_possible: float,
    ) -> str:
        """Build the prompt for a student's personalised learning feedback (plain text)."""

        def bullets(items: Sequence[str]) -> str:
            return "\n".join(f"- {item}" for item in items) or "- None"

        return f"""Write personalised learning feedback for the student {student_name} on {subject}.

Total Score: {_format_score(total_score)} / {_format_score(total_possible)}

Strengths:
{bullets(strengths)}

Needs Improvement:
{bullets(weaknesses)}

Be encouraging and give concrete suggestions for improvement.
Respond in plain text, not JSON."""

    @staticmethod
    def get_system_prompt() -> str:
        """Get the system prompt for grading."""
        return PromptBuilder.SYSTEM_PROMPT

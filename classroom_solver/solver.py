import base64
import json
import logging
import re
from typing import Any, Dict, List, TypedDict, Union

import google.generativeai as genai

from .errors import SolveError
from .models import Assignment, Course, GeneratedFile

logger = logging.getLogger(__name__)

DATA_URL_RE = re.compile(r'^data:(.+?);base64,(.+)$', re.S)

Part = Union[str, Dict[str, Any]]


class GeneratedFileSchema(TypedDict):
    name: str
    content: str
    handwritten: bool


class SolutionSchema(TypedDict):
    files: List[GeneratedFileSchema]


INSTRUCTIONS = """
Based on all the information and attachments provided, generate a complete solution. Your response MUST be a valid JSON object.
The JSON object should contain a single key "files", which is an array of file objects.
Each file object must have three properties:
1. "name": A string representing the filename (e.g., "essay.txt", "script.py").
2. "content": A string containing the full content of the file.
3. "handwritten": A boolean value. Set to true if the assignment description asks for a handwritten style document, otherwise false.
"""


def needs_handwritten_file(assignment: Assignment) -> bool:
    return 'handwritten' in assignment.description.lower()


def build_prompt_parts(course: Course, assignment: Assignment, attachment_contents: Dict[str, str]) -> List[Part]:
    """
    Assemble the multimodal prompt.

    Text attachments are folded into the opening text part. Attachments held
    as ``data:`` URLs become a title part followed by an inline blob part.
    """
    text_prompt = f"""
You are an AI assistant helping a student with their Google Classroom assignment.
Course: "{course.name}"
Assignment Title: "{assignment.title}"
Assignment Description: "{assignment.description}"

The assignment may include attachments. Use their content as context to provide a better solution.
"""
    attachment_parts: List[Part] = []
    for title, content in attachment_contents.items():
        match = DATA_URL_RE.match(content) if content.startswith('data:') else None
        if match:
            attachment_parts.append(f"\n--- Attachment Content from file: {title} ---")
            attachment_parts.append({
                'mime_type': match.group(1),
                'data': base64.b64decode(match.group(2)),
            })
        elif not content.startswith('data:'):
            text_prompt += f"\n\n--- Attachment Content from file: {title} ---\n{content}\n--- End of Attachment ---"

    return [text_prompt, *attachment_parts, INSTRUCTIONS]


def parse_solution(text: str) -> List[GeneratedFile]:
    try:
        result = json.loads(text.strip())
    except json.JSONDecodeError as e:
        raise SolveError(f"The AI returned invalid JSON: {e}") from e

    files = result.get('files') if isinstance(result, dict) else None
    if not isinstance(files, list):
        raise SolveError("The AI response did not contain a list of files.")

    generated = []
    for item in files:
        if not isinstance(item, dict) or 'name' not in item or 'content' not in item:
            raise SolveError(f"Malformed file entry in AI response: {item!r}")
        generated.append(GeneratedFile(
            name=str(item['name']),
            content=str(item['content']),
            handwritten=bool(item.get('handwritten', False)),
        ))
    return generated


class AssignmentSolver:
    """Runs one schema-constrained Gemini request per assignment."""

    def __init__(self, model):
        self.model = model

    @classmethod
    def from_api_key(cls, api_key: str, model_name: str) -> "AssignmentSolver":
        genai.configure(api_key=api_key)
        return cls(genai.GenerativeModel(model_name))

    def solve(self, course: Course, assignment: Assignment, attachment_contents: Dict[str, str]) -> List[GeneratedFile]:
        parts = build_prompt_parts(course, assignment, attachment_contents)
        logger.debug("Sending %d prompt part(s) for '%s'", len(parts), assignment.title)
        try:
            response = self.model.generate_content(
                parts,
                generation_config=genai.GenerationConfig(
                    response_mime_type='application/json',
                    response_schema=SolutionSchema,
                ),
            )
            text = response.text
        except Exception as e:
            raise SolveError(f"Error during Gemini generation: {e}") from e
        return parse_solution(text)

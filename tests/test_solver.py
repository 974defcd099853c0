import base64
import json

import pytest

from classroom_solver.errors import SolveError
from classroom_solver.solver import (
    INSTRUCTIONS,
    AssignmentSolver,
    SolutionSchema,
    build_prompt_parts,
    needs_handwritten_file,
    parse_solution,
)
from conftest import FakeModel


def test_text_attachments_are_folded_into_first_part(course, assignment):
    parts = build_prompt_parts(course, assignment, {'Lab handout': 'Measure the period.'})

    assert len(parts) == 2
    assert 'Course: "Physics 101"' in parts[0]
    assert 'Assignment Title: "Lab Report 3"' in parts[0]
    assert '--- Attachment Content from file: Lab handout ---\nMeasure the period.\n--- End of Attachment ---' in parts[0]
    assert parts[-1] == INSTRUCTIONS


def test_data_url_attachments_become_inline_parts(course, assignment):
    encoded = base64.b64encode(b'\x89PNG data').decode()
    contents = {
        'diagram.png': f'data:image/png;base64,{encoded}',
        'notes': 'Some notes',
    }

    parts = build_prompt_parts(course, assignment, contents)

    assert 'Some notes' in parts[0]
    assert 'diagram.png' not in parts[0]
    assert parts[1] == '\n--- Attachment Content from file: diagram.png ---'
    assert parts[2] == {'mime_type': 'image/png', 'data': b'\x89PNG data'}
    assert parts[3] == INSTRUCTIONS


def test_malformed_data_url_is_skipped(course, assignment):
    parts = build_prompt_parts(course, assignment, {'broken': 'data:nonsense'})

    assert len(parts) == 2
    assert 'broken' not in parts[0]


def test_parse_solution():
    text = json.dumps({'files': [
        {'name': 'essay.txt', 'content': 'Once upon a time', 'handwritten': True},
        {'name': 'main.py', 'content': 'print(1)', 'handwritten': False},
    ]})

    files = parse_solution(f"  {text}\n")

    assert [(f.name, f.handwritten) for f in files] == [('essay.txt', True), ('main.py', False)]
    assert files[1].content == 'print(1)'


@pytest.mark.parametrize('text', ['not json', '{"answer": "x"}', '{"files": [{"name": "a.txt"}]}', '[]'])
def test_parse_solution_rejects_bad_replies(text):
    with pytest.raises(SolveError):
        parse_solution(text)


def test_solve_requests_json_schema(course, assignment):
    model = FakeModel(text='{"files": [{"name": "a.txt", "content": "A", "handwritten": false}]}')

    files = AssignmentSolver(model).solve(course, assignment, {})

    assert [f.name for f in files] == ['a.txt']
    (parts, kwargs), = model.calls
    assert parts[-1] == INSTRUCTIONS
    config = kwargs['generation_config']
    assert config.response_mime_type == 'application/json'
    assert config.response_schema is SolutionSchema


def test_solve_wraps_model_errors(course, assignment):
    model = FakeModel(error=RuntimeError('quota exhausted'))

    with pytest.raises(SolveError, match='quota exhausted'):
        AssignmentSolver(model).solve(course, assignment, {})


def test_needs_handwritten_file(assignment):
    assert not needs_handwritten_file(assignment)
    assignment.description = 'Submit a HANDWRITTEN copy of your notes.'
    assert needs_handwritten_file(assignment)

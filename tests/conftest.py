import json
from types import SimpleNamespace

import httplib2
import pytest
from googleapiclient.errors import HttpError

from classroom_solver.models import (
    Assignment,
    Attachment,
    Course,
    DriveFile,
    DriveFileLink,
    GeneratedFile,
)


def make_http_error(status=500, message='boom'):
    body = json.dumps({'error': {'code': status, 'message': message}}).encode('utf-8')
    return HttpError(httplib2.Response({'status': str(status)}), body)


def make_attachment(file_id, title, mime_type='application/vnd.google-apps.document'):
    return Attachment(
        title=title,
        drive_file=DriveFile(id=file_id, title=title, alternate_link=f'https://drive/{file_id}', mime_type=mime_type),
    )


class FakeApi:
    def __init__(self, courses=None, assignments=None, contents=None):
        self.courses = courses or []
        self.assignments = assignments or []
        self.contents = contents or {}
        self.uploaded = []
        self.attached = []
        self.turned_in = []
        self.upload_error = None

    def get_courses(self):
        return self.courses

    def get_assignments(self, course_id):
        return [a for a in self.assignments if a.course_id == course_id]

    def get_attachment_content(self, file_id, mime_type):
        return self.contents.get(file_id, 'plain text')

    def upload_files_to_drive(self, files):
        if self.upload_error:
            raise self.upload_error
        self.uploaded.extend(files)
        return [
            DriveFileLink(name=f.name, id=f'drive-{i}', link=f'https://drive.google.com/file/d/drive-{i}/view')
            for i, f in enumerate(files)
        ]

    def attach_to_submission(self, course_id, coursework_id, submission_id, file_ids):
        self.attached.append((course_id, coursework_id, submission_id, file_ids))

    def turn_in(self, course_id, coursework_id, submission_id):
        self.turned_in.append((course_id, coursework_id, submission_id))


class FakeSolver:
    def __init__(self, files=None, error=None):
        self.files = files if files is not None else [GeneratedFile('answer.txt', 'The answer is 42.')]
        self.error = error
        self.calls = []

    def solve(self, course, assignment, attachment_contents):
        self.calls.append((course, assignment, dict(attachment_contents)))
        if self.error:
            raise self.error
        return [GeneratedFile(f.name, f.content, f.handwritten) for f in self.files]


class FakeModel:
    def __init__(self, text='{"files": []}', error=None):
        self.text = text
        self.error = error
        self.calls = []

    def generate_content(self, contents, **kwargs):
        self.calls.append((contents, kwargs))
        if self.error:
            raise self.error
        return SimpleNamespace(text=self.text)


@pytest.fixture
def course():
    return Course(id='c1', name='Physics 101', section='Period 2', teacher='Marie Curie')


@pytest.fixture
def assignment():
    return Assignment(
        id='w1',
        course_id='c1',
        title='Lab Report 3',
        description='Write up the pendulum experiment.',
        due_date='10/24/2026',
        attachments=[make_attachment('f1', 'Lab handout')],
        student_submission_id='s1',
    )


@pytest.fixture
def fake_api(course, assignment):
    return FakeApi(courses=[course], assignments=[assignment])

"""
Stateful sessions behind the CLI screens.

``Dashboard`` tracks course and assignment selection, ``AssignmentSession``
walks one assignment through fetch, solve, render, zip and upload. Neither
raises for failed external calls: the status moves to ``ERROR`` and a
user-facing message is stored in ``error``.
"""

import enum
import logging
from typing import Callable, Dict, List, Optional

from googleapiclient.errors import HttpError

from .classroom_api import ClassroomApi
from .models import Assignment, Attachment, Course, DriveFileLink, FileBlob
from .renderer import DEFAULT_FONT, ZIP_MIME_TYPE, get_font, render_files, solution_zip_name, zip_files
from .solver import AssignmentSolver, needs_handwritten_file

logger = logging.getLogger(__name__)


class Status(enum.IntEnum):
    IDLE = 0
    FETCHING_ATTACHMENTS = 1
    SOLVING = 2
    GENERATING_FILES = 3
    ZIPPING = 4
    UPLOADING_TO_DRIVE = 5
    DONE = 6
    ERROR = 7


STATUS_MESSAGES = {
    Status.IDLE: 'Ready to start',
    Status.FETCHING_ATTACHMENTS: 'Analyzing assignment materials...',
    Status.SOLVING: 'The AI is crafting your solution...',
    Status.GENERATING_FILES: 'Preparing your files for download...',
    Status.ZIPPING: 'Packaging multiple files for convenience...',
    Status.UPLOADING_TO_DRIVE: 'Uploading solution to your Google Drive...',
    Status.DONE: 'Assignment solved and files are ready!',
    Status.ERROR: 'An error occurred.',
}

ATTACHMENTS_ERROR = "Failed to read assignment attachments."
SOLVE_ERROR = "Failed to solve assignment. The AI might be unavailable or the request failed. Please try again."
NOTHING_TO_UPLOAD_ERROR = "No files have been generated to upload."


def _reason(error: Exception) -> str:
    if isinstance(error, HttpError):
        return error.reason
    return str(error) or type(error).__name__


class AssignmentSession:
    def __init__(
        self,
        assignment: Assignment,
        course: Course,
        api: ClassroomApi,
        solver: AssignmentSolver,
        font: str = DEFAULT_FONT,
        fonts_dir: str = 'fonts',
        on_status: Optional[Callable[[Status, str], None]] = None,
    ):
        get_font(font)
        self.assignment = assignment
        self.course = course
        self.api = api
        self.solver = solver
        self.selected_font = font
        self.fonts_dir = fonts_dir
        self.on_status = on_status

        self.status = Status.IDLE
        self.error: Optional[str] = None
        self.generated_files: List[FileBlob] = []
        self.zip_blob: Optional[FileBlob] = None
        self.drive_file_links: List[DriveFileLink] = []
        self.attachment_contents: Dict[str, str] = {}
        self._attachment_keys: Dict[str, str] = {}
        self.attached = False
        self.turned_in = False

    def _set_status(self, status: Status):
        self.status = status
        if self.on_status:
            self.on_status(status, self.status_message)

    def _fail(self, message: str):
        self.error = message
        self._set_status(Status.ERROR)

    # --- Derived state ---

    @property
    def is_solving(self) -> bool:
        return Status.IDLE < self.status < Status.DONE

    @property
    def progress_percentage(self) -> float:
        if not self.is_solving:
            return 0
        return max(0, (self.status - 1) / (Status.DONE - 2) * 100)

    @property
    def status_message(self) -> str:
        return self.error or STATUS_MESSAGES[self.status]

    @property
    def needs_handwritten_file(self) -> bool:
        return needs_handwritten_file(self.assignment)

    def content_for(self, attachment: Attachment) -> Optional[str]:
        key = self._attachment_keys.get(attachment.drive_file.id)
        return self.attachment_contents.get(key) if key else None

    def attachment_status_text(self, content: Optional[str]) -> str:
        if self.status == Status.FETCHING_ATTACHMENTS:
            return 'Analyzing...'
        content = content or ''
        if content.startswith('data:'):
            return 'Content will be extracted by AI'
        if content.startswith('[Content of file type'):
            return 'File type not readable'
        if content.startswith('[Error reading'):
            return 'Error reading file'
        return 'Text read by AI'

    # --- Steps ---

    def fetch_attachments(self):
        if not self.assignment.attachments:
            return
        self._set_status(Status.FETCHING_ATTACHMENTS)
        contents, keys = {}, {}
        try:
            for att in self.assignment.attachments:
                key = att.title
                if key in contents:
                    key = f"{att.title} ({att.drive_file.id})"
                contents[key] = self.api.get_attachment_content(att.drive_file.id, att.drive_file.mime_type)
                keys[att.drive_file.id] = key
        except Exception:
            logger.exception("Reading attachments for '%s' failed", self.assignment.title)
            self._fail(ATTACHMENTS_ERROR)
            return
        self.attachment_contents = contents
        self._attachment_keys = keys
        self._set_status(Status.IDLE)

    def solve(self):
        self.error = None
        self.generated_files = []
        self.zip_blob = None
        self.drive_file_links = []
        self.attached = False
        self.turned_in = False
        self._set_status(Status.SOLVING)

        try:
            files = self.solver.solve(self.course, self.assignment, self.attachment_contents)

            self._set_status(Status.GENERATING_FILES)
            self.generated_files = render_files(files, self.selected_font, self.fonts_dir)

            if len(self.generated_files) > 1:
                self._set_status(Status.ZIPPING)
                self.zip_blob = FileBlob(
                    name=solution_zip_name(self.assignment.title),
                    content='',
                    data=zip_files(self.generated_files),
                    mime_type=ZIP_MIME_TYPE,
                )
        except Exception:
            logger.exception("Solving '%s' failed", self.assignment.title)
            self._fail(SOLVE_ERROR)
            return
        self._set_status(Status.DONE)

    def upload_to_drive(self):
        if not self.generated_files and not self.zip_blob:
            self.error = NOTHING_TO_UPLOAD_ERROR
            return
        self.error = None
        self._set_status(Status.UPLOADING_TO_DRIVE)
        to_upload = [self.zip_blob] if self.zip_blob else self.generated_files
        try:
            self.drive_file_links = self.api.upload_files_to_drive(to_upload)
        except Exception as e:
            logger.exception("Drive upload failed")
            self._fail(f"Upload failed: {_reason(e)}")
            return
        self._set_status(Status.DONE)

    def submit(self, turn_in: bool = False):
        """Attaches the uploaded Drive files to the student's submission."""
        submission_id = self.assignment.student_submission_id
        if not submission_id:
            self.error = "This assignment has no submission for your account."
            return
        if not self.drive_file_links:
            self.error = "Upload the files to Drive before submitting."
            return
        self.error = None
        try:
            self.api.attach_to_submission(
                self.course.id, self.assignment.id, submission_id,
                [link.id for link in self.drive_file_links],
            )
            self.attached = True
            if turn_in:
                self.api.turn_in(self.course.id, self.assignment.id, submission_id)
                self.turned_in = True
        except Exception as e:
            logger.exception("Submitting '%s' failed", self.assignment.title)
            self._fail(f"Submission failed: {_reason(e)}")
            return
        self._set_status(Status.DONE)


class Dashboard:
    def __init__(self, api: ClassroomApi):
        self.api = api
        self.courses: List[Course] = []
        self.assignments: List[Assignment] = []
        self.selected_course: Optional[Course] = None
        self.selected_assignment: Optional[Assignment] = None
        self.error: Optional[str] = None

    def load_courses(self) -> List[Course]:
        self.error = None
        try:
            self.courses = self.api.get_courses()
        except Exception:
            logger.exception("Fetching courses failed")
            self.error = "Could not fetch courses. Please ensure you've granted Classroom permissions."
        return self.courses

    def select_course(self, course: Course) -> List[Assignment]:
        self.selected_course = course
        self.selected_assignment = None
        self.assignments = []
        self.error = None
        try:
            self.assignments = self.api.get_assignments(course.id)
        except Exception:
            logger.exception("Fetching assignments for %s failed", course.name)
            self.error = f"Could not fetch assignments for {course.name}."
        return self.assignments

    def select_course_by_id(self, course_id: str) -> List[Assignment]:
        if not self.courses:
            self.load_courses()
            if self.error:
                return []
        course = self.find_course(course_id)
        if course is None:
            self.error = f"Could not find course with ID {course_id}."
            return []
        return self.select_course(course)

    def find_course(self, course_id: str) -> Optional[Course]:
        return next((c for c in self.courses if c.id == course_id), None)

    def find_assignment(self, assignment_id: str) -> Optional[Assignment]:
        return next((a for a in self.assignments if a.id == assignment_id), None)

    def select_assignment(self, assignment: Assignment):
        self.selected_assignment = assignment

    def back(self):
        self.selected_assignment = None

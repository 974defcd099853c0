import base64
import io
import logging
from typing import Dict, List, Optional

import pdfplumber
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload, MediaIoBaseUpload

from .errors import UploadError
from .models import (
    Assignment,
    Attachment,
    Course,
    DriveFileLink,
    FileBlob,
    format_due_date,
)

logger = logging.getLogger(__name__)

# Google Workspace files have no binary body, they must be exported.
GOOGLE_EXPORT_TYPES = {
    'application/vnd.google-apps.document': 'text/plain',
    'application/vnd.google-apps.spreadsheet': 'text/csv',
    'application/vnd.google-apps.presentation': 'text/plain',
}

# Keeps inline attachments small enough for a single AI request
MAX_INLINE_BYTES = 3 * 1024 * 1024

ERROR_READING_MARKER = '[Error reading attachment content.]'


def unreadable_marker(mime_type: str) -> str:
    return f"[Content of file type ({mime_type}) cannot be read by the assistant.]"


def too_large_marker(mime_type: str) -> str:
    return f"[Content of file type ({mime_type}) is too large to be read by the assistant.]"


class ClassroomApi:
    """Thin wrapper over the Classroom v1 and Drive v3 services."""

    def __init__(self, credentials=None, classroom_service=None, drive_service=None):
        self.classroom_service = classroom_service or build('classroom', 'v1', credentials=credentials)
        self.drive_service = drive_service or build('drive', 'v3', credentials=credentials)

    # --- Courses & Assignments ---

    def _teacher_name(self, owner_id: Optional[str], course_name: str) -> str:
        if not owner_id:
            return 'N/A'
        try:
            profile = self.classroom_service.userProfiles().get(userId=owner_id).execute()
        except HttpError:
            logger.warning("Could not fetch teacher for course %s", course_name)
            return 'N/A'
        return profile.get('name', {}).get('fullName') or 'N/A'

    def get_courses(self) -> List[Course]:
        """Fetch active courses along with each owner's display name."""
        items, page_token = [], None
        while True:
            response = self.classroom_service.courses().list(
                pageSize=100, courseStates=['ACTIVE'], pageToken=page_token
            ).execute()
            items.extend(response.get('courses', []))
            page_token = response.get('nextPageToken')
            if not page_token:
                break

        return [
            Course(
                id=c['id'],
                name=c.get('name', ''),
                section=c.get('section') or 'General',
                teacher=self._teacher_name(c.get('ownerId'), c.get('name', '')),
            )
            for c in items
        ]

    def _list_coursework(self, course_id: str) -> List[Dict]:
        coursework, page_token = [], None
        while True:
            response = self.classroom_service.courses().courseWork().list(
                courseId=course_id, orderBy='dueDate desc', pageToken=page_token
            ).execute()
            coursework.extend(response.get('courseWork', []))
            page_token = response.get('nextPageToken')
            if not page_token:
                return coursework

    def _my_submission_ids(self, course_id: str) -> Dict[str, str]:
        """Maps courseWorkId to the signed-in student's submission id."""
        submissions, page_token = {}, None
        while True:
            response = self.classroom_service.courses().courseWork().studentSubmissions().list(
                courseId=course_id, courseWorkId='-', userId='me', pageToken=page_token
            ).execute()
            for sub in response.get('studentSubmissions', []):
                submissions[sub['courseWorkId']] = sub['id']
            page_token = response.get('nextPageToken')
            if not page_token:
                return submissions

    def get_assignments(self, course_id: str) -> List[Assignment]:
        coursework = self._list_coursework(course_id)
        submissions = self._my_submission_ids(course_id)

        assignments = []
        for item in coursework:
            attachments = [
                att for att in (Attachment.from_material(m) for m in item.get('materials', []))
                if att is not None
            ]
            assignments.append(Assignment(
                id=item['id'],
                course_id=item.get('courseId', course_id),
                title=item.get('title', ''),
                description=item.get('description') or 'No description provided.',
                due_date=format_due_date(item.get('dueDate')),
                attachments=attachments,
                student_submission_id=submissions.get(item['id']),
            ))
        return assignments

    # --- Drive Files ---

    def _download(self, request) -> bytes:
        fh = io.BytesIO()
        downloader = MediaIoBaseDownload(fh, request)
        done = False
        while not done:
            _, done = downloader.next_chunk()
        return fh.getvalue()

    def _extract_pdf_text(self, data: bytes) -> str:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            return "\n".join(
                text for text in (page.extract_text() for page in pdf.pages) if text
            )

    def get_attachment_content(self, file_id: str, mime_type: str) -> str:
        """
        Returns an attachment in a form the AI prompt can use.

        Workspace files come back as exported text, images and PDFs as a
        ``data:`` URL, and anything else as a bracketed marker string.
        """
        try:
            export_type = GOOGLE_EXPORT_TYPES.get(mime_type)
            if export_type:
                request = self.drive_service.files().export_media(fileId=file_id, mimeType=export_type)
                return self._download(request).decode('utf-8-sig')

            if mime_type.startswith('image/') or mime_type == 'application/pdf':
                data = self._download(self.drive_service.files().get_media(fileId=file_id))
                if len(data) > MAX_INLINE_BYTES:
                    logger.warning("File %s (%s) is too large to be processed by AI.", file_id, mime_type)
                    if mime_type == 'application/pdf':
                        text = self._extract_pdf_text(data)
                        if text.strip():
                            return text
                    return too_large_marker(mime_type)
                encoded = base64.b64encode(data).decode('ascii')
                return f"data:{mime_type};base64,{encoded}"

            return unreadable_marker(mime_type)
        except Exception:
            logger.exception("Failed to fetch content for file %s", file_id)
            return ERROR_READING_MARKER

    def upload_files_to_drive(self, files: List[FileBlob]) -> List[DriveFileLink]:
        links = []
        for blob in files:
            media = MediaIoBaseUpload(io.BytesIO(blob.data), mimetype=blob.mime_type, resumable=False)
            try:
                created = self.drive_service.files().create(
                    body={'name': blob.name}, media_body=media, fields='id'
                ).execute()
                # The create response does not include the webViewLink
                metadata = self.drive_service.files().get(
                    fileId=created['id'], fields='webViewLink, name, id'
                ).execute()
            except HttpError as e:
                raise UploadError(blob.name, e.reason) from e

            logger.info("Uploaded %s to Drive as %s", blob.name, metadata['id'])
            links.append(DriveFileLink(
                name=metadata.get('name', blob.name),
                id=metadata['id'],
                link=metadata.get('webViewLink', ''),
            ))
        return links

    # --- Submissions ---

    def attach_to_submission(self, course_id: str, coursework_id: str, submission_id: str, file_ids: List[str]):
        body = {'addAttachments': [{'driveFile': {'id': file_id}} for file_id in file_ids]}
        self.classroom_service.courses().courseWork().studentSubmissions().modifyAttachments(
            courseId=course_id, courseWorkId=coursework_id, id=submission_id, body=body
        ).execute()
        logger.info("Attached %d file(s) to submission %s", len(file_ids), submission_id)

    def turn_in(self, course_id: str, coursework_id: str, submission_id: str):
        self.classroom_service.courses().courseWork().studentSubmissions().turnIn(
            courseId=course_id, courseWorkId=coursework_id, id=submission_id, body={}
        ).execute()
        logger.info("Submission %s turned in", submission_id)

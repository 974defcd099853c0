"""Plain records mirroring the Classroom, Drive and Gemini JSON shapes."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class UserProfile:
    name: str
    email: str
    picture: str = ""

    @classmethod
    def from_userinfo(cls, info: Dict[str, Any]) -> "UserProfile":
        return cls(
            name=info.get('name', ''),
            email=info.get('email', ''),
            picture=info.get('picture', ''),
        )


@dataclass
class Course:
    id: str
    name: str
    section: str = 'General'
    teacher: str = 'N/A'


@dataclass
class DriveFile:
    id: str
    title: str
    alternate_link: str = ""
    mime_type: str = ""


@dataclass
class Attachment:
    title: str
    drive_file: DriveFile

    @classmethod
    def from_material(cls, material: Dict[str, Any]) -> Optional["Attachment"]:
        """Build an attachment from a courseWork material, or None for non-Drive materials."""
        drive_file = material.get('driveFile', {}).get('driveFile')
        if not drive_file:
            return None
        title = drive_file.get('title', '')
        return cls(
            title=title,
            drive_file=DriveFile(
                id=drive_file['id'],
                title=title,
                alternate_link=drive_file.get('alternateLink', ''),
                mime_type=drive_file.get('mimeType', ''),
            ),
        )


@dataclass
class Assignment:
    id: str
    course_id: str
    title: str
    description: str = 'No description provided.'
    due_date: str = 'No due date'
    attachments: List[Attachment] = field(default_factory=list)
    # Needed to attach files and turn the work in
    student_submission_id: Optional[str] = None


@dataclass
class GeneratedFile:
    name: str
    content: str
    handwritten: bool = False


@dataclass
class FileBlob(GeneratedFile):
    data: bytes = b""
    mime_type: str = 'text/plain; charset=utf-8'


@dataclass
class DriveFileLink:
    name: str
    id: str
    link: str


def format_due_date(date: Optional[Dict[str, int]]) -> str:
    """Formats a Classroom ``Date`` message as M/D/YYYY."""
    if not date or not date.get('year'):
        return 'No due date'
    return f"{date.get('month', 1)}/{date.get('day', 1)}/{date['year']}"

class ClassroomSolverError(Exception):
    """Base class for errors shown to the user."""


class ConfigurationError(ClassroomSolverError):
    """Credentials are missing or still hold placeholder values."""


class AuthError(ClassroomSolverError):
    """Sign-in, token refresh or profile lookup failed."""


class SolveError(ClassroomSolverError):
    """The AI request failed or returned an unusable reply."""


class UploadError(ClassroomSolverError):
    def __init__(self, file_name: str, message: str):
        self.file_name = file_name
        self.message = message
        super().__init__(f"Google Drive upload failed for {file_name}: {message}")

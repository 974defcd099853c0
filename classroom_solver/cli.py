"""
Classroom Solver
==================================================

This CLI tool connects to the Google Classroom and Drive APIs to:
1.  (login / logout / whoami) Connect or disconnect your Google account.
2.  (list-courses) List all your active courses and their teachers.
3.  (list-assignments) List a course's assignments with due dates and attachments.
4.  (solve) Read an assignment and its attachments, ask Gemini for a solution,
    render the files (handwritten-style PDFs where requested), save them
    locally, and optionally upload them to Drive and attach them to your
    Classroom submission.
5.  (fonts) Show the handwriting fonts available for PDF output.

Setup:
-------
1. Enable Google Classroom & Drive APIs in Google Cloud Console.
2. Download OAuth credentials.json (Desktop app client).
3. Create a .env file with:
   GEMINI_API_KEY=your_api_key_here
4. Optionally drop Caveat-Regular.ttf, DancingScript-Regular.ttf and
   PatrickHand-Regular.ttf into ./fonts for handwritten output.
5. Run:
   classroom-solver login
   classroom-solver list-courses
   classroom-solver solve --course-id 123 --assignment-id 456 --upload
"""

import logging
import os
import re
from contextlib import contextmanager
from typing import Optional

import typer
from googleapiclient.errors import HttpError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.status import Status as Spinner

from .auth import AuthService
from .classroom_api import ClassroomApi
from .config import Settings
from .errors import ClassroomSolverError
from .renderer import AVAILABLE_FONTS, DEFAULT_FONT, SAMPLE_TEXT, font_path, get_font, save_files
from .solver import AssignmentSolver
from .workflow import AssignmentSession, Dashboard, Status

# ---------------------- Setup ----------------------
app = typer.Typer(help="Solve Google Classroom assignments with Gemini AI and hand the results back to Drive.")
console = Console()

CREDENTIALS_HELP = "Path to OAuth client secrets file."
TOKEN_HELP = "Path to saved token file."


# ---------------------- Factories ----------------------

def load_settings(credentials: Optional[str] = None, token: Optional[str] = None) -> Settings:
    settings = Settings.from_env()
    if credentials:
        settings.credentials_file = credentials
    if token:
        settings.token_file = token
    return settings


def make_auth(settings: Settings) -> AuthService:
    return AuthService(settings)


def make_api(credentials) -> ClassroomApi:
    return ClassroomApi(credentials)


def make_solver(settings: Settings) -> AssignmentSolver:
    return AssignmentSolver.from_api_key(settings.require_gemini_key(), settings.gemini_model)


def signed_in_auth(settings: Settings) -> AuthService:
    """Loads the stored token, running the consent flow when there is none."""
    auth = make_auth(settings)
    if not auth.init_client():
        console.print("[cyan]Authenticating with Google...[/cyan]")
        auth.sign_in()
        console.print("[green]✓ Authentication successful![/green]")
    return auth


@contextmanager
def friendly_errors():
    try:
        yield
    except ClassroomSolverError as e:
        console.print(f"[red]⚠️ {escape(str(e))}[/red]")
        raise typer.Exit(code=1)
    except HttpError as e:
        console.print(f"[red]⚠️ Google API error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)


def _safe_dirname(title: str) -> str:
    return re.sub(r'[^\w\-_\. ]', '', title).strip().replace(' ', '_') or 'assignment'


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


def _status_text(message: str) -> str:
    return f"[bold magenta]{message}[/bold magenta]"


def _run_step(session: AssignmentSession, step):
    """Runs one workflow step behind a spinner that follows the session status."""
    with Spinner(_status_text(session.status_message), console=console) as spinner:
        session.on_status = lambda status, message: spinner.update(_status_text(message))
        try:
            step()
        finally:
            session.on_status = None


# ---------------------- Typer Commands ----------------------

@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging.")):
    settings = Settings.from_env()
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level, logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


@app.command()
def login(
    credentials: str = typer.Option(None, help=CREDENTIALS_HELP),
    token: str = typer.Option(None, help=TOKEN_HELP),
):
    """Connect your Google account."""
    with friendly_errors():
        auth = make_auth(load_settings(credentials, token))
        auth.init_client()
        profile = auth.sign_in()
    console.print(Panel(
        f"[bold]{profile.name}[/bold]\n{profile.email}",
        title="✓ Signed in",
        border_style="green",
    ))


@app.command()
def logout(
    credentials: str = typer.Option(None, help=CREDENTIALS_HELP),
    token: str = typer.Option(None, help=TOKEN_HELP),
):
    """Revoke access and forget the stored token."""
    with friendly_errors():
        auth = make_auth(load_settings(credentials, token))
        if not auth.init_client():
            console.print("[dim]Not signed in.[/dim]")
            return
        auth.sign_out()
    console.print("[green]✓ Google account disconnected.[/green]")


@app.command()
def whoami(
    credentials: str = typer.Option(None, help=CREDENTIALS_HELP),
    token: str = typer.Option(None, help=TOKEN_HELP),
):
    """Show the signed-in Google account."""
    with friendly_errors():
        auth = make_auth(load_settings(credentials, token))
        if not auth.init_client():
            console.print("[yellow]Not signed in. Run `classroom-solver login` first.[/yellow]")
            raise typer.Exit(code=1)
        profile = auth.fetch_user_profile()
    console.print(f"[bold]{profile.name}[/bold] <{profile.email}>")


@app.command("list-courses")
def list_courses(
    credentials: str = typer.Option(None, help=CREDENTIALS_HELP),
    token: str = typer.Option(None, help=TOKEN_HELP),
):
    """List all your active Google Classroom courses."""
    console.print("📚 [bold]Fetching your courses...[/bold]\n")
    with friendly_errors():
        auth = signed_in_auth(load_settings(credentials, token))
        dashboard = Dashboard(make_api(auth.credentials))
        courses = dashboard.load_courses()

    if dashboard.error:
        console.print(f"[red]⚠️ {escape(dashboard.error)}[/red]")
        raise typer.Exit(code=1)
    if not courses:
        console.print("No active courses found.")
        raise typer.Exit()

    console.print(Panel(
        "\n".join(
            f"• [green]{c.name}[/green] [dim]({c.section}, {c.teacher})[/dim] (ID: {c.id})"
            for c in courses
        ),
        title="Active Courses",
        border_style="blue",
    ))


@app.command("list-assignments")
def list_assignments(
    course_id: str = typer.Option(..., "--course-id", help="Course ID to list assignments for."),
    credentials: str = typer.Option(None, help=CREDENTIALS_HELP),
    token: str = typer.Option(None, help=TOKEN_HELP),
):
    """List assignments for a course, newest due date first."""
    with friendly_errors():
        auth = signed_in_auth(load_settings(credentials, token))
        dashboard = Dashboard(make_api(auth.credentials))
        assignments = dashboard.select_course_by_id(course_id)

    if dashboard.error:
        console.print(f"[red]⚠️ {escape(dashboard.error)}[/red]")
        raise typer.Exit(code=1)
    if not assignments:
        console.print("[dim]No assignments found for this course.[/dim]")
        raise typer.Exit()

    lines = []
    for a in assignments:
        line = f"• [cyan]{a.title}[/cyan] (ID: {a.id})\n    Due: {a.due_date}"
        if a.attachments:
            line += f" | 📎 {_plural(len(a.attachments), 'attachment')}"
        if a.student_submission_id:
            line += f" | Submission: {a.student_submission_id}"
        lines.append(line)
    console.print(Panel("\n".join(lines), title="Assignments", border_style="blue"))


@app.command()
def fonts(
    fonts_dir: str = typer.Option(None, "--fonts-dir", help="Directory holding handwriting TTF files."),
):
    """List the handwriting fonts used for handwritten PDFs."""
    fonts_dir = fonts_dir or Settings.from_env().fonts_dir
    for font in AVAILABLE_FONTS:
        installed = os.path.exists(font_path(font, fonts_dir))
        marker = "[green]installed[/green]" if installed else f"[yellow]missing {font.filename}[/yellow]"
        default = " [dim](default)[/dim]" if font.name == DEFAULT_FONT else ""
        console.print(f"• [bold]{font.name}[/bold]{default}: {marker}\n    [italic]{SAMPLE_TEXT}[/italic]")


@app.command()
def solve(
    course_id: str = typer.Option(..., "--course-id", help="Course ID."),
    assignment_id: str = typer.Option(..., "--assignment-id", help="Assignment (courseWork) ID."),
    font: str = typer.Option(DEFAULT_FONT, "--font", help="Handwriting font for handwritten PDFs."),
    output_dir: str = typer.Option(None, "--output-dir", help="Where to save the generated files."),
    upload: bool = typer.Option(False, "--upload", help="Upload the solution to Google Drive."),
    submit: bool = typer.Option(False, "--submit", help="Attach the uploaded files to your Classroom submission."),
    turn_in: bool = typer.Option(False, "--turn-in", help="Turn the assignment in after attaching. Implies --submit."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask before turning in."),
    credentials: str = typer.Option(None, help=CREDENTIALS_HELP),
    token: str = typer.Option(None, help=TOKEN_HELP),
):
    """
    Generate a solution for one assignment and save, upload or submit it.
    """
    submit = submit or turn_in
    settings = load_settings(credentials, token)
    with friendly_errors():
        try:
            get_font(font)
        except ValueError as e:
            console.print(f"[red]⚠️ {escape(str(e))}[/red]")
            raise typer.Exit(code=1)

        solver = make_solver(settings)
        auth = signed_in_auth(settings)
        dashboard = Dashboard(make_api(auth.credentials))
        dashboard.select_course_by_id(course_id)
        if dashboard.error:
            console.print(f"[red]⚠️ {escape(dashboard.error)}[/red]")
            raise typer.Exit(code=1)

    assignment = dashboard.find_assignment(assignment_id)
    if not assignment:
        console.print(f"[red]Error: Could not find assignment with ID {assignment_id}[/red]")
        raise typer.Exit(code=1)
    dashboard.select_assignment(assignment)
    course = dashboard.selected_course

    console.rule(f"[bold blue]📝 {assignment.title}[/bold blue]")
    console.print(f"[dim]From: {course.name} | Due: {assignment.due_date}[/dim]")
    console.print(Panel(escape(assignment.description), title="Assignment Details", border_style="blue"))

    session = AssignmentSession(
        assignment, course, dashboard.api, solver, font=font, fonts_dir=settings.fonts_dir,
    )

    _run_step(session, session.fetch_attachments)
    if assignment.attachments:
        console.print(Panel(
            "\n".join(
                f"• {att.title}: [dim]{session.attachment_status_text(session.content_for(att))}[/dim]"
                for att in assignment.attachments
            ),
            title="📎 Attachments",
            border_style="cyan",
        ))
    if session.status == Status.ERROR:
        console.print(f"[red]⚠️ {escape(session.status_message)}[/red]")
        raise typer.Exit(code=1)

    if session.needs_handwritten_file:
        console.print(f"✍️  Handwritten output requested, using the [bold]{font}[/bold] font.")

    _run_step(session, session.solve)
    if session.status == Status.ERROR:
        console.print(f"[red]⚠️ {escape(session.status_message)}[/red]")
        raise typer.Exit(code=1)

    target_dir = os.path.join(output_dir or settings.output_dir, _safe_dirname(assignment.title))
    blobs = session.generated_files + ([session.zip_blob] if session.zip_blob else [])
    try:
        paths = save_files(blobs, target_dir)
    except OSError as e:
        console.print(f"[red]⚠️ Could not save files to {escape(target_dir)}: {escape(str(e))}[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]✓ {session.status_message}[/green]")
    console.print(Panel("\n".join(f"• {p}" for p in paths), title="Generated Files", border_style="green"))

    if not (upload or submit):
        return

    _run_step(session, session.upload_to_drive)
    if session.status == Status.ERROR:
        console.print(f"[red]⚠️ {escape(session.status_message)}[/red]")
        raise typer.Exit(code=1)
    console.print(Panel(
        "\n".join(f"• {link.name}: [link={link.link}]{link.link}[/link]" for link in session.drive_file_links),
        title="✓ Files Uploaded to Your Drive!",
        border_style="green",
    ))

    if not submit:
        console.print("[cyan]Next step: Add these files to your assignment in Google Classroom.[/cyan]")
        return

    if turn_in and not yes:
        turn_in = typer.confirm("\nDo you want to turn in this assignment now?", default=False)
    session.submit(turn_in=turn_in)
    if session.error:
        console.print(f"[red]⚠️ {escape(session.error)}[/red]")
        raise typer.Exit(code=1)
    if session.turned_in:
        console.print("\n[bold green]✅ Assignment Turned In![/bold green]")
    else:
        console.print("\n[bold cyan]✅ Files attached. Assignment is NOT turned in.[/bold cyan]")
        console.print("  > Review your submission in Google Classroom and turn it in when ready.")


if __name__ == "__main__":
    app()

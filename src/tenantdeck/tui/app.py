"""Main tenantdeck TUI application."""

import webbrowser
from typing import Callable, Optional

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, DataTable, Footer, Header, Input, Label, Static

from tenantdeck.deletion import DeleteController
from tenantdeck.errors import DeckError, ErrorKind, ServerRejection, ValidationFailure
from tenantdeck.forms import FormController, FormMode, build_payload
from tenantdeck.locks import LockKind
from tenantdeck.models import Project, ProjectAction
from tenantdeck.outcome import Outcome, OutcomeStatus
from tenantdeck.workspace import Workspace


def status_cell(project: Project, lock: Optional[LockKind]) -> str:
    """Status column text, showing in-flight work over the cached status."""
    if lock is LockKind.ACTION:
        return "⏳ working"
    if lock is LockKind.DELETING:
        return "🗑 deleting"
    if project.is_running:
        return "● running"
    return f"○ {project.status}"


class ProjectFormScreen(ModalScreen[Optional[Outcome]]):
    """Create / edit form bound to a ``FormController``."""

    BINDINGS = [
        Binding("escape", "cancel", "Cancel"),
    ]

    CSS = """
    ProjectFormScreen {
        align: center middle;
    }

    #form-dialog {
        width: 70;
        height: auto;
        padding: 1 2;
        background: $surface;
        border: solid $primary;
    }

    #form-title {
        text-style: bold;
    }

    #form-description {
        color: $text-muted;
        margin-bottom: 1;
    }

    #subdomain-row {
        height: auto;
    }

    #subdomain-input {
        width: 1fr;
    }

    #subdomain-suffix {
        width: auto;
        padding: 1 1;
        color: $text-muted;
    }

    #form-buttons {
        margin-top: 1;
        height: auto;
        align: right middle;
    }

    #form-buttons Button {
        margin-left: 1;
    }
    """

    def __init__(
        self,
        controller: FormController,
        base_domain: str,
        send_in_background: Optional[Callable[[], None]] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.controller = controller
        self.base_domain = base_domain
        # with close_on_send the screen closes first and this submits
        self.send_in_background = send_in_background

    def compose(self) -> ComposeResult:
        buffer = self.controller.buffer
        with Vertical(id="form-dialog"):
            yield Label(self.controller.title, id="form-title")
            yield Label(self.controller.description, id="form-description")
            yield Label("Project Name")
            yield Input(value=buffer.name, placeholder="My Awesome App", id="name-input")
            yield Label("Subdomain (URL)")
            with Horizontal(id="subdomain-row"):
                yield Input(value=buffer.subdomain, placeholder="myapp", id="subdomain-input")
                yield Static(f".{self.base_domain}", id="subdomain-suffix")
            yield Label("Docker Image")
            yield Input(value=buffer.image, placeholder="e.g. nginx:alpine", id="image-input")
            yield Label("Container Port")
            yield Input(value=str(buffer.port), placeholder="80", id="port-input")
            with Horizontal(id="form-buttons"):
                yield Button("Cancel", id="cancel-btn")
                label = "Save Changes" if self.controller.mode is FormMode.EDIT else "Create Project"
                yield Button(label, id="save-btn", variant="primary")

    def _read_inputs(self) -> None:
        self.controller.update(
            name=self.query_one("#name-input", Input).value,
            subdomain=self.query_one("#subdomain-input", Input).value,
            image=self.query_one("#image-input", Input).value,
            port=self.query_one("#port-input", Input).value,
        )

    @on(Button.Pressed, "#save-btn")
    @on(Input.Submitted)
    def on_save(self) -> None:
        self._read_inputs()
        if self.controller.close_on_send and self.send_in_background is not None:
            try:
                build_payload(self.controller.buffer)
            except ValidationFailure as e:
                self._show_validation(e)
                return
            self.dismiss(None)
            self.send_in_background()
            return
        self.save()

    def _show_validation(self, error: DeckError) -> None:
        self.notify(error.message, severity="warning")
        field = getattr(error, "field", None)
        if field:
            self.query_one(f"#{field}-input", Input).focus()

    @work
    async def save(self) -> None:
        save_button = self.query_one("#save-btn", Button)
        save_button.disabled = True
        try:
            outcome = await self.controller.submit()
        finally:
            save_button.disabled = False

        if outcome.status is OutcomeStatus.BUSY:
            return
        if outcome.error and outcome.error.kind is ErrorKind.VALIDATION:
            self._show_validation(outcome.error)
            return
        if outcome.error and self.controller.is_open:
            # Form kept open so the input can be corrected and resent
            self.notify(str(outcome.error), severity="error", timeout=8)
            return
        self.dismiss(outcome)

    @on(Button.Pressed, "#cancel-btn")
    def on_cancel(self) -> None:
        self.action_cancel()

    def action_cancel(self) -> None:
        self.controller.cancel()
        self.dismiss(None)


class ConfirmDeleteScreen(ModalScreen[bool]):
    """Destructive-action confirmation."""

    BINDINGS = [
        Binding("escape", "cancel", "Cancel"),
    ]

    CSS = """
    ConfirmDeleteScreen {
        align: center middle;
    }

    #confirm-dialog {
        width: 60;
        height: auto;
        padding: 1 2;
        background: $surface;
        border: solid $error;
    }

    #confirm-dialog Horizontal {
        margin-top: 1;
        height: auto;
        align: right middle;
    }

    #confirm-dialog Button {
        margin-left: 1;
    }
    """

    def __init__(self, message: str, **kwargs):
        super().__init__(**kwargs)
        self.message = message

    def compose(self) -> ComposeResult:
        with Vertical(id="confirm-dialog"):
            yield Label(self.message)
            with Horizontal():
                yield Button("Cancel", id="cancel-btn")
                yield Button("Delete", id="delete-btn", variant="error")

    @on(Button.Pressed, "#delete-btn")
    def on_delete(self) -> None:
        self.dismiss(True)

    @on(Button.Pressed, "#cancel-btn")
    def on_cancel(self) -> None:
        self.dismiss(False)

    def action_cancel(self) -> None:
        self.dismiss(False)


class LoginScreen(ModalScreen[bool]):
    """Sign-in form shown when there is no valid credential."""

    BINDINGS = [
        Binding("escape", "cancel", "Quit"),
    ]

    CSS = """
    LoginScreen {
        align: center middle;
    }

    #login-dialog {
        width: 50;
        height: auto;
        padding: 1 2;
        background: $surface;
        border: solid $primary;
    }

    #login-dialog Input {
        margin: 1 0 0 0;
    }

    #login-dialog Horizontal {
        margin-top: 1;
        height: auto;
        align: right middle;
    }

    #login-dialog Button {
        margin-left: 1;
    }
    """

    def __init__(self, workspace: Workspace, **kwargs):
        super().__init__(**kwargs)
        self.workspace = workspace

    def compose(self) -> ComposeResult:
        with Vertical(id="login-dialog"):
            yield Label("Sign in", classes="title")
            yield Input(placeholder="Username", id="username-input")
            yield Input(placeholder="Password", password=True, id="password-input")
            with Horizontal():
                yield Button("Quit", id="cancel-btn")
                yield Button("Sign in", id="login-btn", variant="primary")

    @on(Button.Pressed, "#login-btn")
    @on(Input.Submitted)
    def on_login(self) -> None:
        username = self.query_one("#username-input", Input).value.strip()
        password = self.query_one("#password-input", Input).value
        if not username or not password:
            self.notify("Username and password required", severity="warning")
            return
        self.sign_in(username, password)

    @work
    async def sign_in(self, username: str, password: str) -> None:
        try:
            await self.workspace.login(username, password)
        except DeckError as e:
            self.notify(str(e), severity="error")
            return
        self.dismiss(True)

    @on(Button.Pressed, "#cancel-btn")
    def on_cancel(self) -> None:
        self.dismiss(False)

    def action_cancel(self) -> None:
        self.dismiss(False)


class DeckApp(App):
    """Dashboard for the tenant's deployed applications."""

    TITLE = "tenantdeck"
    SUB_TITLE = "Manage your deployed applications"

    CSS = """
    Screen {
        layout: vertical;
    }

    #greeting-bar {
        height: 1;
        background: $primary-darken-2;
        padding: 0 1;
    }

    #projects-table {
        height: 1fr;
    }

    #empty-state {
        height: auto;
        padding: 2 4;
        color: $text-muted;
        text-align: center;
    }

    #empty-state.hidden {
        display: none;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit", show=True),
        Binding("r", "refresh", "Refresh", show=True),
        Binding("n", "new_project", "New", show=True),
        Binding("e", "edit_project", "Edit", show=True),
        Binding("s", "toggle_running", "Start/Stop", show=True),
        Binding("p", "deploy", "Deploy", show=True),
        Binding("d", "delete", "Delete", show=True),
        Binding("o", "open_url", "Open URL", show=True),
        Binding("l", "logout", "Logout", show=False),
    ]

    DASHBOARD_ACTIONS = frozenset({
        "refresh", "new_project", "edit_project", "toggle_running",
        "deploy", "delete", "open_url", "logout",
    })

    def __init__(self, workspace: Workspace):
        super().__init__()
        self.workspace = workspace
        self._row_ids: list[str] = []
        self._loading = True
        self._unsubscribe = []
        if workspace.config is not None:
            self.theme = workspace.config.theme

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static(self.workspace.session.greeting, id="greeting-bar")
        yield DataTable(id="projects-table", cursor_type="row", zebra_stripes=True)
        yield Static("Loading projects...", id="empty-state")
        yield Footer()

    def on_mount(self) -> None:
        # Held directly: store and lock changes arrive while a dialog is the active screen
        self._table = table = self.query_one("#projects-table", DataTable)
        self._empty = self.query_one("#empty-state", Static)
        self._greeting = self.query_one("#greeting-bar", Static)
        table.add_column("Name", width=24)
        table.add_column("Status", width=14)
        table.add_column("URL", width=36)
        table.add_column("Image", width=28)
        table.add_column("Container", width=14)

        self._unsubscribe = [
            self.workspace.store.subscribe(lambda projects: self.render_projects()),
            self.workspace.locks.subscribe(lambda key, kind: self.render_projects()),
        ]
        if self.workspace.session.authenticated:
            self.load()
        else:
            self.show_login()

    async def on_unmount(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        await self.workspace.aclose()

    def check_action(self, action: str, parameters: tuple[object, ...]) -> Optional[bool]:
        """Dashboard keys are inert while a dialog is open."""
        if action in self.DASHBOARD_ACTIONS and isinstance(self.screen, ModalScreen):
            return False
        return True

    # -- rendering --------------------------------------------------------

    def render_projects(self) -> None:
        """Rebuild the table from the store, keeping the cursor on the same project."""
        table = self._table
        selected = self.selected_project_id
        session = self.workspace.session
        locks = self.workspace.locks

        table.clear()
        self._row_ids = []
        projects = self.workspace.store.projects if session.authenticated else ()
        for project in projects:
            table.add_row(
                project.name,
                status_cell(project, locks.state(project.id)),
                session.public_url(project),
                project.image_label,
                project.container_id[:12] or "-",
                key=project.id,
            )
            self._row_ids.append(project.id)

        if selected in self._row_ids:
            table.move_cursor(row=self._row_ids.index(selected))

        empty = self._empty
        if not session.authenticated:
            empty.update("Signed out.")
            empty.remove_class("hidden")
        elif self._loading:
            empty.update("Loading projects...")
            empty.remove_class("hidden")
        elif not self._row_ids:
            empty.update(
                "No projects found.\nGet started by creating your first application (press n)."
            )
            empty.remove_class("hidden")
        else:
            empty.add_class("hidden")

        self._greeting.update(session.greeting)

    @property
    def selected_project_id(self) -> Optional[str]:
        if not self._row_ids:
            return None
        row = self._table.cursor_row
        if 0 <= row < len(self._row_ids):
            return self._row_ids[row]
        return None

    @property
    def selected_project(self) -> Optional[Project]:
        project_id = self.selected_project_id
        return self.workspace.store.get(project_id) if project_id else None

    def _require_selection(self) -> Optional[Project]:
        project = self.selected_project
        if project is None:
            self.notify("Select a project first", severity="warning")
        return project

    def report(self, outcome: Outcome, success: Optional[str] = None) -> None:
        """Surface an outcome: errors block with a long timeout, busy is silent."""
        if outcome.status is OutcomeStatus.FAILED and outcome.error:
            severity = "warning" if outcome.error.kind is ErrorKind.VALIDATION else "error"
            self.notify(str(outcome.error), severity=severity, timeout=10)
        elif outcome.succeeded and success:
            self.notify(success)

    # -- loading ----------------------------------------------------------

    @work(exclusive=True, group="load")
    async def load(self) -> None:
        """Startup load of projects and identity."""
        self._loading = True
        self.render_projects()
        try:
            await self.workspace.startup()
        except DeckError as e:
            self._loading = False
            self.render_projects()
            if isinstance(e, ServerRejection) and e.is_unauthorized:
                self.show_login()
                return
            self.notify(f"Failed to load projects: {e}", severity="error", timeout=10)
            return
        self._loading = False
        self.render_projects()

    def show_login(self) -> None:
        def handle_result(signed_in: Optional[bool]) -> None:
            if signed_in:
                self.load()
            else:
                self.exit()

        self.push_screen(LoginScreen(self.workspace), handle_result)

    def action_refresh(self) -> None:
        self.refresh_projects()

    @work(group="refresh")
    async def refresh_projects(self) -> None:
        try:
            await self.workspace.refresh()
        except DeckError as e:
            self.notify(str(e), severity="error", timeout=10)
            return
        self.notify("Refreshed project list")

    # -- lifecycle actions ------------------------------------------------

    def action_toggle_running(self) -> None:
        project = self._require_selection()
        if project is None:
            return
        action = ProjectAction.STOP if project.is_running else ProjectAction.START
        self.dispatch_action(project.id, action)

    def action_deploy(self) -> None:
        project = self._require_selection()
        if project is None:
            return
        self.dispatch_action(project.id, ProjectAction.DEPLOY)

    @work(group="actions")
    async def dispatch_action(self, project_id: str, action: ProjectAction) -> None:
        outcome = await self.workspace.dispatcher.dispatch(project_id, action)
        project = self.workspace.store.get(project_id)
        name = project.name if project else project_id
        self.report(outcome, f"{action.value} {name}: done")

    # -- create / edit ----------------------------------------------------

    def action_new_project(self) -> None:
        self.workspace.forms.open_create()
        self._show_form()

    def action_edit_project(self) -> None:
        project = self._require_selection()
        if project is None:
            return
        self.workspace.forms.open_edit(project)
        self._show_form()

    def _show_form(self) -> None:
        forms = self.workspace.forms
        done = "Project updated. Redeploy to apply." if forms.buffer.is_edit else "Project created"

        def handle_result(outcome: Optional[Outcome]) -> None:
            if outcome is None:
                return
            self.report(outcome, done)

        self.push_screen(
            ProjectFormScreen(
                forms,
                self.workspace.session.identity.base_domain,
                send_in_background=lambda: self.submit_form(done),
            ),
            handle_result,
        )

    @work(group="forms")
    async def submit_form(self, success: str) -> None:
        """Submit the form after its screen was already closed."""
        self.report(await self.workspace.forms.submit(), success)

    # -- delete -----------------------------------------------------------

    def action_delete(self) -> None:
        project = self._require_selection()
        if project is None:
            return
        self.delete_project(project.id)

    @work(group="deletes")
    async def delete_project(self, project_id: str) -> None:
        async def confirm(project: Optional[Project], pid: str) -> bool:
            return bool(await self.push_screen_wait(
                ConfirmDeleteScreen(DeleteController.prompt(project, pid))
            ))

        outcome = await self.workspace.deleter.request_delete(project_id, confirm=confirm)
        self.report(outcome, "Project deleted")

    # -- misc -------------------------------------------------------------

    def action_open_url(self) -> None:
        """Open the selected project's public URL in the system browser."""
        project = self._require_selection()
        if project is None:
            return
        url = self.workspace.session.public_url(project)
        webbrowser.open(url)
        self.notify(f"Opening {url}")

    def action_logout(self) -> None:
        """Forget the credential and return to the sign-in form."""
        self.workspace.logout()
        self.render_projects()
        self.show_login()

"""Create/edit form controller.

One buffer serves both modes; an empty ``id`` means create. Only one form
can be open at a time.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Union

from tenantdeck.client import ControlPlaneClient
from tenantdeck.errors import DeckError, ValidationFailure
from tenantdeck.models import DEFAULT_IMAGE, DEFAULT_PORT, Project, ProjectPayload
from tenantdeck.outcome import Outcome
from tenantdeck.store import ProjectStore

logger = logging.getLogger(__name__)

EDIT_CAVEAT = "Changes take effect on the next deploy."


class FormMode(str, Enum):
    CLOSED = "closed"
    CREATE = "create"
    EDIT = "edit"


@dataclass
class FormBuffer:
    """Transient input buffer. ``port`` may be a string while being edited."""

    id: str = ""
    name: str = ""
    image: str = DEFAULT_IMAGE
    subdomain: str = ""
    port: Union[int, str] = DEFAULT_PORT

    @property
    def is_edit(self) -> bool:
        return bool(self.id)

    @classmethod
    def from_project(cls, project: Project) -> "FormBuffer":
        return cls(
            id=project.id,
            name=project.name,
            image=project.image_name,
            subdomain=project.subdomain,
            port=project.container_port,
        )


def coerce_port(value: Union[int, str], operation: str, project_id: Optional[str] = None) -> int:
    """Turn the buffer's port into an integer in [1, 65535]."""
    if isinstance(value, bool):
        raise ValidationFailure("port must be a number", operation, project_id, field="port")
    if isinstance(value, int):
        port = value
    else:
        text = str(value).strip()
        try:
            port = int(text)
        except ValueError:
            try:
                as_float = float(text)
            except ValueError:
                raise ValidationFailure(
                    "port must be a number", operation, project_id, field="port"
                ) from None
            if not as_float.is_integer():
                raise ValidationFailure(
                    "port must be a whole number", operation, project_id, field="port"
                )
            port = int(as_float)
    if not 1 <= port <= 65535:
        raise ValidationFailure(
            "port must be between 1 and 65535", operation, project_id, field="port"
        )
    return port


def build_payload(buffer: FormBuffer) -> ProjectPayload:
    """Validate ``buffer`` and produce the request body.

    Raises:
        ValidationFailure: Naming the first missing or invalid field.
    """
    operation = "update" if buffer.is_edit else "create"
    project_id = buffer.id or None
    for field_name in ("name", "subdomain", "image"):
        if not str(getattr(buffer, field_name)).strip():
            raise ValidationFailure(
                f"{field_name} is required", operation, project_id, field=field_name
            )
    return ProjectPayload(
        name=buffer.name.strip(),
        image=buffer.image.strip(),
        subdomain=buffer.subdomain.strip(),
        port=coerce_port(buffer.port, operation, project_id),
    )


class FormController:
    """Owns the form buffer and the visibility of the create/edit form.

    With ``close_on_send`` the form closes as soon as the request is sent
    and a failure leaves the list unsynced until the next refresh. By
    default the form stays open until the outcome is known.
    """

    def __init__(
        self,
        client: ControlPlaneClient,
        store: ProjectStore,
        close_on_send: bool = False,
    ):
        self.client = client
        self.store = store
        self.close_on_send = close_on_send
        self.buffer = FormBuffer()
        self.mode = FormMode.CLOSED
        self.submitting = False
        self.last_error: Optional[DeckError] = None

    @property
    def is_open(self) -> bool:
        return self.mode is not FormMode.CLOSED

    @property
    def title(self) -> str:
        return "Edit Project" if self.mode is FormMode.EDIT else "New Project"

    @property
    def description(self) -> str:
        if self.mode is FormMode.EDIT:
            return f"Update configuration. {EDIT_CAVEAT}"
        return "Deploy a new container instance."

    def open_create(self) -> FormBuffer:
        self.buffer = FormBuffer()
        self.mode = FormMode.CREATE
        self.last_error = None
        return self.buffer

    def open_edit(self, project: Project) -> FormBuffer:
        self.buffer = FormBuffer.from_project(project)
        self.mode = FormMode.EDIT
        self.last_error = None
        return self.buffer

    def update(self, **fields) -> FormBuffer:
        """Set buffer fields. ``id`` is fixed by the open call."""
        if "id" in fields:
            raise ValueError("the form id cannot be edited")
        self.buffer = replace(self.buffer, **fields)
        return self.buffer

    def cancel(self) -> None:
        self.mode = FormMode.CLOSED

    async def submit(self) -> Outcome:
        """Validate and send the buffer.

        Returns:
            ``failed`` with a ValidationFailure if the buffer is invalid (no
            call made, form stays open); ``busy`` if a submit is already in
            flight; otherwise the outcome of the create/update call.
        """
        operation = "update" if self.buffer.is_edit else "create"
        project_id = self.buffer.id or None
        if not self.is_open:
            return Outcome.failed(ValidationFailure(
                "no form is open", operation, project_id,
            ))
        if self.submitting:
            return Outcome.busy(operation, project_id)

        try:
            payload = build_payload(self.buffer)
        except ValidationFailure as e:
            self.last_error = e
            return Outcome.failed(e)

        submitted = self.buffer
        self.submitting = True
        self.last_error = None
        if self.close_on_send:
            self.mode = FormMode.CLOSED
        try:
            try:
                if project_id:
                    await self.client.update_project(project_id, payload)
                else:
                    await self.client.create_project(payload)
            except DeckError as e:
                logger.warning("%s", e)
                self.last_error = e
                return Outcome.failed(e)

            logger.info("%s of %r accepted", operation, payload.subdomain)
            if self.buffer is submitted:
                self.mode = FormMode.CLOSED
            try:
                await self.store.invalidate_and_reload()
            except DeckError as e:
                return Outcome.failed(e)
            return Outcome.ok(operation, project_id)
        finally:
            self.submitting = False

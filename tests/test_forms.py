"""Tests for the create/edit form controller."""

import asyncio

import pytest

from conftest import FakeClient, make_project
from tenantdeck.errors import ErrorKind, ServerRejection, ValidationFailure
from tenantdeck.forms import FormBuffer, FormController, FormMode, build_payload, coerce_port
from tenantdeck.outcome import OutcomeStatus
from tenantdeck.store import ProjectStore


@pytest.fixture
def forms(fake_client: FakeClient, fake_store: ProjectStore) -> FormController:
    return FormController(fake_client, fake_store)


class TestCoercePort:
    """Tests for port coercion."""

    @pytest.mark.parametrize("value,expected", [
        (80, 80),
        ("8080", 8080),
        (" 443 ", 443),
        ("3000.0", 3000),
        (65535, 65535),
    ])
    def test_valid(self, value, expected) -> None:
        """Test accepted port spellings."""
        assert coerce_port(value, "create") == expected

    @pytest.mark.parametrize("value", ["", "abc", "80.5", 0, 65536, "-1", True])
    def test_invalid(self, value) -> None:
        """Test rejected ports name the field."""
        with pytest.raises(ValidationFailure) as exc_info:
            coerce_port(value, "create")
        assert exc_info.value.field == "port"


class TestBuildPayload:
    """Tests for buffer validation."""

    def test_defaults(self) -> None:
        """Test a fresh buffer carries the default image and port."""
        buffer = FormBuffer()
        assert buffer.image == "nginx:alpine"
        assert buffer.port == 80
        assert buffer.is_edit is False

    def test_trims_fields(self) -> None:
        """Test surrounding whitespace is stripped."""
        payload = build_payload(FormBuffer(name=" Blog ", subdomain=" blog ", image=" nginx ", port="81"))
        assert payload.model_dump() == {"name": "Blog", "image": "nginx", "subdomain": "blog", "port": 81}

    @pytest.mark.parametrize("field", ["name", "subdomain", "image"])
    def test_required_fields(self, field: str) -> None:
        """Test each text field is required."""
        values = {"name": "Blog", "subdomain": "blog", "image": "nginx:alpine"}
        values[field] = "   "
        with pytest.raises(ValidationFailure) as exc_info:
            build_payload(FormBuffer(**values))
        assert exc_info.value.field == field
        assert exc_info.value.operation == "create"

    def test_edit_operation(self) -> None:
        """Test failures on an edit buffer name the update and project."""
        with pytest.raises(ValidationFailure) as exc_info:
            build_payload(FormBuffer(id="p1", name="", subdomain="x", image="y"))
        assert exc_info.value.operation == "update"
        assert exc_info.value.project_id == "p1"


class TestFormController:
    """Tests for FormController."""

    def test_open_create(self, forms: FormController) -> None:
        """Test opening a create form resets the buffer."""
        forms.buffer = FormBuffer(id="old", name="x")
        forms.open_create()
        assert forms.mode is FormMode.CREATE
        assert forms.buffer == FormBuffer()
        assert forms.title == "New Project"

    def test_open_edit(self, forms: FormController) -> None:
        """Test opening an edit form copies the project."""
        project = make_project("p1", "Blog", "blog", image="redis:7", port=6379)
        forms.open_edit(project)
        assert forms.mode is FormMode.EDIT
        assert forms.buffer == FormBuffer(id="p1", name="Blog", image="redis:7", subdomain="blog", port=6379)
        assert "next deploy" in forms.description

    def test_id_not_editable(self, forms: FormController) -> None:
        """Test the id field is fixed by open."""
        forms.open_create()
        with pytest.raises(ValueError):
            forms.update(id="p9")

    def test_cancel(self, forms: FormController) -> None:
        """Test cancel closes without a call."""
        forms.open_create()
        forms.cancel()
        assert forms.is_open is False

    @pytest.mark.asyncio
    async def test_submit_create(self, forms: FormController, fake_client: FakeClient) -> None:
        """Test a valid create sends one call, closes and resyncs."""
        forms.open_create()
        forms.update(name="Api", subdomain="api", port="9000")
        outcome = await forms.submit()

        assert outcome.status is OutcomeStatus.OK
        assert outcome.operation == "create"
        assert [c[0] for c in fake_client.calls] == ["create", "list"]
        payload = fake_client.calls[0][1]
        assert payload.port == 9000
        assert payload.image == "nginx:alpine"
        assert forms.is_open is False

    @pytest.mark.asyncio
    async def test_submit_update(self, forms: FormController, fake_client: FakeClient) -> None:
        """Test an edit form issues an update for its id."""
        forms.open_edit(make_project("p1"))
        forms.update(image="nginx:1.27")
        outcome = await forms.submit()

        assert outcome.succeeded
        assert fake_client.calls[0][0] == "update"
        assert fake_client.calls[0][1] == "p1"
        assert fake_client.calls[0][2].image == "nginx:1.27"

    @pytest.mark.asyncio
    async def test_validation_failure_makes_no_call(
        self, forms: FormController, fake_client: FakeClient
    ) -> None:
        """Test an invalid buffer stays open and issues nothing."""
        forms.open_create()
        forms.update(name="Api", subdomain="", port="80")
        outcome = await forms.submit()

        assert outcome.error_kind is ErrorKind.VALIDATION
        assert outcome.error.field == "subdomain"
        assert fake_client.calls == []
        assert forms.is_open is True
        assert forms.last_error is outcome.error

    @pytest.mark.asyncio
    async def test_edit_with_empty_name_rejected(
        self, forms: FormController, fake_client: FakeClient, fake_store: ProjectStore
    ) -> None:
        """Test clearing the name on edit is refused before any call."""
        await fake_store.fetch_all()
        before = fake_store.projects
        fake_client.calls.clear()

        forms.open_edit(fake_store.get("p1"))
        forms.update(name="")
        outcome = await forms.submit()

        assert outcome.error_kind is ErrorKind.VALIDATION
        assert outcome.error.field == "name"
        assert forms.mode is FormMode.EDIT
        assert fake_client.calls == []
        assert fake_store.projects == before

    @pytest.mark.asyncio
    async def test_submit_without_open_form(self, forms: FormController, fake_client: FakeClient) -> None:
        """Test submitting a closed form is refused."""
        outcome = await forms.submit()
        assert outcome.error_kind is ErrorKind.VALIDATION
        assert fake_client.calls == []

    @pytest.mark.asyncio
    async def test_server_failure_keeps_form_open(
        self, forms: FormController, fake_client: FakeClient
    ) -> None:
        """Test a rejected create keeps the input and skips the reload."""
        fake_client.failures["create"] = ServerRejection(
            "subdomain 'api' is already in use", "create", status_code=409
        )
        forms.open_create()
        forms.update(name="Api", subdomain="api")
        outcome = await forms.submit()

        assert outcome.error_kind is ErrorKind.SERVER
        assert forms.is_open is True
        assert forms.buffer.subdomain == "api"
        assert fake_client.count("list") == 0

    @pytest.mark.asyncio
    async def test_close_on_send(self, fake_client: FakeClient, fake_store: ProjectStore) -> None:
        """Test the close-on-send mode hides the form before the outcome."""
        forms = FormController(fake_client, fake_store, close_on_send=True)
        fake_client.gates["create"] = asyncio.Event()
        fake_client.failures["create"] = ServerRejection("nope", "create", status_code=500)
        forms.open_create()
        forms.update(name="Api", subdomain="api")

        task = asyncio.create_task(forms.submit())
        await asyncio.sleep(0)
        assert forms.is_open is False
        assert forms.submitting is True

        fake_client.gates["create"].set()
        outcome = await task
        assert outcome.status is OutcomeStatus.FAILED
        assert forms.is_open is False
        assert fake_client.count("list") == 0

    @pytest.mark.asyncio
    async def test_double_submit_dropped(self, forms: FormController, fake_client: FakeClient) -> None:
        """Test a second submit while one is in flight makes no call."""
        fake_client.gates["create"] = asyncio.Event()
        forms.open_create()
        forms.update(name="Api", subdomain="api")

        first = asyncio.create_task(forms.submit())
        await asyncio.sleep(0)
        second = await forms.submit()
        assert second.status is OutcomeStatus.BUSY

        fake_client.gates["create"].set()
        assert (await first).succeeded
        assert fake_client.count("create") == 1

    @pytest.mark.asyncio
    async def test_reopened_form_not_closed_by_late_success(
        self, fake_client: FakeClient, fake_store: ProjectStore
    ) -> None:
        """Test a form reopened during a send is left open when it completes."""
        forms = FormController(fake_client, fake_store, close_on_send=True)
        fake_client.gates["create"] = asyncio.Event()
        forms.open_create()
        forms.update(name="Api", subdomain="api")

        task = asyncio.create_task(forms.submit())
        await asyncio.sleep(0)
        forms.open_edit(make_project("p2", "Shop", "shop"))

        fake_client.gates["create"].set()
        assert (await task).succeeded
        assert forms.mode is FormMode.EDIT
        assert forms.buffer.id == "p2"

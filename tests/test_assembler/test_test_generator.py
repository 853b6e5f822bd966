"""Tests for pytest skeleton generation."""

import ast
from pathlib import Path

import pytest

from unit_skeleton.analyzer import analyze_file, analyze_source
from unit_skeleton.assembler.test_generator import generate_test_file


@pytest.fixture
def fixtures_path():
    return Path(__file__).parent.parent / "fixtures" / "sample_classes"


class TestGenerateTestFile:
    def given_analysis(self, fixtures_path, name):
        self.analysis = analyze_file(fixtures_path / name)

    def when_test_file_is_generated(self, method=None):
        self.content = generate_test_file(self.analysis, method=method)

    def then_content_is_valid_python(self):
        ast.parse(self.content)

    def then_content_contains(self, *snippets):
        for snippet in snippets:
            assert snippet in self.content, snippet

    def then_content_lacks(self, *snippets):
        for snippet in snippets:
            assert snippet not in self.content, snippet

    def test_generates_valid_module(self, fixtures_path):
        """The generated module parses and imports the class."""
        self.given_analysis(fixtures_path, "order_service.py")
        self.when_test_file_is_generated()
        self.then_content_is_valid_python()
        self.then_content_contains(
            "from unittest.mock import AsyncMock, MagicMock, patch",
            "import pytest",
            "from order_service import OrderService",
            "class TestOrderService:",
        )

    def test_services_get_one_fixture_per_dependency(self, fixtures_path):
        """Injected classes receive their constructor arguments as fixtures."""
        self.given_analysis(fixtures_path, "order_service.py")
        self.when_test_file_is_generated()
        self.then_content_contains(
            "def api():\n    return MagicMock()",
            "def retries():\n    return 0",
            "def service(api, notifier, retries):\n    return OrderService(api, notifier, retries)",
        )

    def test_generates_one_test_per_accessor_and_method(self, fixtures_path):
        """Tests follow accessor and method declaration order."""
        self.given_analysis(fixtures_path, "order_service.py")
        self.when_test_file_is_generated()
        names = [
            "test_should_create",
            "test_should_run_getter_total",
            "test_should_run_getter_status",
            "test_should_run_setter_status",
            "test_should_run_place_order",
            "test_should_run_cancel",
            "test_should_run_sync",
        ]
        positions = [self.content.index(f"def {name}(self, service)") for name in names]
        assert positions == sorted(positions)

    def test_presets_props_and_assigns_dependency_spies(self, fixtures_path):
        """Uninitialized attributes and dependency members are set before the call."""
        self.given_analysis(fixtures_path, "order_service.py")
        self.when_test_file_is_generated(method="cancel")
        self.then_content_contains(
            "        service.session = MagicMock()\n",
            "        service.api.client.delete = MagicMock(name='api.client.delete')\n",
            "        service.notifier.address = 'address'\n",
        )

    def test_patches_globals_and_asserts_spies(self, fixtures_path):
        """Module globals are patched around the call and every spy is asserted."""
        self.given_analysis(fixtures_path, "order_service.py")
        self.when_test_file_is_generated(method="place_order")
        self.then_content_is_valid_python()
        self.then_content_contains(
            "patch(\"order_service.Order\", MagicMock(name='Order')) as mock_Order,",
            'patch("order_service.uuid") as mock_uuid,',
            'patch("order_service.logger") as mock_logger,',
            "mock_uuid.uuid4 = MagicMock(name='uuid.uuid4')",
            "service.place_order(0, [])",
            "service.api.save.assert_called()",
            "mock_Order.assert_called()",
            "mock_logger.info.assert_called()",
        )

    def test_async_methods_are_awaited(self, fixtures_path):
        """Async methods get an asyncio marker, await and assert_awaited."""
        self.given_analysis(fixtures_path, "order_service.py")
        self.when_test_file_is_generated(method="sync")
        self.then_content_contains(
            "    @pytest.mark.asyncio\n    async def test_should_run_sync(self, service):",
            "service.api.fetch_all = AsyncMock(name='api.fetch_all')",
            "await service.sync()",
            "service.api.fetch_all.assert_awaited()",
            "assert service.synced == True",
        )

    def test_accessors_are_read_and_assigned(self, fixtures_path):
        """Getters are read; setters are assigned a synthesized value."""
        self.given_analysis(fixtures_path, "order_service.py")
        self.when_test_file_is_generated(method="status")
        self.then_content_contains(
            "service._status = '_status'",
            "_ = service.status",
            "service.status = ''",
            "service.notifier.publish.assert_called()",
        )

    def test_method_option_limits_output(self, fixtures_path):
        """Only the requested test is rendered."""
        self.given_analysis(fixtures_path, "order_service.py")
        self.when_test_file_is_generated(method="cancel")
        self.then_content_contains("def test_should_run_cancel(")
        self.then_content_lacks("test_should_create", "test_should_run_place_order")

    def test_unknown_method_raises(self, fixtures_path):
        """Asking for a missing method is an error."""
        self.given_analysis(fixtures_path, "order_service.py")
        with pytest.raises(ValueError, match="no method or accessor named 'missing'"):
            self.when_test_file_is_generated(method="missing")

    def test_plain_classes_pass_arguments_inline(self, fixtures_path):
        """Plain classes are constructed inline in an obj fixture."""
        self.given_analysis(fixtures_path, "report_writer.py")
        self.when_test_file_is_generated()
        self.then_content_is_valid_python()
        self.then_content_contains(
            "def obj():\n    return ReportWriter('', 0)",
            "with patch(\"builtins.open\", MagicMock(name='open')) as mock_open:",
            "obj.write({})",
            "mock_open.assert_called()",
        )

    def test_pipes_use_pipe_fixture(self, fixtures_path):
        """Pipes are constructed inline in a pipe fixture."""
        self.given_analysis(fixtures_path, "temperature_pipe.py")
        self.when_test_file_is_generated()
        self.then_content_contains(
            "def pipe():\n    return TemperaturePipe()",
            "pipe.transform(0.0, '')",
        )

    def test_loops_over_spies_get_one_element(self, fixtures_path):
        """A spy iterated by a loop returns one item so the loop body runs."""
        self.given_analysis(fixtures_path, "batch_job.py")
        self.when_test_file_is_generated(method="refresh")
        self.then_content_contains(
            "obj.store.pending = MagicMock(name='store.pending', return_value=[MagicMock()])",
            "obj.refresh()",
            "obj.store.save.assert_called()",
        )

    def test_generator_methods_are_consumed(self, fixtures_path):
        """Generator methods are drained with list() before spies are checked."""
        self.given_analysis(fixtures_path, "batch_job.py")
        self.when_test_file_is_generated(method="drain")
        self.then_content_contains(
            "_ = list(obj.drain())",
            "obj.store.clear.assert_called()",
        )

    def test_async_generator_methods_are_iterated(self):
        """Async generators are consumed with an async comprehension."""
        self.analysis = analyze_source(
            "class Feed:\n"
            "    def __init__(self, api):\n"
            "        self.api = api\n"
            "\n"
            "    async def stream(self):\n"
            "        yield await self.api.next_row()\n",
            module_path="feed",
        )
        self.when_test_file_is_generated()
        self.then_content_is_valid_python()
        self.then_content_contains(
            "@pytest.mark.asyncio",
            "_ = [item async for item in obj.stream()]",
            "obj.api.next_row.assert_awaited()",
        )
        self.then_content_lacks("await obj.stream()")

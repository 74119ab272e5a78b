"""Owner-scoped collection of test snippets run against shared main code.

Every test runs in its own invocation with a brand-new namespace into which
the main code is replayed, so no state, exception or monkey-patch can leak
from one test into the next. Tests run strictly one after another and each
result is recorded before the next test starts.
"""

import logging
import re
import time
import uuid
from functools import lru_cache
from importlib import resources

from pydantic import ValidationError

from coderunner.config import HarnessSettings, get_settings
from coderunner.errors import InvalidTestError, ProtocolError
from coderunner.harness.store import ActiveTestStore
from coderunner.models import ActiveTest, ActiveTestStatus, SingleTestResult
from coderunner.protocol import TEST_RESULT_MARKERS, decode_block
from coderunner.runtime.invoker import Invoker

_logger = logging.getLogger("coderunner.harness")

TEST_FUNCTION_PATTERN = re.compile(r"def\s+(test_[a-zA-Z0-9_]+)\s*\(")


def extract_test_function_name(code: str) -> str | None:
    match = TEST_FUNCTION_PATTERN.search(code)
    return match.group(1) if match else None


@lru_cache(maxsize=1)
def _script_source() -> str:
    return resources.files("coderunner.harness").joinpath("harness_script.py").read_text(encoding="utf-8")


def build_single_test_script(main_code: str, test_code: str, function_name: str) -> str:
    call = (
        f"run_single_test({main_code!r}, {test_code!r}, {function_name!r}, "
        f"{TEST_RESULT_MARKERS.start!r}, {TEST_RESULT_MARKERS.end!r})"
    )
    return f"{_script_source()}\n\n{call}\n"


def decode_test_result(stdout: str, function_name: str) -> SingleTestResult:
    """Decode one single-test payload and check it belongs to ``function_name``.

    Raises:
        ProtocolError: markers missing, invalid payload, or name mismatch.
    """
    payload = decode_block(stdout, TEST_RESULT_MARKERS)
    try:
        result = SingleTestResult.model_validate(payload)
    except ValidationError as e:
        raise ProtocolError(detail=f"Invalid test result payload: {e}", error_code="invalid_payload") from e
    if result.name != function_name:
        raise ProtocolError(
            detail=f"Result name mismatch. Expected: {function_name}, Got: {result.name}. Raw: {result.output}",
            error_code="name_mismatch",
        )
    return result


class ActiveTestSuite:
    def __init__(
        self,
        invoker: Invoker,
        store: ActiveTestStore,
        owner: str | None = None,
        tests: list[ActiveTest] | None = None,
        settings: HarnessSettings | None = None,
    ) -> None:
        self.invoker = invoker
        self.store = store
        self.owner = owner
        self.settings = settings or get_settings().harness
        self.tests: list[ActiveTest] = list(tests or [])
        self.is_running = False

    @classmethod
    async def load(
        cls,
        invoker: Invoker,
        store: ActiveTestStore,
        owner: str | None = None,
        settings: HarnessSettings | None = None,
    ) -> "ActiveTestSuite":
        """Create a suite holding the collection persisted for ``owner``."""
        suite = cls(invoker, store, owner=owner, settings=settings)
        await suite.reload()
        return suite

    async def reload(self) -> None:
        self.tests = await self.store.load(self.owner) or []

    async def switch_owner(self, owner: str | None) -> None:
        self.owner = owner
        await self.reload()

    def get(self, test_id: str) -> ActiveTest | None:
        return next((t for t in self.tests if t.id == test_id), None)

    async def _persist(self) -> None:
        await self.store.save(self.owner, self.tests)

    async def add(self, code: str, display_name: str | None = None) -> ActiveTest:
        if not code.strip():
            raise InvalidTestError()
        name = display_name or extract_test_function_name(code) or f"Test snippet {int(time.time() * 1000) % 10000}"
        test = ActiveTest(id=str(uuid.uuid4()), name=name, code=code)
        self.tests.append(test)
        await self._persist()
        return test

    async def remove(self, test_id: str) -> None:
        self.tests = [t for t in self.tests if t.id != test_id]
        await self._persist()

    async def run_all(self, main_code: str) -> list[ActiveTest]:
        if not self.tests:
            return self.tests

        manager = self.invoker.manager
        if not manager.is_ready:
            message = str(manager.last_error) if manager.last_error else manager.not_ready_message()
            for test in self.tests:
                test.status = ActiveTestStatus.ERROR
                test.output = message
            await self._persist()
            return self.tests

        self.is_running = True
        try:
            for test in self.tests:
                test.status = ActiveTestStatus.PENDING
                test.output = "Queued..."
            await self._persist()

            for test in list(self.tests):
                test.output = "Running..."
                await self._persist()
                test.status, test.output = await self._run_one(test, main_code)
                await self._persist()
                _logger.info("Test %r finished: %s", test.name, test.status.value)
        finally:
            self.is_running = False
        return self.tests

    async def _run_one(self, test: ActiveTest, main_code: str) -> tuple[ActiveTestStatus, str]:
        function_name = extract_test_function_name(test.code) or test.name
        try:
            result = await self.invoker.invoke(build_single_test_script(main_code, test.code, function_name))
            if not result.success:
                return ActiveTestStatus.ERROR, f"{result.error.kind}: {result.error.message}"
            try:
                single = decode_test_result(result.stdout, function_name)
            except ProtocolError as e:
                return ActiveTestStatus.ERROR, f"Result format error for test '{test.name}': {e.detail}\nRaw output:\n{result.stdout}"
            return ActiveTestStatus(single.status.lower()), single.output
        except Exception as e:
            _logger.exception("Unexpected error running test %r", test.name)
            return ActiveTestStatus.ERROR, f"Unexpected error running test '{test.name}': {e}"

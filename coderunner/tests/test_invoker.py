"""Tests for script execution against the shared runtime."""

import asyncio

import pytest


class TestInvoke:
    """Test basic execution and output capture."""

    @pytest.mark.asyncio
    async def test_stdout_and_return_value(self, invoker):
        result = await invoker.invoke('print("hello")\n1 + 1')
        assert result.success is True
        assert result.stdout == "hello\n"
        assert result.stderr == ""
        assert result.return_value == "2"
        assert result.error is None

    @pytest.mark.asyncio
    async def test_no_return_value_for_statement(self, invoker):
        result = await invoker.invoke("x = 5")
        assert result.success is True
        assert result.return_value is None

    @pytest.mark.asyncio
    async def test_stderr_is_captured(self, invoker):
        result = await invoker.invoke('import sys\nprint("oops", file=sys.stderr)')
        assert result.success is True
        assert result.stdout == ""
        assert result.stderr == "oops\n"

    @pytest.mark.asyncio
    async def test_output_does_not_leak_between_calls(self, invoker):
        first = await invoker.invoke('print("A")')
        second = await invoker.invoke('print("B")')
        assert first.stdout == "A\n"
        assert second.stdout == "B\n"

    @pytest.mark.asyncio
    async def test_globals_do_not_leak_between_calls(self, invoker):
        await invoker.invoke("leftover = 1")
        result = await invoker.invoke("leftover")
        assert result.success is False
        assert result.error.kind == "NameError"

    @pytest.mark.asyncio
    async def test_overlapping_calls_keep_their_own_output(self, invoker):
        first, second = await asyncio.gather(
            invoker.invoke('print("A")'),
            invoker.invoke('print("B")'),
        )
        assert first.stdout == "A\n"
        assert second.stdout == "B\n"


class TestErrors:
    """Test that failures are captured as results, never raised."""

    @pytest.mark.asyncio
    async def test_not_ready_short_circuits(self, runtime_settings):
        from coderunner.runtime import Invoker, RuntimeManager

        manager = RuntimeManager(settings=runtime_settings)
        result = await Invoker(manager).invoke("print('never runs')")
        assert result.success is False
        assert result.stdout == ""
        assert result.error.kind == "EnvironmentNotReady"

    @pytest.mark.asyncio
    async def test_runtime_error(self, invoker):
        result = await invoker.invoke('print("before")\n1 / 0')
        assert result.success is False
        assert result.stdout == "before\n"
        assert result.error.kind == "ZeroDivisionError"
        assert result.error.message == "division by zero"
        assert '"<exec>", line 2' in result.error.raw_trace
        assert "ZeroDivisionError" in result.error.raw_trace

    @pytest.mark.asyncio
    async def test_syntax_error(self, invoker):
        result = await invoker.invoke("def broken(:\n    pass")
        assert result.success is False
        assert result.error.kind == "SyntaxError"
        assert "<exec>" in result.error.raw_trace

    @pytest.mark.asyncio
    async def test_system_exit_is_captured(self, invoker):
        result = await invoker.invoke("import sys\nsys.exit(3)")
        assert result.success is False
        assert result.error.kind == "SystemExit"
        assert result.error.message == "3"

    @pytest.mark.asyncio
    async def test_user_keyboard_interrupt_is_not_a_timeout(self, invoker):
        result = await invoker.invoke("raise KeyboardInterrupt")
        assert result.success is False
        assert result.error.kind == "KeyboardInterrupt"


class TestLibraryModule:
    """Test the per-call virtual library module."""

    @pytest.mark.asyncio
    async def test_library_is_importable(self, invoker):
        library = "def helper():\n    return 41\n"
        result = await invoker.invoke("from thoughtful_code import helper\nhelper() + 1", library_code=library)
        assert result.success is True
        assert result.return_value == "42"

    @pytest.mark.asyncio
    async def test_library_is_scoped_to_one_call(self, invoker):
        await invoker.invoke("import thoughtful_code", library_code="VALUE = 1\n")
        result = await invoker.invoke("import thoughtful_code")
        assert result.success is False
        assert result.error.kind == "ModuleNotFoundError"

    @pytest.mark.asyncio
    async def test_library_is_replaced(self, invoker):
        await invoker.invoke("pass", library_code="VALUE = 1\n")
        result = await invoker.invoke("import thoughtful_code\nthoughtful_code.VALUE", library_code="VALUE = 2\n")
        assert result.return_value == "2"

    @pytest.mark.asyncio
    async def test_library_error_stops_the_call(self, invoker):
        result = await invoker.invoke('print("main ran")', library_code="raise ValueError('bad lib')\n")
        assert result.success is False
        assert result.stdout == ""
        assert result.error.kind == "ValueError"
        assert result.error.message == "bad lib"


class TestTimeout:
    """Test the cooperative execution budget."""

    @pytest.mark.asyncio
    async def test_infinite_loop_times_out(self, invoker):
        from coderunner.runtime import TIMEOUT_MESSAGE

        result = await invoker.invoke('print("started")\nwhile True:\n    pass')
        assert result.success is False
        assert result.error.kind == "Timeout"
        assert result.error.message == TIMEOUT_MESSAGE.format(seconds=0.5)
        assert "0.5 seconds" in result.error.message
        assert result.stdout == "started\n"

    @pytest.mark.asyncio
    async def test_runtime_usable_after_timeout(self, invoker):
        await invoker.invoke("while True:\n    pass")
        result = await invoker.invoke("print('still alive')")
        assert result.success is True
        assert result.stdout == "still alive\n"

    @pytest.mark.asyncio
    async def test_finished_call_budget_is_cancelled(self, invoker):
        """A finished call's budget never fires into the next call."""
        quick = await invoker.invoke("print('quick')")
        await asyncio.sleep(0.6)
        after = await invoker.invoke("total = 0\nfor i in range(1000):\n    total += i\ntotal")
        assert quick.success is True
        assert after.success is True
        assert after.return_value == "499500"

    @pytest.mark.asyncio
    async def test_repeated_timeouts_on_one_runtime(self, invoker):
        for _ in range(2):
            result = await invoker.invoke("while True:\n    pass")
            assert result.error.kind == "Timeout"
            again = await invoker.invoke("print('ok')")
            assert again.stdout == "ok\n"


class TestCancellation:
    """Test callers that give up while the runtime is busy."""

    @pytest.mark.asyncio
    async def test_cancelled_call_output_stays_out_of_next_call(self, invoker):
        pending = asyncio.ensure_future(invoker.invoke("import time\ntime.sleep(0.3)\nprint('A')"))
        await asyncio.sleep(0.1)
        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending

        result = await invoker.invoke("print('B')")
        assert result.success is True
        assert result.stdout == "B\n"

    @pytest.mark.asyncio
    async def test_cancelled_runaway_loop_still_times_out(self, invoker):
        pending = asyncio.ensure_future(invoker.invoke("while True:\n    pass"))
        await asyncio.sleep(0.1)
        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(pending, 5)

        result = await asyncio.wait_for(invoker.invoke("print('after')"), 5)
        assert result.success is True
        assert result.stdout == "after\n"

    @pytest.mark.asyncio
    async def test_wait_for_timeout_on_caller(self, invoker):
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(invoker.invoke("import time\ntime.sleep(0.2)\nprint('late')"), 0.05)

        result = await invoker.invoke("print('next')")
        assert result.stdout == "next\n"

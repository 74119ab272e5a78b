"""Single-test runner executed inside the runtime.

Read as text by the host and followed by one ``run_single_test(...)`` call.
Standard library only.
"""

import json


def run_single_test(main_code: str, test_code: str, function_name: str, start_marker: str, end_marker: str) -> None:
    # Brand-new namespace per test: main code is replayed into it every time.
    namespace: dict = {}
    result = {"name": function_name, "status": "ERROR", "output": ""}

    try:
        exec(compile(main_code, "<main>", "exec"), namespace)
        exec(compile(test_code, "<test>", "exec"), namespace)

        test_function = namespace.get(function_name)
        if not callable(test_function):
            result["output"] = f"Test function '{function_name}' not found or not callable."
        else:
            test_function()
            result["status"] = "PASSED"
    except AssertionError as e_assert:
        result["status"] = "FAILED"
        result["output"] = f"AssertionError: {e_assert}"
    except Exception as e_general:
        result["status"] = "ERROR"
        result["output"] = f"{type(e_general).__name__}: {e_general}"

    print(start_marker)
    print(json.dumps(result))
    print(end_marker)

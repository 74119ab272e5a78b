from coderunner.harness.store import ActiveTestStore, MemoryActiveTestStore, RedisActiveTestStore, storage_key
from coderunner.harness.suite import (
    ActiveTestSuite,
    build_single_test_script,
    decode_test_result,
    extract_test_function_name,
)

__all__ = [
    "ActiveTestStore",
    "ActiveTestSuite",
    "MemoryActiveTestStore",
    "RedisActiveTestStore",
    "build_single_test_script",
    "decode_test_result",
    "extract_test_function_name",
    "storage_key",
]

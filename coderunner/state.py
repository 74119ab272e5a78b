from typing import Optional

import redis.asyncio as redis

from coderunner.harness.store import ActiveTestStore
from coderunner.runtime import Invoker, RuntimeManager

# Global runtime state initialized in main.lifespan
redis_client: Optional[redis.Redis] = None
runtime_manager: Optional[RuntimeManager] = None
invoker: Optional[Invoker] = None
test_store: Optional[ActiveTestStore] = None

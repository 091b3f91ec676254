# run_store.py - Redis-based run record storage
# This file stores and retrieves workflow run results using Redis.

import redis
import logging
from typing import List, Optional

from .models import RunResult, RunStatus
from .config import Settings

logger = logging.getLogger(__name__)

class RunStore:
    def __init__(self, settings: Settings, redis_client: Optional[redis.Redis] = None):
        self.ttl = settings.run_record_ttl
        self.redis_client = redis_client or redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
            password=settings.redis_password,
            decode_responses=True
        )

    async def save_run(self, run: RunResult) -> bool:
        """Store a run record, replacing any earlier snapshot of it."""
        try:
            run_key = f"content:run:{run.run_id}"
            self.redis_client.set(run_key, run.model_dump_json(), ex=self.ttl)

            self.redis_client.sadd("content:runs:all", run.run_id)
            self.redis_client.sadd(f"content:runs:workflow:{run.workflow_id}", run.run_id)
            for status in RunStatus:
                if status != run.status:
                    self.redis_client.srem(f"content:runs:status:{status.value}", run.run_id)
            self.redis_client.sadd(f"content:runs:status:{run.status.value}", run.run_id)

            logger.info(f"Stored run {run.run_id} ({run.status.value})")
            return True

        except Exception as e:
            logger.error(f"Failed to store run {run.run_id}: {str(e)}")
            return False

    async def get_run(self, run_id: str) -> Optional[RunResult]:
        """Retrieve a run record from Redis."""
        try:
            run_data = self.redis_client.get(f"content:run:{run_id}")
            if not run_data:
                return None
            return RunResult.model_validate_json(run_data)

        except Exception as e:
            logger.error(f"Failed to get run {run_id}: {str(e)}")
            return None

    async def list_run_ids(self, status: Optional[RunStatus] = None) -> List[str]:
        try:
            key = f"content:runs:status:{status.value}" if status else "content:runs:all"
            return sorted(self.redis_client.smembers(key))

        except Exception as e:
            logger.error(f"Failed to list runs: {str(e)}")
            return []

    def ping(self) -> bool:
        try:
            return bool(self.redis_client.ping())
        except Exception as e:
            logger.warning(f"Redis ping failed: {str(e)}")
            return False

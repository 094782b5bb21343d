"""
Run Configuration Models

The controller resolves settings and CLI flags into a ``RunConfig``. Every
worker process receives a ``WorkerConfig`` serialized as JSON on stdin, so no
state is inherited implicitly from the parent process.
"""

import os
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from mysql_benchmark.models.query import QueryDefinition


class DatabaseConfig(BaseModel):
    """MySQL connection parameters handed to each worker."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    host: Optional[str] = Field(None, description="Server host")
    port: Optional[int] = Field(None, ge=1, le=65535, description="Server port")
    schema_name: Optional[str] = Field(None, description="Default schema")
    user: Optional[str] = Field(None, description="User name")
    password: Optional[str] = Field(None, description="Password")
    defaults_file: Optional[str] = Field(None, description="Client option file")
    connect_timeout: int = Field(10, ge=1, description="Connect timeout (seconds)")

    def connect_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``mysql.connector.connect``."""
        kwargs: Dict[str, Any] = {
            "connection_timeout": self.connect_timeout,
            "autocommit": True,
        }
        if self.host:
            kwargs["host"] = self.host
        if self.port:
            kwargs["port"] = self.port
        if self.schema_name:
            kwargs["database"] = self.schema_name
        if self.user:
            kwargs["user"] = self.user
        if self.password is not None:
            kwargs["password"] = self.password
        if self.defaults_file and os.path.isfile(self.defaults_file):
            kwargs["option_files"] = self.defaults_file
        return kwargs

    def describe(self) -> str:
        """Connection summary that is safe to log."""
        return (
            f"{self.user or '<default>'}@{self.host or '<default>'}"
            f":{self.port or '<default>'}"
            f"/{self.schema_name or ''}"
        )


class WorkerConfig(BaseModel):
    """Everything a worker process needs, passed explicitly at spawn time."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    worker_index: int = Field(..., ge=0, description="0-based worker number")
    database: DatabaseConfig
    queries: List[QueryDefinition] = Field(..., min_length=1)
    schedule: List[str] = Field(
        ..., min_length=1, description="Query ids in execution order"
    )
    flush_interval_seconds: float = Field(..., gt=0)
    socket_path: str = Field(..., min_length=1, description="Statistics endpoint")
    send_timeout_seconds: float = Field(5.0, gt=0)
    send_retry_limit: int = Field(5, ge=0)
    send_retry_backoff_seconds: float = Field(1.0, ge=0)
    max_payload_bytes: int = Field(4096, ge=512)
    reconnect_delay_seconds: float = Field(1.0, ge=0)
    seed: Optional[int] = Field(None, description="Parameter generator seed")
    log_level: str = Field("WARNING")
    debug: bool = False
    verbose: bool = False

    @model_validator(mode="after")
    def validate_schedule_ids(self):
        known = {q.id for q in self.queries}
        unknown = sorted({qid for qid in self.schedule if qid not in known})
        if unknown:
            raise ValueError(f"schedule references unknown query ids: {unknown}")
        return self


class RunConfig(BaseModel):
    """Effective configuration for one benchmark run (controller side)."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    workers: int = Field(1, ge=1, description="Worker process count")
    runtime_seconds: float = Field(60.0, gt=0)
    flush_interval_seconds: float = Field(60.0, gt=0)
    max_schedule_size: int = Field(100, ge=1)
    shuffle_schedule: bool = True
    seed: Optional[int] = None
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    socket_dir: Optional[str] = None
    send_timeout_seconds: float = Field(5.0, gt=0)
    send_retry_limit: int = Field(5, ge=0)
    send_retry_backoff_seconds: float = Field(1.0, ge=0)
    max_payload_bytes: int = Field(4096, ge=512)
    reconnect_delay_seconds: float = Field(1.0, ge=0)
    tick_seconds: float = Field(0.5, gt=0)
    abort_wait_seconds: float = Field(
        10.0, gt=0, description="Wait for started workers when a spawn fails"
    )
    log_level: str = "WARNING"
    debug: bool = False
    verbose: bool = False

    def worker_config(
        self,
        *,
        worker_index: int,
        queries: List[QueryDefinition],
        schedule: List[str],
        socket_path: str,
    ) -> WorkerConfig:
        seed = None if self.seed is None else self.seed + worker_index
        return WorkerConfig(
            worker_index=worker_index,
            database=self.database,
            queries=queries,
            schedule=schedule,
            flush_interval_seconds=self.flush_interval_seconds,
            socket_path=socket_path,
            send_timeout_seconds=self.send_timeout_seconds,
            send_retry_limit=self.send_retry_limit,
            send_retry_backoff_seconds=self.send_retry_backoff_seconds,
            max_payload_bytes=self.max_payload_bytes,
            reconnect_delay_seconds=self.reconnect_delay_seconds,
            seed=seed,
            log_level=self.log_level,
            debug=self.debug,
            verbose=self.verbose,
        )

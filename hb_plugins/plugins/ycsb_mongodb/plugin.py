"""
YCSB against MongoDB workload behavior for hostbench.

Forks a ``mongod`` service, drives the YCSB client through its load and run
phases, parses each phase's summary and shuts the service down gracefully on
every exit path.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import Field

from hb_common.errors import HBError, ResultsParsingError
from hb_runner.engine.context import WorkloadContext
from hb_runner.models.process import ProcessInvocation

from ...interface import BaseWorkloadConfig, SimpleWorkloadBehavior
from .parser import YcsbResultParser

logger = logging.getLogger(__name__)

TOOL_NAME = "YcsbMongoDB"
PHASES = ("load", "run")


class YcsbMongoDBConfig(BaseWorkloadConfig):
    """Configuration for the YCSB/MongoDB workload."""

    jdk_package: str = Field(default="javadevelopmentkit", description="JDK package name")
    mongodb_package: str = Field(default="mongodb", description="MongoDB package name")
    ycsb_package: str = Field(default="ycsb", description="YCSB package name")
    mongod_path: str = Field(
        default="mongodb-linux-x86_64-ubuntu2004-5.0.15/bin/mongod",
        description="mongod binary relative to the MongoDB package",
    )
    ycsb_home: str = Field(
        default="ycsb-0.5.0",
        description="YCSB distribution directory relative to the YCSB package",
    )
    workload_file: str = Field(
        default="workloads/workloada",
        description="YCSB workload definition relative to the YCSB distribution",
    )
    record_count: int = Field(default=1_000_000, gt=0)
    operation_count: int = Field(default=1_000_000, gt=0)
    thread_count: int = Field(default=16, gt=0)
    db_path: Path = Field(
        default=Path("/tmp/mongodb"),
        description="MongoDB data directory when no scratch disk is used",
    )
    log_path: Path = Field(default=Path("/tmp/mongod.log"))
    use_scratch_disk: bool = Field(
        default=False,
        description="Place the data directory on the disk selected by disk_filter",
    )
    shutdown_settle_seconds: float = Field(
        default=60.0,
        ge=0,
        description="Delay after shutdown so ports and file handles are released",
    )


@dataclass
class MongoDBSession:
    """Per-run paths and service state."""

    mongod: Path
    mongodb_home: Path
    ycsb: Path
    ycsb_home: Path
    java_home: Path
    db_path: Path
    log_path: Path
    service_started: bool = False
    shut_down: bool = False


class YcsbCommandBuilder:
    """Build the argument lists of every process this workload launches."""

    def __init__(self, config: YcsbMongoDBConfig, session: MongoDBSession):
        self.config = config
        self.session = session

    def make_executable(self) -> ProcessInvocation:
        return ProcessInvocation.of(
            "chmod", "+x", self.session.ycsb.name,
            working_dir=self.session.ycsb.parent,
            elevated=True,
        )

    def create_db_path(self) -> ProcessInvocation:
        return ProcessInvocation.of(
            "mkdir", "-p", self.session.db_path,
            working_dir=self.session.mongodb_home,
            elevated=True,
        )

    def start_service(self) -> ProcessInvocation:
        return ProcessInvocation.of(
            self.session.mongod,
            "--fork",
            "--dbpath", self.session.db_path,
            "--logpath", self.session.log_path,
            working_dir=self.session.mongodb_home,
            elevated=True,
        )

    def shutdown_service(self) -> ProcessInvocation:
        return ProcessInvocation.of(
            self.session.mongod,
            "--dbpath", self.session.db_path,
            "--shutdown",
            working_dir=self.session.mongodb_home,
            elevated=True,
        )

    def remove_artifacts(self) -> ProcessInvocation:
        return ProcessInvocation.of(
            "rm", "-rf", self.session.db_path, self.session.log_path,
            working_dir=self.session.mongodb_home,
            elevated=True,
        )

    def phase(self, phase: str) -> ProcessInvocation:
        workload = self.session.ycsb_home / self.config.workload_file
        args: List[object] = [phase, "mongodb", "-s", "-P", workload]
        if phase == "run":
            args += ["-p", f"operationcount={self.config.operation_count}"]
        args += [
            "-p", f"recordcount={self.config.record_count}",
            "-threads", self.config.thread_count,
        ]
        return ProcessInvocation.of(
            self.session.ycsb, *args,
            working_dir=self.session.ycsb_home,
            elevated=True,
        )


class YcsbMongoDBBehavior(SimpleWorkloadBehavior):
    """Behavior definition for YCSB against a forked MongoDB service."""

    NAME = "ycsb_mongodb"
    DESCRIPTION = "YCSB load/run phases against a local mongod"
    CONFIG_CLS = YcsbMongoDBConfig

    def required_packages(self, config: YcsbMongoDBConfig) -> List[str]:
        return [config.jdk_package, config.mongodb_package, config.ycsb_package]

    def initialize(self, context: WorkloadContext) -> None:
        config: YcsbMongoDBConfig = context.config
        mongodb_home = context.packages[config.mongodb_package]
        ycsb_home = context.packages[config.ycsb_package] / config.ycsb_home
        db_path = config.db_path
        if config.use_scratch_disk:
            db_path = context.ensure_scratch_space(config.disk_filter, "mongodb")

        session = MongoDBSession(
            mongod=mongodb_home / config.mongod_path,
            mongodb_home=mongodb_home,
            ycsb=ycsb_home / "bin" / "ycsb",
            ycsb_home=ycsb_home,
            java_home=context.packages[config.jdk_package],
            db_path=db_path,
            log_path=config.log_path,
        )
        context.session = session
        context.runner.set_environment("JAVA_HOME", str(session.java_home))

        commands = YcsbCommandBuilder(config, session)
        context.run(commands.make_executable())
        context.run(commands.create_db_path())

    def execute(self, context: WorkloadContext) -> None:
        session: MongoDBSession = context.session
        commands = YcsbCommandBuilder(context.config, session)
        parser = YcsbResultParser()

        context.run(commands.start_service())
        session.service_started = True

        for phase in PHASES:
            context.raise_if_stopped(f"ycsb {phase}")
            invocation = commands.phase(phase)
            start = datetime.now(timezone.utc)
            result = context.run(invocation)
            end = datetime.now(timezone.utc)
            try:
                metrics = parser.parse(result.stdout)
            except ResultsParsingError:
                self._shutdown_after_failure(context)
                raise
            context.emit_metrics(
                TOOL_NAME,
                start,
                end,
                metrics,
                category=phase,
                context={"phase": phase, "arguments": invocation.argument_string},
            )

        self.shutdown(context)

    def extra_teardown(self, context: WorkloadContext) -> None:
        self.shutdown(context)

    def shutdown(self, context: WorkloadContext) -> None:
        """
        Stop mongod in-protocol, remove its files, then let the host settle.

        Every step is attempted even when an earlier one fails; the first
        failure is raised once the settle pause is over.
        """
        session: Optional[MongoDBSession] = context.session
        if session is None or not session.service_started or session.shut_down:
            return
        session.shut_down = True
        commands = YcsbCommandBuilder(context.config, session)
        logger.info("Shutting down mongod at %s", session.db_path)
        errors: List[HBError] = []
        for invocation in (commands.shutdown_service(), commands.remove_artifacts()):
            try:
                context.run(invocation, cancellable=False)
            except HBError as exc:
                logger.error("mongod shutdown step '%s' failed: %s", invocation.command_line, exc)
                errors.append(exc)
        context.pause(context.config.shutdown_settle_seconds)
        if errors:
            raise errors[0]

    def _shutdown_after_failure(self, context: WorkloadContext) -> None:
        try:
            self.shutdown(context)
        except HBError as exc:
            context.cleanup.record_failure("mongod shutdown", exc)


PLUGIN = YcsbMongoDBBehavior()

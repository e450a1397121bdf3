"""
Local chain node lifecycle for end-to-end runs.

Starts an Anvil-compatible node as a subprocess and blocks until its
JSON-RPC endpoint answers with the configured chain id. Node startup is
the flaky part, so readiness polling goes through the retry executor.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import socket
from types import TracebackType
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, Field

from walletpilot.errors import AggregateFailureError, NodeStartupError
from walletpilot.retry import RetryPolicy, execute_with_retry

logger = structlog.get_logger(__name__)

STARTUP_POLICY = RetryPolicy(
    base_delay_ms=100,
    max_delay_ms=2000,
    multiplier=1.5,
    jitter=False,
    max_attempts=30,
)


def find_free_port(host: str = "127.0.0.1") -> int:
    """Ask the OS for an unused TCP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]


class NodeConfig(BaseModel):
    """Local node launch configuration."""

    binary: str = Field(default="anvil", min_length=1, description="Node executable")
    host: str = Field(default="127.0.0.1", description="Interface to bind")
    port: int = Field(default=0, ge=0, le=65535, description="RPC port, 0 picks a free one")
    chain_id: int = Field(default=31337, gt=0, description="Expected chain id")
    block_time: float | None = Field(default=None, gt=0, description="Seconds between blocks")
    fork_url: str | None = Field(default=None, description="Upstream RPC to fork from")
    extra_args: list[str] = Field(default_factory=list, description="Additional CLI arguments")
    rpc_timeout_s: float = Field(default=2.0, gt=0, description="Per-request RPC timeout")
    stop_timeout_s: float = Field(default=5.0, gt=0, description="Grace period before kill")
    startup_policy: RetryPolicy = Field(default=STARTUP_POLICY, description="Readiness retry policy")


class LocalNodeManager:
    """
    Owns one local node process.

    Usage:
        async with LocalNodeManager(NodeConfig(chain_id=1337)) as node:
            print(node.rpc_url)
    """

    def __init__(
        self,
        config: NodeConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or NodeConfig()
        self._transport = transport
        self._port = self._config.port
        self._process: asyncio.subprocess.Process | None = None
        self._request_ids = itertools.count(1)
        self._log = logger.bind(component="local_node")

    @property
    def config(self) -> NodeConfig:
        return self._config

    @property
    def port(self) -> int:
        return self._port

    @property
    def rpc_url(self) -> str:
        return f"http://{self._config.host}:{self._port}"

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    def build_command(self) -> list[str]:
        """Command line for the node process."""
        cfg = self._config
        command = [
            cfg.binary,
            "--host", cfg.host,
            "--port", str(self._port),
            "--chain-id", str(cfg.chain_id),
        ]
        if cfg.block_time is not None:
            command += ["--block-time", str(cfg.block_time)]
        if cfg.fork_url:
            command += ["--fork-url", cfg.fork_url]
        return command + list(cfg.extra_args)

    async def rpc(self, method: str, params: list[Any] | None = None) -> Any:
        """Send one JSON-RPC request to the node and return its result."""
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params or [],
        }
        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=self._config.rpc_timeout_s,
        ) as client:
            response = await client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            body = response.json()

        if body.get("error"):
            raise NodeStartupError(f"RPC {method} failed: {body['error']}")
        return body.get("result")

    async def start(self) -> None:
        """
        Spawn the node and wait until it serves the configured chain.

        Raises:
            NodeStartupError: If the binary is missing or the node never
                became ready
        """
        if self.is_running:
            return

        if self._port == 0:
            self._port = find_free_port(self._config.host)

        command = self.build_command()
        self._log.info("Starting local node", command=" ".join(command), port=self._port)

        try:
            self._process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except FileNotFoundError as e:
            raise NodeStartupError(f"Node binary not found: {self._config.binary}") from e

        try:
            await self.wait_until_ready()
        except BaseException:
            await self.stop()
            raise

        self._log.info("Local node ready", rpc_url=self.rpc_url, chain_id=self._config.chain_id)

    async def wait_until_ready(self) -> int:
        """
        Poll eth_chainId until the node answers.

        Polling stops as soon as a spawned node process exits, without
        spending the rest of the retry budget.

        Returns:
            The chain id reported by the node

        Raises:
            NodeStartupError: If the node exited, never answered, or reports
                a different chain id
        """

        async def probe() -> int:
            return int(await self.rpc("eth_chainId"), 16)

        def on_retry(attempt: int, delay_ms: int) -> None:
            self._log.debug("Node not ready yet", attempt=attempt + 1, delay_ms=delay_ms)

        process = self._process
        readiness = asyncio.create_task(
            execute_with_retry(probe, self._config.startup_policy, on_retry),
            name="node-ready",
        )
        watchers = {readiness}
        if process is not None:
            watchers.add(asyncio.create_task(process.wait(), name="node-exit"))

        try:
            done, _ = await asyncio.wait(watchers, return_when=asyncio.FIRST_COMPLETED)
        finally:
            pending = [task for task in watchers if not task.done()]
            for task in pending:
                task.cancel()
            for task in pending:
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        if readiness not in done:
            returncode = process.returncode if process is not None else None
            self._log.warning("Node process exited during startup", returncode=returncode)
            raise NodeStartupError(f"Node process exited with code {returncode}")

        try:
            chain_id = readiness.result()
        except AggregateFailureError as e:
            raise NodeStartupError(
                f"Node at {self.rpc_url} not ready after {e.attempts} attempts: {e.last_error}"
            ) from e

        if chain_id != self._config.chain_id:
            raise NodeStartupError(
                f"Node reports chain id {chain_id}, expected {self._config.chain_id}"
            )
        return chain_id

    async def stop(self) -> None:
        """Terminate the node, killing it if it ignores the grace period."""
        process = self._process
        self._process = None
        if process is None or process.returncode is not None:
            return

        self._log.info("Stopping local node", pid=process.pid)
        with contextlib.suppress(ProcessLookupError):
            process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=self._config.stop_timeout_s)
        except asyncio.TimeoutError:
            self._log.warning("Node ignored terminate, killing", pid=process.pid)
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()

    async def __aenter__(self) -> "LocalNodeManager":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

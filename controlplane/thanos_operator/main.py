"""
Thanos operator - Main entry point.

This module starts the operator:
- Cluster client (Kubernetes API or in-memory)
- One Reconciler per role (Querier, Store, Receiver)
- kopf handler registration and the kopf operator loop

Usage:
    python -m controlplane.thanos_operator.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - The cluster client is connected before any handler can fire
    - Graceful shutdown stops kopf before the client is closed
    - All reconcilers share one cluster client and one BuilderDefaults

How to change safely:
    - New roles only need an entry in the Role enum; build_reconcilers
      picks them up
    - Test shutdown sequence thoroughly
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Dict

import json_log_formatter
import kopf

from .cluster import ClusterClient, create_cluster_client
from .config import ClusterBackend, OperatorConfig
from .handlers import register_handlers
from .reconcile import Reconciler
from .resources.kinds import Role

logger = logging.getLogger(__name__)


def setup_logging(config: OperatorConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Operator configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("kopf").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("kubernetes_asyncio").setLevel(logging.WARNING)


def build_reconcilers(client: ClusterClient, config: OperatorConfig) -> Dict[Role, Reconciler]:
    """One reconciler per role, sharing the client and builder defaults."""
    return {
        role: Reconciler(
            role,
            client,
            config.builder,
            orphan_requeue_seconds=config.reconciler.requeue_delay_seconds,
        )
        for role in Role
    }


class Operator:
    """Thanos operator orchestrator.

    Manages the lifecycle of:
    - The cluster client
    - The per-role reconcilers
    - The kopf operator loop

    Attributes:
        config: Operator configuration
        client: Cluster client instance
        reconcilers: Reconciler per role
        registry: kopf registry holding the handlers

    Example:
        >>> operator = Operator()
        >>> await operator.start()
        >>> # Operator is running until request_shutdown()
        >>> await operator.stop()
    """

    def __init__(self, config: OperatorConfig | None = None, client: ClusterClient | None = None) -> None:
        """Initialize the operator.

        Args:
            config: Optional configuration (loaded from env if not provided)
            client: Optional cluster client (created from config if not provided)
        """
        self.config = config or OperatorConfig.from_env()
        self.client: ClusterClient | None = client
        self.reconcilers: Dict[Role, Reconciler] = {}
        self.registry: kopf.OperatorRegistry | None = None
        self._running = False
        self._shutdown_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the operator and block until shutdown is requested."""
        if self._running:
            logger.warning("Operator already running")
            return

        logger.info("Starting Thanos operator")
        self.config.log_config()

        try:
            if self.client is None:
                self.client = create_cluster_client(self.config.cluster)
            await self.client.connect()
            logger.info("Cluster client connected")

            self.reconcilers = build_reconcilers(self.client, self.config)
            self.registry = kopf.OperatorRegistry()
            register_handlers(self.registry, self.reconcilers, self.config)

            self._running = True
            logger.info(
                "Thanos operator started",
                extra={"roles": [r.value for r in self.reconcilers]},
            )

            if self.config.cluster.backend == ClusterBackend.KUBERNETES:
                await self._run_kopf()
            else:
                logger.warning("In-memory backend: no watches are started")
                await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Operator startup failed: {e}", exc_info=True)
            await self.stop()
            raise

    async def _run_kopf(self) -> None:
        namespaces = list(self.config.cluster.namespaces)
        await kopf.operator(
            registry=self.registry,
            standalone=True,
            clusterwide=not namespaces,
            namespaces=namespaces,
            stop_flag=self._shutdown_event,
        )

    async def stop(self) -> None:
        """Stop the operator gracefully."""
        self._shutdown_event.set()

        if self.client is not None and self.client.is_connected:
            await self.client.close()

        if self._running:
            self._running = False
            logger.info("Thanos operator stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def main() -> None:
    """Main entry point."""
    try:
        config = OperatorConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    operator = Operator(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        operator.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        loop.run_until_complete(operator.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(operator.stop())
        loop.close()


if __name__ == "__main__":
    main()

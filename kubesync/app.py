"""Application bootstrap for kubesync.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → K8s client → transport → registration
              → collectors → scheduler → heartbeat → REST

Shutdown runs in reverse order. Each component's stop error is caught and
logged independently so one failing component does not block the others.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING, Any

from kubesync.config import load_config
from kubesync.models.agent import DEFAULT_CLUSTER_ID, AgentInfo
from kubesync.models.config import KubeSyncConfig
from kubesync.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class KubeSyncApp:
    """Application root. Owns every component and coordinates their lifecycle.

    Calling ``stop()`` on an app that was never started, or already
    stopped, is safe.
    """

    def __init__(self, config: KubeSyncConfig | None = None) -> None:
        self.config: KubeSyncConfig | None = config
        self.agent: AgentInfo | None = None

        self._api_client: Any | None = None
        self._transport: Any | None = None
        self._session: Any | None = None
        self._collectors: list[Any] = []
        self._scheduler: Any | None = None
        self._rest_server: Any | None = None

        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self, *, serve: bool = True) -> None:
        """Start all components in dependency order.

        With ``serve=False`` the scheduler loops and the REST API are not
        started; used by one-shot synchronization.

        Raises _ComponentError if a mandatory component cannot start.
        """
        await self._prepare()
        if serve:
            await self._start_scheduler()
            await self._start_heartbeat()
            await self._start_rest()
        self._running = True
        assert self._log is not None
        self._log.info("kubesync started", serve=serve)

    async def _prepare(self) -> None:
        # --- 1. Configuration -------------------------------------------
        if self.config is None:
            self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info("kubesync starting", version=_kubesync_version())

        self.agent = AgentInfo(
            agent_id=self.config.agent_id,
            cluster_id=self.config.cluster_id,
            cluster_name=self.config.cluster_name,
            port=str(self.config.api.port),
            version=_kubesync_version(),
        )

        # --- 3. Kubernetes client ----------------------------------------
        await self._start_k8s_client()

        # --- 4. Transport ------------------------------------------------
        await self._start_transport()

        # --- 5. Registration ---------------------------------------------
        await self._register()

        # --- 6. Collectors -----------------------------------------------
        await self._start_collectors()

    # ------------------------------------------------------------------
    # Component startup helpers
    # ------------------------------------------------------------------

    async def _start_k8s_client(self) -> None:
        """Load in-cluster config or kubeconfig; failure leaves collectors idle."""
        assert self._log is not None
        assert self.agent is not None
        self._log.debug("starting k8s client")
        try:
            import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]
            from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

            try:
                # load_incluster_config() is synchronous in kubernetes-asyncio
                k8s_config.load_incluster_config()
                self._log.info("k8s client configured from in-cluster service account")
            except k8s_config.ConfigException:
                await k8s_config.load_kube_config()
                self._log.info("k8s client configured from kubeconfig")

            self._api_client = k8s_client.ApiClient()
            host = k8s_client.Configuration.get_default_copy().host
            if host:
                self.agent.set_cluster_id_if_absent(f"API_SERVER_{host}")
        except Exception as exc:
            self._log.warning("k8s client unavailable; collectors disabled", error=str(exc))
            self._api_client = None
        self.agent.set_cluster_id_if_absent(DEFAULT_CLUSTER_ID)

    async def _start_transport(self) -> None:
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting transport")
        try:
            from kubesync.transport import TransportClient

            self._transport = TransportClient(
                self.config.transport.endpoint,
                timeout=self.config.transport.timeout_seconds,
                compress=self.config.transport.compress,
            )
            self._log.info("transport started", endpoint=self._transport.base_url)
        except Exception as exc:
            raise _ComponentError("transport", exc) from exc

    async def _register(self) -> None:
        """Register with the control plane; failure is retried by the heartbeat."""
        assert self._log is not None
        assert self.config is not None
        assert self.agent is not None
        from kubesync.transport.session import AgentSession, RegistrationError

        self._session = AgentSession(
            self._transport,
            self.agent,
            period_seconds=self.config.transport.heartbeat_period_seconds,
        )
        try:
            await self._session.connect()
        except RegistrationError as exc:
            self._log.warning("registration failed; reporting without a cid", error=str(exc))

    async def _start_heartbeat(self) -> None:
        assert self._session is not None
        try:
            await self._session.start()
        except Exception as exc:
            raise _ComponentError("heartbeat", exc) from exc

    async def _start_collectors(self) -> None:
        assert self._log is not None
        assert self.config is not None
        assert self.agent is not None
        self._log.debug("starting collectors")
        try:
            from kubesync.collector import build_collectors
            from kubesync.collector.reporter import Reporter
            from kubesync.collector.source import SourceFactory
            from kubesync.scheduler import ReportScheduler

            sources = SourceFactory(self._api_client, self.config.collector.namespaces)
            reporter = Reporter(self._transport, self.agent)
            self._collectors = build_collectors(sources, reporter, self.config.collector)
            self._scheduler = ReportScheduler(
                self._collectors,
                period_seconds=self.config.collector.report_period_seconds,
                enabled=self.config.collector.kinds,
            )
            self._log.info(
                "collectors started",
                kinds=self.config.collector.kinds,
                namespaces=self.config.collector.namespaces,
                k8s_enabled=sources.enabled,
            )
        except Exception as exc:
            raise _ComponentError("collectors", exc) from exc

    async def _start_scheduler(self) -> None:
        assert self._log is not None
        assert self._scheduler is not None
        try:
            await self._scheduler.start()
        except Exception as exc:
            raise _ComponentError("scheduler", exc) from exc

    async def _start_rest(self) -> None:
        """Start the uvicorn REST server."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting rest api")
        try:
            import uvicorn  # type: ignore[import-untyped]

            from kubesync.api import create_app

            fastapi_app = create_app(scheduler=self._scheduler, agent=self.agent, session=self._session)
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest api started", port=self.config.api.port)
        except Exception as exc:
            raise _ComponentError("rest", exc) from exc

    # ------------------------------------------------------------------
    # One-shot synchronization
    # ------------------------------------------------------------------

    async def sync_once(self) -> None:
        """Start without serving, run every enabled kind once, then stop."""
        try:
            await self.start(serve=False)
            assert self._scheduler is not None
            await self._scheduler.run_once()
        finally:
            await self.stop()

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("kubesync shutting down")

        self._running = False

        if self._rest_server is not None:
            self._rest_server.should_exit = True
        for task in reversed(self._background_tasks):
            if not task.done():
                task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()
        self._rest_server = None

        # The scheduler also stops every collector's watch sources.
        await self._stop_component("scheduler", self._scheduler)
        # Stops the heartbeat and sends the close notice while the transport is up.
        await self._stop_component("session", self._session)
        await self._stop_component("transport", self._transport)
        self._scheduler = None
        self._session = None
        self._transport = None
        self._collectors = []
        await self._stop_k8s_client()

        log.info("kubesync stopped")
        self._log = None

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() on a component if it has that method, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))

    async def _stop_k8s_client(self) -> None:
        """Close the kubernetes-asyncio ApiClient connection pool."""
        if self._api_client is None:
            return
        log = self._log or get_logger("app")
        try:
            await self._api_client.close()
        except Exception as exc:
            log.debug("k8s client close raised (non-fatal)", error=str(exc))
        self._api_client = None


def _kubesync_version() -> str:
    from kubesync import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = KubeSyncApp()
    loop = asyncio.get_running_loop()
    stopped = asyncio.Event()

    def _request_shutdown() -> None:
        stopped.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown)

    try:
        await app.start()
        await stopped.wait()
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        raise SystemExit(1) from exc
    finally:
        await app.stop()

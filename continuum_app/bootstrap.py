"""
Process start-up for the lifecycle engine.

Runs once per process: opens the period store (falling back to an in-memory
store when the durable location is unusable), loads configuration, builds
the engine, reconciles on-disk state and starts the timer observer.
"""

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

import structlog

from .config.defaults import DefaultConfig
from .config.loader import STORED_SETTINGS_KEY, ConfigLoader
from .config.validation import ConfigValidator
from .engine import PeriodLifecycleEngine
from .errors import GracefulDegradationError, StoreError
from .models.period import Period
from .persistence.period_store import MEMORY_PATH, PeriodStore
from .state.models import RecoveryOutcome
from .timer.observer import TimerObserver
from .utils.time import SystemClock

logger = structlog.get_logger(__name__)

DATA_DIR_ENV = "CONTINUUM_DATA_DIR"
DEFAULT_DATA_DIRNAME = ".continuum"


@dataclass
class BootstrapResult:
    """Everything a host needs after start-up."""
    store: PeriodStore
    engine: PeriodLifecycleEngine
    observer: TimerObserver
    recovery: RecoveryOutcome
    config: DefaultConfig
    degraded: bool = False
    degradation: Optional[GracefulDegradationError] = None


class RecoveryBootstrapper:
    """Wires store, engine and timer together at process start."""

    def __init__(
        self,
        loader: Optional[ConfigLoader] = None,
        clock: Optional[Any] = None,
        environ: Optional[Mapping[str, str]] = None
    ):
        self.logger = logger
        self.loader = loader or ConfigLoader.create()
        self.clock = clock or SystemClock()
        self.environ = environ if environ is not None else os.environ

        self._result: Optional[BootstrapResult] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def result(self) -> Optional[BootstrapResult]:
        return self._result

    def resolve_data_dir(self, config: DefaultConfig) -> Path:
        """Environment variable, then configured data_dir, then ~/.continuum."""
        env_dir = self.environ.get(DATA_DIR_ENV)
        if env_dir:
            return Path(env_dir).expanduser()
        if config.storage.data_dir:
            return Path(config.storage.data_dir).expanduser()
        return Path.home() / DEFAULT_DATA_DIRNAME

    def open_store(self, config: DefaultConfig) -> tuple[PeriodStore, Optional[GracefulDegradationError]]:
        """
        Open the durable store, or an in-memory one if that is allowed.

        Raises:
            StoreError: If the durable store fails and fallback is disabled
        """
        db_path = self.resolve_data_dir(config) / config.storage.db_filename
        try:
            store = PeriodStore(db_path, timeout_seconds=config.storage.timeout_seconds).init()
            return store, None
        except StoreError as e:
            if not config.storage.allow_memory_fallback:
                raise

            degradation = GracefulDegradationError(
                f"Period store unavailable at {db_path}: {e}",
                degraded_functionality="persistence",
                fallback_strategy="in_memory_store"
            )
            self.logger.warning(
                "Falling back to in-memory period store",
                path=str(db_path),
                reason=e.reason,
                error=str(e)
            )
            return PeriodStore(MEMORY_PATH).init(), degradation

    def load_config(self, store: Optional[PeriodStore] = None) -> DefaultConfig:
        """
        Merge defaults, settings.yaml and (when a store is given) stored overrides.

        Raises:
            ValueError: If the merged configuration is invalid
        """
        stored = store.get_config(STORED_SETTINGS_KEY) if store is not None else None
        if stored is not None and not isinstance(stored, dict):
            self.logger.warning("Ignoring stored settings that are not a mapping",
                                value_type=type(stored).__name__)
            stored = None

        merged = self.loader.merge_config(stored)
        errors = ConfigValidator.validate_config(merged)
        if errors:
            for error in errors:
                self.logger.error("Invalid configuration", field=error.field,
                                  message=error.message, value=error.value)
            raise ValueError(
                "Invalid configuration: " + "; ".join(f"{e.field}: {e.message}" for e in errors)
            )
        return self.loader.load(stored)

    async def run(self, last_known_close_time: Optional[int] = None) -> BootstrapResult:
        """
        Start the engine exactly once.

        Args:
            last_known_close_time: Best known time the previous run stopped (ms)

        Returns:
            BootstrapResult; a second call returns the first result unchanged
        """
        if self._result is not None:
            self.logger.warning("Bootstrap already completed, returning existing result")
            return self._result

        file_config = self.load_config()
        store, degradation = await asyncio.to_thread(self.open_store, file_config)

        try:
            config = await asyncio.to_thread(self.load_config, store)
            engine = PeriodLifecycleEngine(store, clock=self.clock, config=config)
            observer = TimerObserver(self.clock, config.timer.tick_interval_seconds)

            recovery = await engine.recover_incomplete_session(last_known_close_time)
        except BaseException:
            store.close()
            raise

        observer.start(recovery.active)

        def on_active_changed(period: Period) -> None:
            observer.handle_active_changed(period)
            if observer.period_id is None:
                observer.start(period)

        self._unsubscribe = engine.add_active_listener(on_active_changed)

        self._result = BootstrapResult(
            store=store,
            engine=engine,
            observer=observer,
            recovery=recovery,
            config=config,
            degraded=degradation is not None,
            degradation=degradation,
        )

        self.logger.info(
            "Bootstrap complete",
            recovery_action=recovery.action.value,
            active_period_id=recovery.active.id,
            degraded=self._result.degraded,
            in_memory=store.in_memory
        )
        return self._result

    async def shutdown(self) -> None:
        """Stop the timer and close the store; safe to call twice."""
        if self._result is None:
            return

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        self._result.observer.stop()
        await asyncio.to_thread(self._result.store.close)
        self.logger.info("Bootstrap shut down")
        self._result = None

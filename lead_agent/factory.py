"""Factory helpers for wiring adapters, storage and the orchestrator from configuration."""
from __future__ import annotations

import importlib
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from .adapters.base import NullLauncher
from .config import AgentSettings, ConfigurationError, RuleSetHolder
from .contact.flow import ContactFlowExecutor
from .logstore import ContactHistory, LogStore
from .orchestrator.coordinator import Coordinator
from .orchestrator.scheduler import CycleScheduler, EventSink
from .orchestrator.state import AutomationState
from .orchestrator.suspension import TimerFactory
from .rate_limit import SYSTEM_CLOCK, Clock
from .registry import LeadRegistry
from .storage import JsonFileStore, KeyValueStore, MemoryStore

LOGGER = logging.getLogger(__name__)

ADAPTER_ROLES = ("extraction", "actions", "launcher")


def _load_class(path: str):
    module_name, _, attr = path.rpartition(".")
    if not module_name:
        raise ConfigurationError(f"Invalid adapter class path '{path}'")
    module = importlib.import_module(module_name)
    try:
        return getattr(module, attr)
    except AttributeError as exc:
        raise ConfigurationError(f"Module '{module_name}' does not define '{attr}'") from exc


def _instantiate(spec: Mapping[str, Any], role: str) -> Any:
    class_path = spec.get("class")
    if not class_path:
        raise ConfigurationError(f"Adapter '{role}' is missing required 'class' field")
    options = spec.get("options") or {}
    if not isinstance(options, Mapping):
        raise ConfigurationError(f"Adapter '{role}' options must be a mapping")
    adapter_cls = _load_class(str(class_path))
    LOGGER.debug("Creating %s adapter %s", role, class_path)
    return adapter_cls(**options)


def build_adapters(config: Mapping[str, Any]) -> Dict[str, Any]:
    """Instantiate the extraction, action and launcher adapters.

    A ``portal`` entry serves every role. A role may also name another role
    (``actions: extraction``) to share that instance. Without a launcher the
    extraction adapter is used when it can open the surface.
    """

    built: Dict[str, Any] = {}
    shared = _instantiate(config["portal"], "portal") if config.get("portal") else None

    for role in ADAPTER_ROLES:
        spec = config.get(role)
        if isinstance(spec, Mapping):
            built[role] = _instantiate(spec, role)
        elif spec is None and shared is not None:
            built[role] = shared

    for role in ADAPTER_ROLES:
        alias = config.get(role)
        if isinstance(alias, str):
            if alias not in built:
                raise ConfigurationError(f"Adapter '{role}' refers to unknown adapter '{alias}'")
            built[role] = built[alias]

    if "extraction" not in built:
        raise ConfigurationError("No extraction adapter configured")
    if "actions" not in built:
        if not hasattr(built["extraction"], "locate_action"):
            raise ConfigurationError("No action adapter configured")
        built["actions"] = built["extraction"]
    if "launcher" not in built:
        extraction = built["extraction"]
        built["launcher"] = extraction if hasattr(extraction, "open_surface") else NullLauncher()
    return built


def build_store(path: Optional[str]) -> KeyValueStore:
    if path:
        return JsonFileStore(path)
    LOGGER.warning("No storage path configured; state will not survive a restart")
    return MemoryStore()


@dataclass
class AgentComponents:
    """Everything a running agent needs, built once per process."""

    settings: AgentSettings
    store: KeyValueStore
    rules: RuleSetHolder
    registry: LeadRegistry
    log_store: LogStore
    history: ContactHistory
    extractor: Any
    actions: Any
    launcher: Any
    clock: Clock = SYSTEM_CLOCK

    def build_scheduler(self, emit: Optional[EventSink] = None) -> CycleScheduler:
        state = AutomationState()
        schedule = self.settings.schedule
        executor = ContactFlowExecutor(
            self.actions,
            self.registry,
            self.history,
            should_continue=state.should_continue,
            settings=self.settings.contact,
            clock=self.clock,
            poll_interval=schedule.poll_interval_seconds,
        )
        return CycleScheduler(
            self.extractor,
            executor,
            self.registry,
            self.rules,
            self.log_store,
            state,
            settings=schedule,
            clock=self.clock,
            capacity_probe=self.actions.capacity_exhausted,
            emit=emit,
        )

    def build_coordinator(self, *, timer_factory: TimerFactory = threading.Timer) -> Coordinator:
        return Coordinator(
            self.store,
            self.rules,
            self.build_scheduler,
            launcher=self.launcher,
            settings=self.settings.coordinator,
            clock=self.clock,
            timer_factory=timer_factory,
        )

    def close(self) -> None:
        closed: List[int] = []
        for adapter in (self.extractor, self.actions, self.launcher):
            close = getattr(adapter, "close", None)
            if close is None or id(adapter) in closed:
                continue
            closed.append(id(adapter))
            close()


def build_components(
    settings: AgentSettings,
    *,
    store: Optional[KeyValueStore] = None,
    adapters: Optional[Mapping[str, Any]] = None,
    clock: Clock = SYSTEM_CLOCK,
) -> AgentComponents:
    store = store if store is not None else build_store(settings.storage_path)
    resolved = dict(adapters) if adapters is not None else build_adapters(settings.adapters)
    currency = settings.rules.currency_symbol if settings.rules else "₹"
    return AgentComponents(
        settings=settings,
        store=store,
        rules=RuleSetHolder(settings.rules),
        registry=LeadRegistry(store),
        log_store=LogStore(
            store,
            max_summaries=settings.logs.max_summaries,
            max_lead_logs=settings.logs.max_lead_logs,
            clock=clock,
            currency_symbol=currency,
        ),
        history=ContactHistory(
            store, max_entries=settings.logs.max_contact_history, clock=clock, currency_symbol=currency
        ),
        extractor=resolved["extraction"],
        actions=resolved["actions"],
        launcher=resolved.get("launcher") or NullLauncher(),
        clock=clock,
    )


__all__ = ["AgentComponents", "build_adapters", "build_components", "build_store"]

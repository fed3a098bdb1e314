from __future__ import annotations

import importlib
import inspect
import logging
import pkgutil
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from importlib.metadata import EntryPoint, entry_points
from typing import Any

from fixture_build_engine.model.errors import StrategyConfigError
from fixture_build_engine.strategies import (
    BaseBuildStrategy,
    BuildStrategyConfig,
    InstantiationPolicy,
)

_RESERVED_KEYS = ("strategy_name", "instance_id", "priority", "enabled")


@dataclass(frozen=True, slots=True)
class StrategyPlan:
    """
    A plan to instantiate one strategy instance.
    """

    strategy_name: str
    instance_id: str
    strategy_cls: type[BaseBuildStrategy]
    ctor_kwargs: Mapping[str, Any]
    priority: int | None = None


# --------------------------------------------------------------------------- #
# Discovery
# --------------------------------------------------------------------------- #


@dataclass(frozen=True, slots=True)
class _StrategyClassInfo:
    strategy_cls: type[BaseBuildStrategy]
    origin: str  # "builtin" | "entrypoint"


def _iter_module_objects(module_name: str) -> Iterable[Any]:
    """
    Objects defined in a module, or in every module of a package.
    """
    if not module_name:
        return
    root = importlib.import_module(module_name)
    modules = [root]
    if hasattr(root, "__path__"):
        for _finder, mod_name, _ispkg in pkgutil.walk_packages(root.__path__, root.__name__ + "."):
            modules.append(importlib.import_module(mod_name))
    for module in modules:
        for obj in vars(module).values():
            # classes imported from elsewhere are discovered where they are defined
            if getattr(obj, "__module__", None) == module.__name__:
                yield obj


def _iter_entrypoint_objects(group: str) -> Iterable[Any]:
    if not group:
        return
    ep: EntryPoint
    for ep in entry_points().select(group=group):
        yield ep.load()


def _is_concrete_strategy(obj: Any, base: type[BaseBuildStrategy]) -> bool:
    return inspect.isclass(obj) and issubclass(obj, base) and not inspect.isabstract(obj)


def strategy_name_for_class(strategy_cls: type[BaseBuildStrategy]) -> str:
    name = getattr(strategy_cls, "strategy_name", None)
    if isinstance(name, str) and name:
        return name
    return strategy_cls.__name__


def discover_strategy_classes(
    *,
    base: type[BaseBuildStrategy],
    builtin_modules: Sequence[str],
    entrypoint_group: str,
) -> dict[str, _StrategyClassInfo]:
    """
    Returns mapping strategy_name -> class info, built-ins first.

    Duplicate strategy_name across builtin/entrypoint is an error.
    """
    by_name: dict[str, _StrategyClassInfo] = {}

    def _add(cls: type[BaseBuildStrategy], origin: str) -> None:
        name = strategy_name_for_class(cls)
        if name in by_name:
            if by_name[name].strategy_cls is cls:
                return
            raise StrategyConfigError(f"duplicate strategy_name discovered: '{name}'")
        by_name[name] = _StrategyClassInfo(strategy_cls=cls, origin=origin)

    for module_name in builtin_modules:
        for obj in _iter_module_objects(module_name):
            if _is_concrete_strategy(obj, base):
                _add(obj, "builtin")

    for obj in _iter_entrypoint_objects(entrypoint_group):
        if _is_concrete_strategy(obj, base):
            _add(obj, "entrypoint")
        else:
            logging.debug(f"entry point object {obj!r} in group {entrypoint_group} is not a {base.__name__}")

    return by_name


# --------------------------------------------------------------------------- #
# Planning
# --------------------------------------------------------------------------- #


def _ingest_raw_configs(
    *,
    raw_configs_by_instance_id: Mapping[str, BuildStrategyConfig] | None,
    strategy_classes: Mapping[str, _StrategyClassInfo],
) -> tuple[dict[str, dict[str, Any]], dict[str, list[str]]]:
    """
    Validate raw configs and bind each one to a discovered strategy.

    Configs naming a strategy that was not discovered for this kind are left out; the
    caller loads generators and creators separately from the same config mapping.
    """
    cfg_by_instance_id: dict[str, dict[str, Any]] = {}
    bound_iids_by_strategy: dict[str, list[str]] = defaultdict(list)

    for iid, raw_cfg in (raw_configs_by_instance_id or {}).items():
        if not isinstance(iid, str) or not iid:
            raise StrategyConfigError("strategy config keys must be non empty strings (instance_id)")
        if not isinstance(raw_cfg, Mapping):
            raise StrategyConfigError(f"config for instance_id '{iid}' must be a mapping")

        cfg = dict(raw_cfg)
        if "instance_id" in cfg and cfg["instance_id"] != iid:
            raise StrategyConfigError(
                f"config instance_id mismatch for key '{iid}': cfg['instance_id']={cfg['instance_id']!r}"
            )
        cfg["instance_id"] = iid

        strategy_name = cfg.get("strategy_name", iid)
        if not isinstance(strategy_name, str) or not strategy_name:
            raise StrategyConfigError(f"strategy_name for instance_id '{iid}' must be a non empty string")
        if strategy_name not in strategy_classes:
            continue
        cfg["strategy_name"] = strategy_name

        cfg_by_instance_id[iid] = cfg
        bound_iids_by_strategy[strategy_name].append(iid)

    return cfg_by_instance_id, dict(bound_iids_by_strategy)


def _enforce_singleton_policy(*, strategy_name: str, policy: Any, iids: list[str]) -> None:
    if policy is InstantiationPolicy.SINGLETON:
        if len(iids) != 1:
            raise StrategyConfigError(
                f"strategy '{strategy_name}' is SINGLETON but {len(iids)} instances were configured: {iids}"
            )
        if iids[0] != strategy_name:
            raise StrategyConfigError(
                f"strategy '{strategy_name}' is SINGLETON but instance_id '{iids[0]}' != strategy_name"
            )


def _effective_priority(cfg: Mapping[str, Any]) -> int | None:
    if "priority" not in cfg:
        return None
    v = cfg["priority"]
    if not isinstance(v, int) or isinstance(v, bool):
        raise StrategyConfigError(f"priority: expected int, got {type(v).__name__}")
    return v


def _is_enabled(iid: str, cfg: Mapping[str, Any]) -> bool:
    v = cfg.get("enabled", True)
    if not isinstance(v, bool):
        raise StrategyConfigError(f"enabled for instance_id '{iid}': expected bool, got {type(v).__name__}")
    return v


def build_strategy_plans(
    *,
    strategy_classes: Mapping[str, _StrategyClassInfo],
    raw_configs_by_instance_id: Mapping[str, BuildStrategyConfig] | None,
) -> list[StrategyPlan]:
    """
    Bind configs to discovered strategy types and produce instantiation plans.

    Rules:
      - Builtins: instantiate one singleton instance by default unless disabled.
      - Entrypoints: instantiate only if a config binds to the strategy.
      - SINGLETON: must have exactly one instance_id == strategy_name.
      - PROTOTYPE: may have one or more instances (unique instance_id).
    """
    cfg_by_iid, bound_iids_by_strategy = _ingest_raw_configs(
        raw_configs_by_instance_id=raw_configs_by_instance_id,
        strategy_classes=strategy_classes,
    )

    plans: list[StrategyPlan] = []
    for strategy_name, info in strategy_classes.items():
        iids = list(bound_iids_by_strategy.get(strategy_name, []))
        if not iids:
            if info.origin == "entrypoint":
                continue
            iids = [strategy_name]
            cfg_by_iid.setdefault(strategy_name, {"strategy_name": strategy_name, "instance_id": strategy_name})

        policy = getattr(info.strategy_cls, "instantiation_policy", InstantiationPolicy.SINGLETON)
        _enforce_singleton_policy(strategy_name=strategy_name, policy=policy, iids=iids)

        for iid in iids:
            cfg = cfg_by_iid[iid]
            if not _is_enabled(iid, cfg):
                logging.debug(f"strategy instance '{iid}' is disabled")
                continue
            plans.append(
                StrategyPlan(
                    strategy_name=strategy_name,
                    instance_id=iid,
                    strategy_cls=info.strategy_cls,
                    ctor_kwargs={k: v for k, v in cfg.items() if k not in _RESERVED_KEYS},
                    priority=_effective_priority(cfg),
                )
            )

    return plans


# --------------------------------------------------------------------------- #
# Instantiation
# --------------------------------------------------------------------------- #


def _validate_ctor_kwargs(
    *,
    strategy_cls: type[BaseBuildStrategy],
    ctor_kwargs: Mapping[str, Any],
    ctx: str,
) -> None:
    """
    Validate that ctor_kwargs can be passed to strategy_cls(...).

    If the strategy constructor accepts **kwargs, allow anything.
    Otherwise require all keys to be accepted parameters.
    """
    params = inspect.signature(strategy_cls).parameters.values()
    if any(p.kind is p.VAR_KEYWORD for p in params):
        return
    allowed = {p.name for p in params}
    extra = [k for k in ctor_kwargs if k not in allowed]
    if extra:
        raise StrategyConfigError(f"{ctx}: ctor does not accept kwargs: {extra}")


def instantiate_plans(plans: Sequence[StrategyPlan]) -> list[BaseBuildStrategy]:
    """
    Instantiate strategy instances from StrategyPlan entries.
    """
    instances: list[BaseBuildStrategy] = []
    seen: set[str] = set()

    for plan in plans:
        ctx = f"strategy={plan.strategy_name} instance_id={plan.instance_id}"
        if plan.instance_id in seen:
            raise StrategyConfigError(f"duplicate instance_id planned: '{plan.instance_id}'")
        seen.add(plan.instance_id)

        call_kwargs = dict(plan.ctor_kwargs)
        call_kwargs["instance_id"] = plan.instance_id
        if plan.priority is not None:
            call_kwargs["priority"] = plan.priority
        _validate_ctor_kwargs(strategy_cls=plan.strategy_cls, ctor_kwargs=call_kwargs, ctx=ctx)

        try:
            inst = plan.strategy_cls(**call_kwargs)
        except (TypeError, ValueError) as e:
            raise StrategyConfigError(f"{ctx}: {e}") from e

        if inst.instance_id != plan.instance_id:
            raise StrategyConfigError(
                f"{ctx}: constructed instance_id '{inst.instance_id}' "
                f"does not match planned instance_id '{plan.instance_id}'"
            )
        instances.append(inst)

    return instances


def validate_bound_configs(
    raw_configs_by_instance_id: Mapping[str, BuildStrategyConfig] | None,
    known_strategy_names: Iterable[str],
) -> None:
    """
    Every config must bind to a strategy of some kind; an unknown name is an error.
    """
    known = set(known_strategy_names)
    for iid, raw_cfg in (raw_configs_by_instance_id or {}).items():
        strategy_name = raw_cfg.get("strategy_name", iid) if isinstance(raw_cfg, Mapping) else iid
        if strategy_name not in known:
            raise StrategyConfigError(
                f"unknown strategy_name '{strategy_name}' for instance_id '{iid}' (not discovered)"
            )

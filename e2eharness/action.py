"""Groups of environment callbacks bound to a point in the test lifecycle."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Protocol, Sequence

logger = logging.getLogger(__name__)

EnvFunc = Callable[[Any, Any], Any]
TestEnvFunc = Callable[[Any, Any, Any], Any]
FeatureEnvFunc = Callable[[Any, Any, Any, Any], Any]


class SupportsDryRun(Protocol):
    """Configuration that can report whether the framework is in dry-run mode."""

    dry_run_mode: bool


class ActionRole(Enum):
    """The point in the lifecycle at which an action runs."""

    SETUP = 0
    BEFORE_TEST = 1
    BEFORE_FEATURE = 2
    AFTER_FEATURE = 3
    AFTER_TEST = 4
    FINISH = 5

    def __str__(self) -> str:
        return _ROLE_LABELS[self]


_ROLE_LABELS = {
    ActionRole.SETUP: "Setup",
    ActionRole.BEFORE_TEST: "BeforeEachTest",
    ActionRole.BEFORE_FEATURE: "BeforeEachFeature",
    ActionRole.AFTER_FEATURE: "AfterEachFeature",
    ActionRole.AFTER_TEST: "AfterEachTest",
    ActionRole.FINISH: "Finish",
}


@dataclass
class Action:
    """A group of callbacks registered for one role.

    Each callback receives the current context and returns the context passed
    to the next one; an exception raised by a callback stops the group.
    """

    role: ActionRole
    funcs: Sequence[Optional[EnvFunc]] = field(default_factory=list)
    feature_funcs: Sequence[Optional[FeatureEnvFunc]] = field(default_factory=list)
    test_funcs: Sequence[Optional[TestEnvFunc]] = field(default_factory=list)

    def run_with_t(self, ctx: Any, cfg: SupportsDryRun, t: Any) -> Any:
        """Run the test callbacks, passing the test reporter ``t`` to each."""
        if self.role not in (ActionRole.BEFORE_TEST, ActionRole.AFTER_TEST):
            raise ValueError(
                "run_with_t() is only valid for actions BeforeEachTest and AfterEachTest"
            )
        if cfg.dry_run_mode:
            logger.debug("Skipping %s actions: framework is in dry-run mode", self.role)
            return ctx
        for fn in self.test_funcs:
            if fn is not None:
                ctx = fn(ctx, cfg, t)
        return ctx

    def run_with_feature(self, ctx: Any, cfg: SupportsDryRun, t: Any, feature: Any) -> Any:
        """Run the feature callbacks, passing ``t`` and the feature to each."""
        if self.role not in (ActionRole.BEFORE_FEATURE, ActionRole.AFTER_FEATURE):
            raise ValueError(
                "run_with_feature() is only valid for actions BeforeEachFeature "
                "and AfterEachFeature"
            )
        if cfg.dry_run_mode:
            logger.debug("Skipping %s actions: framework is in dry-run mode", self.role)
            return ctx
        for fn in self.feature_funcs:
            if fn is not None:
                ctx = fn(ctx, cfg, t, feature)
        return ctx

    def run(self, ctx: Any, cfg: SupportsDryRun) -> Any:
        """Run the environment callbacks in order and return the final context."""
        if cfg.dry_run_mode:
            logger.debug("Skipping %s action: framework is in dry-run mode", self.role)
            return ctx
        for fn in self.funcs:
            if fn is not None:
                ctx = fn(ctx, cfg)
        return ctx
"""Test environments that run features, their steps and lifecycle hooks.

An :class:`Environment` holds a context value, a :class:`Config` and the
hooks registered for each point of the lifecycle. Features are tested with
:meth:`Environment.test` or :meth:`Environment.test_in_parallel`. A whole
suite is run with :meth:`Environment.run`, which wraps it with the setup and
finish hooks.

Contexts are plain values, usually dictionaries. Every callback receives the
current context and returns the context that later callbacks see.
"""

from __future__ import annotations

import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Pattern, Sequence, Tuple, Union

from e2eharness.action import Action, ActionRole

logger = logging.getLogger(__name__)

RegexLike = Union[str, Pattern[str], None]
StepFunc = Callable[[Any, "TestReporter", "Config"], Any]


def _compile(value: RegexLike) -> Optional[Pattern[str]]:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return re.compile(value)
    return value


@dataclass
class Config:
    """Settings that control how an environment runs its features."""

    namespace: str = ""
    dry_run_mode: bool = False
    fail_fast: bool = False
    parallel_test_enabled: bool = False
    disable_graceful_teardown: bool = False
    feature_regex: RegexLike = None
    skip_feature_regex: RegexLike = None
    assessment_regex: RegexLike = None
    skip_assessment_regex: RegexLike = None
    labels: Dict[str, List[str]] = field(default_factory=dict)
    skip_labels: Dict[str, List[str]] = field(default_factory=dict)


class StepLevel(Enum):
    """The phase of a feature in which a step runs."""

    SETUP = "Setup"
    ASSESS = "Assessment"
    TEARDOWN = "Teardown"


@dataclass
class Step:
    """One named step of a feature; ``func(ctx, t, cfg)`` returns the new context."""

    name: str
    level: StepLevel
    func: Optional[StepFunc] = None


@dataclass
class Feature:
    """A named, labelled collection of steps."""

    name: str = ""
    labels: Dict[str, List[str]] = field(default_factory=dict)
    steps: List[Step] = field(default_factory=list)

    def contains_label(self, key: str, value: str) -> bool:
        """Return true when ``value`` is among the values of label ``key``."""
        return value in self.labels.get(key, ())


class _SkipNow(Exception):
    """Stops the current (sub)test and marks it skipped."""


class _FailNow(AssertionError):
    """Stops the current (sub)test after marking it failed."""


class TestReporter:
    """Records the outcome of a test and of the subtests it starts."""

    __test__ = False

    def __init__(self, name: str = "", parent: Optional["TestReporter"] = None) -> None:
        self.name = name
        self.parent = parent
        self.skipped = False
        self.messages: List[str] = []
        self.subtests: List[TestReporter] = []
        self._failed = False
        self._lock = threading.Lock()

    def run(self, name: str, fn: Callable[["TestReporter"], Any]) -> bool:
        """Run ``fn`` as a subtest named ``name``; return true unless it failed."""
        full_name = f"{self.name}/{name}" if self.name else name
        sub = TestReporter(full_name, parent=self)
        with self._lock:
            self.subtests.append(sub)
        try:
            fn(sub)
        except (_SkipNow, _FailNow):
            pass
        except BaseException:
            sub.fail()
            raise
        return not sub.failed()

    def fail(self) -> None:
        """Mark this test, and every test above it, as failed."""
        self._failed = True
        if self.parent is not None:
            self.parent.fail()

    def failed(self) -> bool:
        """Return true when this test or one of its subtests failed."""
        return self._failed

    def skip(self, message: str) -> None:
        """Record ``message``, mark the test skipped and stop it."""
        self.log(message)
        self.skipped = True
        raise _SkipNow(message)

    def fatal(self, message: str) -> None:
        """Record ``message``, mark the test failed and stop it."""
        self.log(message)
        self.fail()
        raise _FailNow(message)

    def log(self, message: str) -> None:
        """Record a message against this test."""
        with self._lock:
            self.messages.append(message)


def deep_copy_feature(feature: Feature) -> Feature:
    """Return an informational copy of ``feature`` whose steps carry no functions."""
    return Feature(
        name=feature.name,
        labels={key: list(values) for key, values in feature.labels.items()},
        steps=[Step(step.name, step.level, None) for step in feature.steps if step is not None],
    )


class Environment:
    """A test environment: a context, a configuration and lifecycle hooks."""

    def __init__(
        self,
        ctx: Any = None,
        cfg: Optional[Config] = None,
        actions: Optional[Sequence[Action]] = None,
    ) -> None:
        self.ctx = ctx if ctx is not None else {}
        self.cfg = cfg if cfg is not None else Config()
        self._actions: List[Action] = list(actions or [])

    def with_context(self, ctx: Any) -> "Environment":
        """Return a new environment with context ``ctx`` and the same hooks."""
        if ctx is None:
            raise ValueError("nil context")
        return Environment(ctx=ctx, cfg=self.cfg, actions=self._actions)

    def _register(self, role: ActionRole, kind: str, funcs: Tuple[Any, ...]) -> "Environment":
        if funcs:
            self._actions.append(Action(role=role, **{kind: list(funcs)}))
        return self

    def setup(self, *funcs: Any) -> "Environment":
        """Register ``func(ctx, cfg)`` hooks run once before the suite."""
        return self._register(ActionRole.SETUP, "funcs", funcs)

    def before_each_test(self, *funcs: Any) -> "Environment":
        """Register ``func(ctx, cfg, t)`` hooks run before each test call."""
        return self._register(ActionRole.BEFORE_TEST, "test_funcs", funcs)

    def before_each_feature(self, *funcs: Any) -> "Environment":
        """Register ``func(ctx, cfg, t, feature)`` hooks run before each feature."""
        return self._register(ActionRole.BEFORE_FEATURE, "feature_funcs", funcs)

    def after_each_feature(self, *funcs: Any) -> "Environment":
        """Register ``func(ctx, cfg, t, feature)`` hooks run after each feature."""
        return self._register(ActionRole.AFTER_FEATURE, "feature_funcs", funcs)

    def after_each_test(self, *funcs: Any) -> "Environment":
        """Register ``func(ctx, cfg, t)`` hooks run after each test call."""
        return self._register(ActionRole.AFTER_TEST, "test_funcs", funcs)

    def finish(self, *funcs: Any) -> "Environment":
        """Register ``func(ctx, cfg)`` hooks run once after the suite."""
        return self._register(ActionRole.FINISH, "funcs", funcs)

    def actions_by_role(self, role: ActionRole) -> List[Action]:
        """Return the registered actions for ``role`` in registration order."""
        return [action for action in self._actions if action.role is role]

    def test(self, t: TestReporter, *features: Feature) -> None:
        """Test the features one after another as subtests of ``t``."""
        self._process_tests(t, False, features)

    def test_in_parallel(self, t: TestReporter, *features: Feature) -> None:
        """Test the features concurrently when the config enables parallel tests."""
        self._process_tests(t, True, features)

    def run(self, suite: Callable[[], int]) -> int:
        """Run setup hooks, then ``suite``, then finish hooks; return the suite's code.

        A failing setup hook raises RuntimeError and no finish hook runs. An
        exception from the suite is logged, finish hooks still run and 1 is
        returned, unless graceful teardown is disabled, in which case it
        propagates at once.
        """
        if self.ctx is None:
            raise RuntimeError("context not set")

        for setup in self.actions_by_role(ActionRole.SETUP):
            try:
                self.ctx = setup.run(self.ctx, self.cfg)
            except Exception as err:
                raise RuntimeError(f"{setup.role} failure: {err}") from err

        try:
            code = suite()
        except Exception:
            if self.cfg.disable_graceful_teardown:
                raise
            logger.exception("Recovering from failure and running finish actions")
            code = 1

        for fin in self.actions_by_role(ActionRole.FINISH):
            try:
                self.ctx = fin.run(self.ctx, self.cfg)
            except Exception as err:
                logger.debug("Cleanup failed: action=%s error=%s", fin.role, err)
        return code

    def _process_tests(self, t: TestReporter, enable_parallel: bool, features: Sequence[Feature]) -> None:
        if self.cfg.dry_run_mode:
            logger.debug(
                "Running in dry-run mode: before/after hooks and steps will be skipped"
            )
        if self.ctx is None:
            raise RuntimeError("context not set")
        if not features:
            t.log("No test testFeatures provided, skipping test")
            return

        before = self.actions_by_role(ActionRole.BEFORE_TEST)
        after = self.actions_by_role(ActionRole.AFTER_TEST)
        self._process_test_actions(t, before)

        named = [
            (feature.name or f"Feature-{index}", feature)
            for index, feature in enumerate(features, start=1)
        ]
        if self.cfg.parallel_test_enabled and enable_parallel:
            logger.debug("Running test features in parallel")
            with ThreadPoolExecutor(max_workers=len(named)) as pool:
                futures = [
                    pool.submit(self._process_test_feature, t, name, feature)
                    for name, feature in named
                ]
            for future in futures:
                future.result()
        else:
            for name, feature in named:
                self._process_test_feature(t, name, feature)
                if self.cfg.fail_fast and t.failed():
                    break

        self._process_test_actions(t, after)

    def _process_test_actions(self, t: TestReporter, actions: Sequence[Action]) -> None:
        for action in actions:
            try:
                self.ctx = action.run_with_t(self.ctx, self.cfg, t)
            except (_SkipNow, _FailNow):
                raise
            except Exception as err:
                t.fatal(f"{action.role} failure: {err}")

    def _process_feature_actions(self, t: TestReporter, feature: Feature, actions: Sequence[Action]) -> None:
        for action in actions:
            try:
                self.ctx = action.run_with_feature(
                    self.ctx, self.cfg, t, deep_copy_feature(feature)
                )
            except (_SkipNow, _FailNow):
                raise
            except Exception as err:
                t.fatal(f"{action.role} failure: {err}")

    def _process_test_feature(self, t: TestReporter, name: str, feature: Feature) -> None:
        self._process_feature_actions(t, feature, self.actions_by_role(ActionRole.BEFORE_FEATURE))
        self.ctx = self._exec_feature(self.ctx, t, name, feature)
        self._process_feature_actions(t, feature, self.actions_by_role(ActionRole.AFTER_FEATURE))

    def _execute_steps(self, ctx: Any, t: TestReporter, steps: Sequence[Step]) -> Any:
        if self.cfg.dry_run_mode:
            return ctx
        for step in steps:
            ctx = step.func(ctx, t, self.cfg)
        return ctx

    def _exec_feature(self, ctx: Any, t: TestReporter, name: str, feature: Feature) -> Any:
        cfg = self.cfg

        def steps_at(level: StepLevel) -> List[Step]:
            return [step for step in feature.steps if step.level is level]

        def feature_body(ft: TestReporter) -> None:
            nonlocal ctx
            skipped, message = self._require_feature_processing(feature)
            if skipped:
                ft.skip(message)

            ctx = self._execute_steps(ctx, ft, steps_at(StepLevel.SETUP))

            failed = False
            for index, assessment in enumerate(steps_at(StepLevel.ASSESS), start=1):
                assess_name = assessment.name or f"Assessment-{index}"

                def assess_body(at: TestReporter, step: Step = assessment, position: int = index) -> None:
                    nonlocal ctx
                    skip, reason = self._require_assessment_processing(step, position)
                    if skip:
                        at.skip(reason)
                    ctx = self._execute_steps(ctx, at, [step])

                ft.run(assess_name, assess_body)
                if cfg.fail_fast and ft.failed():
                    failed = True
                    break

            # Leave the failed feature's resources behind for debugging.
            if cfg.fail_fast and failed:
                ft.fail()
                return

            ctx = self._execute_steps(ctx, ft, steps_at(StepLevel.TEARDOWN))

        t.run(name, feature_body)
        return ctx

    def _require_feature_processing(self, feature: Feature) -> Tuple[bool, str]:
        return self._require_processing(
            "feature",
            feature.name,
            _compile(self.cfg.feature_regex),
            _compile(self.cfg.skip_feature_regex),
            feature.labels,
        )

    def _require_assessment_processing(self, step: Step, index: int) -> Tuple[bool, str]:
        return self._require_processing(
            "assessment",
            step.name or f"Assessment-{index}",
            _compile(self.cfg.assessment_regex),
            _compile(self.cfg.skip_assessment_regex),
            None,
        )

    def _require_processing(
        self,
        kind: str,
        test_name: str,
        required: Optional[Pattern[str]],
        skip: Optional[Pattern[str]],
        labels: Optional[Dict[str, List[str]]],
    ) -> Tuple[bool, str]:
        if required is not None and not required.search(test_name):
            return True, f'Skipping {kind} "{test_name}": name not matched'
        if skip is not None and skip.search(test_name):
            return True, f'Skipping {kind}: "{test_name}": name matched'

        if labels is not None:
            for key, values in self.cfg.labels.items():
                for value in values:
                    if value not in labels.get(key, ()):
                        return True, (
                            f'Skipping feature "{test_name}": unmatched label "{key}={value}"'
                        )
            for key, values in self.cfg.skip_labels.items():
                for value in values:
                    if value in labels.get(key, ()):
                        shown = "[" + " ".join(labels[key]) + "]"
                        return True, (
                            f'Skipping feature "{test_name}": matched label provided in '
                            f'--skip-labels "{key}={shown}"'
                        )
        return False, ""


def new() -> Environment:
    """Create an environment with an empty context and default configuration."""
    return Environment(ctx={}, cfg=Config())


def new_parallel() -> Environment:
    """Create an environment whose configuration enables parallel features."""
    return Environment(ctx={}, cfg=Config(parallel_test_enabled=True))


def new_with_config(cfg: Config) -> Environment:
    """Create an environment with an empty context and the given configuration."""
    return Environment(ctx={}, cfg=cfg)


def new_with_context(ctx: Any, cfg: Config) -> Environment:
    """Create an environment with the given context and configuration."""
    if ctx is None:
        raise ValueError("context is nil")
    if cfg is None:
        raise ValueError("environment config is nil")
    return Environment(ctx=ctx, cfg=cfg)
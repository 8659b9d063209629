# e2eharness

Building blocks for end-to-end test suites:

- `e2eharness.env`: a test environment that runs setup, per-test and
  per-feature hooks around features made of steps, and reports results
  through a `TestReporter`.
- `e2eharness.action`: the `Action` groups and `ActionRole` values those
  hooks are stored as.
- `e2eharness.wait`: `wait_for`, which polls a condition until it holds.
- `e2eharness.conditions`: ready-made conditions for cluster resources,
  built on a resource client that you supply.

The package has no dependencies outside the standard library.

## Installation

```
pip install e2eharness
```

The `test` extra installs pytest for running the package's own tests:

```
pip install "e2eharness[test]"
```

## Environments and features

```python
from e2eharness.env import Config, Feature, Step, StepLevel, TestReporter, new_with_context

def greet(ctx, t, cfg):
    if ctx["name"] != "bazz":
        t.fatal("unexpected name")
    return ctx

env = new_with_context({"name": "bazz"}, Config())
feature = Feature(name="hello", steps=[Step("greets", StepLevel.ASSESS, greet)])

t = TestReporter()
env.test(t, feature)
assert not t.failed()
```

An `Environment` holds a context (any value; the constructors use an empty
dict by default), a `Config` and a list of hooks. Every hook and step takes
the current context and returns the context that later ones see.

- `setup(func, ...)` and `finish(func, ...)` register `func(ctx, cfg)` hooks
  that `Environment.run(suite)` calls before and after `suite()`.
- `before_each_test(...)` and `after_each_test(...)` register
  `func(ctx, cfg, t)` hooks run once around every call to `test(...)` or
  `test_in_parallel(...)`.
- `before_each_feature(...)` and `after_each_feature(...)` register
  `func(ctx, cfg, t, feature)` hooks run around each feature. They receive a
  copy made by `deep_copy_feature`, whose steps carry no functions, so a hook
  can look at the feature but not change it.

Registration methods return the environment, so calls can be chained;
registering nothing adds no action. `actions_by_role(role)` returns the
registered `Action` objects for an `ActionRole` in registration order.

Create an environment with `new()`, `new_parallel()` (parallel features
enabled), `new_with_config(cfg)` or `new_with_context(ctx, cfg)`; the last
raises `ValueError` if either argument is `None`.
`Environment.with_context(ctx)` returns a new environment with the same
config and hooks and a different context.

### Running features

A `Feature` has a `name`, `labels` (a dict of lists) and `steps`. Each `Step`
has a name, a `StepLevel` (`SETUP`, `ASSESS` or `TEARDOWN`) and a function
`func(ctx, t, cfg)`. `Feature.contains_label(key, value)` checks a label.

`test(t, *features)` runs each feature as a subtest of `t`: setup steps, then
each assessment as its own subtest, then teardown steps. Unnamed features and
assessments are called `Feature-N` and `Assessment-N`.
`test_in_parallel(t, *features)` runs the features in threads when
`Config.parallel_test_enabled` is true, and one after another otherwise; the
per-test hooks still run once.

A hook that raises makes the test fail: `t.fatal` records the message and an
`AssertionError` ends the call.

### Config

`Config` fields:

- `feature_regex`, `skip_feature_regex`, `assessment_regex`,
  `skip_assessment_regex`: patterns (strings or compiled) searched in names to
  choose what runs; the rest is skipped.
- `labels`: a feature runs only if it has every listed label value.
  `skip_labels`: a feature is skipped if it has any listed label value.
- `fail_fast`: after a failed assessment, the remaining assessments and the
  teardown steps of that feature are not run, and `test` starts no further
  features.
- `dry_run_mode`: hooks and steps are not executed.
- `disable_graceful_teardown`: an exception from the suite given to `run`
  propagates at once instead of being logged, answered with exit code 1 and
  followed by the finish hooks.
- `namespace`: a free value available to hooks and steps.

`Environment.run(suite)` raises `RuntimeError` if a setup hook fails, in which
case no finish hook runs. Errors in finish hooks are logged and ignored.

### TestReporter

`TestReporter` records outcomes: `run(name, fn)` runs `fn(sub)` as a subtest
and returns whether it passed; `fail()`, `failed()`, `skip(message)`,
`fatal(message)` and `log(message)`. Failing a subtest also fails its parents.
Recorded messages are in `messages`, subtests in `subtests`.

## Waiting for conditions

`wait_for(condition, *options)` calls `condition()` until it returns true. It
raises `WaitTimeoutError` when time runs out or the stop event is set, and
lets any exception from the condition propagate. Options:

- `with_timeout(t)`: how long to keep polling, in seconds or as a
  `timedelta`. Default: 5 minutes.
- `with_interval(t)`: the pause between checks. Default: 5 seconds.
- `with_immediate()`: check once before the first pause.
- `with_stop_event(event)`: poll until a `threading.Event` is set, ignoring
  the timeout.

`Condition(resources)` builds conditions on a client that provides
`get(name, namespace, obj)` (refreshing `obj` in place and raising
`NotFoundError` if it is missing) and `list(object_list, *list_options)`
(filling `object_list.items`). It offers `resource_scaled`, `resource_match`,
`resource_list_n`, `resource_list_match_n`, `resources_found`,
`resources_match`, `resources_deleted`, `resource_deleted`,
`job_condition_match`, `deployment_condition_match`, `pod_condition_match`,
`pod_phase_match`, `pod_ready`, `containers_ready`, `pod_running`,
`job_completed` and `job_failed`.

## What this package does not do

It contains no client for any cluster API, does not create or delete
clusters or namespaces, and reads no command-line flags: the resource client
and the `Config` values come from you. There is no command-line program.
"""Predefined wait conditions for cluster resources.

A :class:`Condition` wraps a resource client and builds zero-argument
callables suitable for :func:`e2eharness.wait.wait_for`. The client is
expected to provide:

* ``get(name, namespace, obj)``, which refreshes ``obj`` in place and raises
  :class:`NotFoundError` when the resource does not exist;
* ``list(object_list, *list_options)``, which fills ``object_list.items``.

Resource objects expose ``name`` and ``namespace`` attributes and, where a
condition looks at them, a ``status`` with ``phase``, ``conditions`` (items
with ``type`` and ``status``) and so on.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, Protocol, Tuple

from e2eharness.wait import ConditionFunc

logger = logging.getLogger(__name__)

CONDITION_TRUE = "True"
CONDITION_FALSE = "False"
CONDITION_UNKNOWN = "Unknown"

POD_READY = "Ready"
CONTAINERS_READY = "ContainersReady"
POD_RUNNING = "Running"

JOB_COMPLETE = "Complete"
JOB_FAILED = "Failed"

DEPLOYMENT_AVAILABLE = "Available"
DEPLOYMENT_PROGRESSING = "Progressing"


class NotFoundError(LookupError):
    """Raised by a resource client when the requested resource does not exist."""


class Resources(Protocol):
    """The resource client a :class:`Condition` works against."""

    def get(self, name: str, namespace: str, obj: Any) -> None: ...

    def list(self, object_list: Any, *list_options: Any) -> None: ...


Matcher = Callable[[Any], bool]


def _is_object(value: Any) -> bool:
    return hasattr(value, "name") and hasattr(value, "namespace")


def _not_an_object(value: Any) -> TypeError:
    return TypeError(
        f"condition: unexpected type {type(value).__name__} in list, "
        "does not satisfy the resource object interface"
    )


def _extract_items(object_list: Any) -> List[Any]:
    try:
        items = object_list.items
    except AttributeError as exc:
        raise TypeError(
            f"condition: {type(object_list).__name__} is not a resource list"
        ) from exc
    return list(items or [])


def _named_objects(object_list: Any) -> Tuple[List[Any], Optional[Exception]]:
    """Return the named objects of a list, or the error that makes it unusable."""
    try:
        items = _extract_items(object_list)
    except TypeError as exc:
        return [], exc
    named: List[Any] = []
    for item in items:
        if not _is_object(item):
            return [], _not_an_object(item)
        if item.name:
            named.append(item)
    return named, None


def _has_condition(obj: Any, condition_type: str, condition_state: str) -> bool:
    return any(
        cond.type == condition_type and cond.status == condition_state
        for cond in (obj.status.conditions or [])
    )


class Condition:
    """Factory of wait conditions bound to one resource client."""

    def __init__(self, resources: Resources) -> None:
        self.resources = resources

    @staticmethod
    def _namespaced_name(obj: Any) -> str:
        kind = getattr(obj, "kind", None) or type(obj).__name__
        return f"{kind} [{obj.namespace}/{obj.name}]"

    def resource_scaled(self, obj: Any, scale_fetcher: Callable[[Any], int], replica: int) -> ConditionFunc:
        """Met when ``scale_fetcher(obj)`` equals ``replica``; fetch errors count as not met."""

        def check() -> bool:
            logger.debug(
                "Checking for resource to be scaled: resource=%s replica=%s",
                self._namespaced_name(obj),
                replica,
            )
            try:
                self.resources.get(obj.name, obj.namespace, obj)
            except Exception:
                return False
            return scale_fetcher(obj) == replica

        return check

    def resource_match(self, obj: Any, match_fetcher: Matcher) -> ConditionFunc:
        """Met when ``match_fetcher(obj)`` is true; fetch errors count as not met."""

        def check() -> bool:
            try:
                self.resources.get(obj.name, obj.namespace, obj)
            except Exception:
                return False
            return bool(match_fetcher(obj))

        return check

    def resource_list_n(self, object_list: Any, n: int, *list_options: Any) -> ConditionFunc:
        """Met when listing returns at least ``n`` objects."""
        return self.resource_list_match_n(object_list, n, lambda _obj: True, *list_options)

    def resource_list_match_n(
        self, object_list: Any, n: int, match_fetcher: Matcher, *list_options: Any
    ) -> ConditionFunc:
        """Met when listing returns at least ``n`` objects accepted by ``match_fetcher``."""

        def check() -> bool:
            try:
                self.resources.list(object_list, *list_options)
            except Exception:
                return False
            found = 0
            for item in _extract_items(object_list):
                if not _is_object(item):
                    raise _not_an_object(item)
                if match_fetcher(item):
                    found += 1
            return found >= n

        return check

    def resources_found(self, object_list: Any) -> ConditionFunc:
        """Met once every named object in ``object_list`` can be fetched."""
        return self.resources_match(object_list, lambda _obj: True)

    def resources_match(self, object_list: Any, match_fetcher: Matcher) -> ConditionFunc:
        """Met once every named object in ``object_list`` is fetched and matches."""
        named, error = _named_objects(object_list)
        entries: List[List[Any]] = [[obj, False] for obj in named]

        def check() -> bool:
            if error is not None:
                raise error
            found = 0
            for entry in entries:
                obj, created = entry
                if not created:
                    try:
                        self.resources.get(obj.name, obj.namespace, obj)
                    except NotFoundError:
                        continue
                    if not match_fetcher(obj):
                        continue
                entry[1] = True
                found += 1
            return len(entries) == found

        return check

    def resources_deleted(self, object_list: Any) -> ConditionFunc:
        """Met once none of the named objects in ``object_list`` can be found."""
        remaining, error = _named_objects(object_list)

        def check() -> bool:
            if error is not None:
                raise error
            for obj in list(remaining):
                logger.debug(
                    "Checking for resource to be garbage collected: resource=%s",
                    self._namespaced_name(obj),
                )
                try:
                    self.resources.get(obj.name, obj.namespace, obj)
                except NotFoundError:
                    remaining.remove(obj)
            return not remaining

        return check

    def resource_deleted(self, obj: Any) -> ConditionFunc:
        """Met once fetching ``obj`` raises :class:`NotFoundError`."""

        def check() -> bool:
            logger.debug(
                "Checking for resource to be garbage collected: resource=%s",
                self._namespaced_name(obj),
            )
            try:
                self.resources.get(obj.name, obj.namespace, obj)
            except NotFoundError:
                return True
            return False

        return check

    def job_condition_match(self, job: Any, condition_type: str, condition_state: str) -> ConditionFunc:
        """Met when the job has a condition of the given type in the given state."""

        def check() -> bool:
            logger.debug(
                "Checking for condition match: resource=%s state=%s conditionType=%s",
                self._namespaced_name(job),
                condition_state,
                condition_type,
            )
            self.resources.get(job.name, job.namespace, job)
            logger.debug("Current status of the job resource: %s", job.status)
            return _has_condition(job, condition_type, condition_state)

        return check

    def deployment_condition_match(
        self, deployment: Any, condition_type: str, condition_state: str
    ) -> ConditionFunc:
        """Met when the deployment has a condition of the given type in the given state."""

        def check() -> bool:
            self.resources.get(deployment.name, deployment.namespace, deployment)
            return _has_condition(deployment, condition_type, condition_state)

        return check

    def pod_condition_match(self, pod: Any, condition_type: str, condition_state: str) -> ConditionFunc:
        """Met when the pod has a condition of the given type in the given state."""

        def check() -> bool:
            logger.debug(
                "Checking for condition match: resource=%s state=%s conditionType=%s",
                self._namespaced_name(pod),
                condition_state,
                condition_type,
            )
            self.resources.get(pod.name, pod.namespace, pod)
            logger.debug("Current status of the pod resource: %s", pod.status)
            return _has_condition(pod, condition_type, condition_state)

        return check

    def pod_phase_match(self, pod: Any, phase: str) -> ConditionFunc:
        """Met when the pod's status phase equals ``phase``."""

        def check() -> bool:
            logger.debug(
                "Checking for phase match: resource=%s phase=%s",
                self._namespaced_name(pod),
                phase,
            )
            self.resources.get(pod.name, pod.namespace, pod)
            logger.debug("Current phase: %s", pod.status.phase)
            return pod.status.phase == phase

        return check

    def pod_ready(self, pod: Any) -> ConditionFunc:
        """Met when the pod's Ready condition is True."""
        return self.pod_condition_match(pod, POD_READY, CONDITION_TRUE)

    def containers_ready(self, pod: Any) -> ConditionFunc:
        """Met when the pod's ContainersReady condition is True."""
        return self.pod_condition_match(pod, CONTAINERS_READY, CONDITION_TRUE)

    def pod_running(self, pod: Any) -> ConditionFunc:
        """Met when the pod's phase is Running."""
        return self.pod_phase_match(pod, POD_RUNNING)

    def job_completed(self, job: Any) -> ConditionFunc:
        """Met when the job's Complete condition is True."""
        return self.job_condition_match(job, JOB_COMPLETE, CONDITION_TRUE)

    def job_failed(self, job: Any) -> ConditionFunc:
        """Met when the job's Failed condition is True."""
        return self.job_condition_match(job, JOB_FAILED, CONDITION_TRUE)
import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pytest

from e2eharness.conditions import (
    CONDITION_FALSE,
    CONDITION_TRUE,
    DEPLOYMENT_AVAILABLE,
    Condition,
    NotFoundError,
)
from e2eharness.wait import WaitTimeoutError, wait_for, with_immediate, with_interval, with_timeout

NAMESPACE = "wait-test"


@dataclass
class Cond:
    type: str
    status: str


@dataclass
class Status:
    phase: str = ""
    conditions: List[Cond] = field(default_factory=list)
    ready_replicas: int = 0
    available_replicas: int = 0


@dataclass
class Obj:
    name: str
    namespace: str = NAMESPACE
    kind: str = "Pod"
    labels: Dict[str, str] = field(default_factory=dict)
    images: List[str] = field(default_factory=list)
    status: Status = field(default_factory=Status)


@dataclass
class ObjList:
    items: List[Any] = field(default_factory=list)


class FakeResources:
    def __init__(self) -> None:
        self.store: Dict[tuple, Obj] = {}
        self.error: Optional[Exception] = None
        self.extra_items: List[Any] = []
        self.gets = 0

    def add(self, obj: Obj) -> Obj:
        self.store[(obj.namespace, obj.name)] = copy.deepcopy(obj)
        return obj

    def stored(self, obj: Obj) -> Obj:
        return self.store[(obj.namespace, obj.name)]

    def delete(self, obj: Obj) -> None:
        del self.store[(obj.namespace, obj.name)]

    def get(self, name, namespace, obj):
        self.gets += 1
        if self.error is not None:
            raise self.error
        try:
            found = self.store[(namespace, name)]
        except KeyError:
            raise NotFoundError(f"{namespace}/{name} not found") from None
        obj.status = copy.deepcopy(found.status)
        obj.labels = dict(found.labels)
        obj.images = list(found.images)

    def list(self, object_list, *selectors):
        if self.error is not None:
            raise self.error
        items = [
            copy.deepcopy(o)
            for o in self.store.values()
            if all(all(o.labels.get(k) == v for k, v in sel.items()) for sel in selectors)
        ]
        object_list.items = items + list(self.extra_items)


@pytest.fixture
def res():
    return FakeResources()


def test_pod_running(res):
    pod = res.add(Obj("p1", status=Status(phase="Pending")))
    check = Condition(res).pod_running(pod)
    assert check() is False
    res.stored(pod).status.phase = "Running"
    assert check() is True


def test_pod_running_with_wait_for_immediate(res):
    pod = Obj("p1")
    res.add(Obj("p1", status=Status(phase="Running")))
    wait_for(Condition(res).pod_running(pod), with_immediate(), with_timeout(1))
    assert pod.status.phase == "Running"
    assert res.gets == 1


def test_pod_phase_match(res):
    pod = res.add(Obj("p2", status=Status(phase="Succeeded")))
    cond = Condition(res)
    assert cond.pod_phase_match(pod, "Running")() is False
    assert cond.pod_phase_match(pod, "Succeeded")() is True


def test_pod_phase_match_missing_pod_raises(res):
    with pytest.raises(NotFoundError):
        Condition(res).pod_phase_match(Obj("ghost"), "Running")()


def test_pod_ready(res):
    pod = res.add(Obj("p3", status=Status(conditions=[Cond("Ready", CONDITION_FALSE)])))
    check = Condition(res).pod_ready(pod)
    assert check() is False
    res.stored(pod).status.conditions = [Cond("Ready", CONDITION_TRUE)]
    assert check() is True


def test_containers_ready(res):
    pod = res.add(
        Obj("p4", status=Status(conditions=[Cond("Ready", CONDITION_TRUE)]))
    )
    check = Condition(res).containers_ready(pod)
    assert check() is False
    res.stored(pod).status.conditions.append(Cond("ContainersReady", CONDITION_TRUE))
    assert check() is True


def test_pod_condition_match_propagates_errors(res):
    pod = res.add(Obj("p4"))
    res.error = RuntimeError("boom")
    with pytest.raises(RuntimeError, match="boom"):
        Condition(res).pod_ready(pod)()


def test_job_completed(res):
    job = res.add(Obj("j1", kind="Job"))
    check = Condition(res).job_completed(job)
    assert check() is False
    res.stored(job).status.conditions = [Cond("Complete", CONDITION_TRUE)]
    assert check() is True


def test_job_failed(res):
    job = res.add(Obj("j2", kind="Job", status=Status(conditions=[Cond("Failed", CONDITION_TRUE)])))
    cond = Condition(res)
    assert cond.job_failed(job)() is True
    assert cond.job_completed(job)() is False


def test_job_condition_match_negative_state(res):
    job = res.add(Obj("j3", kind="Job", status=Status(conditions=[Cond("Complete", CONDITION_FALSE)])))
    assert Condition(res).job_condition_match(job, "Complete", CONDITION_FALSE)() is True


def test_resource_deleted(res):
    pod = res.add(Obj("p5"))
    check = Condition(res).resource_deleted(pod)
    assert check() is False
    res.delete(pod)
    assert check() is True


def test_resource_deleted_with_wait_for(res):
    pod = res.add(Obj("p5"))
    res.delete(pod)
    wait_for(
        Condition(res).resource_deleted(pod),
        with_interval(0.01),
        with_timeout(1),
        with_immediate(),
    )
    assert (pod.namespace, pod.name) not in res.store


def test_resource_deleted_other_error_raises(res):
    pod = res.add(Obj("p5"))
    res.error = RuntimeError("server unavailable")
    with pytest.raises(RuntimeError):
        Condition(res).resource_deleted(pod)()


def test_resource_scaled(res):
    dep = res.add(Obj("d1", kind="Deployment", status=Status(ready_replicas=1)))
    check = Condition(res).resource_scaled(dep, lambda o: o.status.ready_replicas, 2)
    assert check() is False
    res.stored(dep).status.ready_replicas = 2
    assert check() is True


def test_resource_scaled_swallows_fetch_errors(res):
    check = Condition(res).resource_scaled(Obj("missing"), lambda o: 0, 0)
    assert check() is False


def test_deployment_condition_match(res):
    dep = res.add(Obj("d2", kind="Deployment"))
    check = Condition(res).deployment_condition_match(dep, DEPLOYMENT_AVAILABLE, CONDITION_TRUE)
    assert check() is False
    res.stored(dep).status.conditions = [Cond("Available", CONDITION_TRUE)]
    assert check() is True


def test_resource_list_n(res):
    for i in range(3):
        res.add(Obj(f"d3-{i}", labels={"app": "d3"}))
    res.add(Obj("other", labels={"app": "x"}))
    pods = ObjList()
    cond = Condition(res)
    assert cond.resource_list_n(pods, 4, {"app": "d3"})() is False
    assert len(pods.items) == 3
    res.add(Obj("d3-3", labels={"app": "d3"}))
    assert cond.resource_list_n(pods, 4, {"app": "d3"})() is True


def test_resource_list_match_n(res):
    for i in range(5):
        res.add(Obj(f"d4-{i}", labels={"app": "d4"}, images=["nginx"] if i else ["busybox"]))
    pods = ObjList()

    def has_nginx(obj):
        return "nginx" in obj.images

    cond = Condition(res)
    assert cond.resource_list_match_n(pods, 4, has_nginx, {"app": "d4"})() is True
    assert cond.resource_list_match_n(pods, 5, has_nginx, {"app": "d4"})() is False


def test_resource_list_match_n_list_error_is_not_met(res):
    res.error = RuntimeError("down")
    assert Condition(res).resource_list_n(ObjList(), 0)() is False


def test_resource_list_match_n_rejects_non_objects(res):
    res.add(Obj("a"))
    res.extra_items = [42]
    with pytest.raises(TypeError, match="unexpected type int"):
        Condition(res).resource_list_n(ObjList(), 1)()


def test_resources_match(res):
    pods = ObjList([Obj("p6"), Obj("p7"), Obj("p8")])
    check = Condition(res).resources_match(pods, lambda o: o.status.phase == "Running")
    assert check() is False
    res.add(Obj("p6", status=Status(phase="Running")))
    res.add(Obj("p7", status=Status(phase="Running")))
    res.add(Obj("p8", status=Status(phase="Pending")))
    assert check() is False
    res.stored(pods.items[2]).status.phase = "Running"
    assert check() is True


def test_resources_match_remembers_found_objects(res):
    pods = ObjList([Obj("p6")])
    res.add(Obj("p6", status=Status(phase="Running")))
    check = Condition(res).resources_match(pods, lambda o: o.status.phase == "Running")
    assert check() is True
    res.delete(pods.items[0])
    assert check() is True


def test_resources_found(res):
    pods = ObjList([Obj("p9"), Obj("p10"), Obj("p11"), Obj("")])
    check = Condition(res).resources_found(pods)
    res.add(Obj("p9"))
    res.add(Obj("p10"))
    assert check() is False
    res.add(Obj("p11"))
    assert check() is True


def test_resources_found_with_wait_for_timeout(res):
    check = Condition(res).resources_found(ObjList([Obj("never")]))
    with pytest.raises(WaitTimeoutError):
        wait_for(check, with_interval(0.01), with_timeout(0.05))


def test_resources_match_rejects_non_objects(res):
    check = Condition(res).resources_match(ObjList([Obj("p1"), "junk"]), lambda o: True)
    with pytest.raises(TypeError, match="unexpected type str"):
        check()


def test_resources_match_other_error_raises(res):
    res.error = RuntimeError("forbidden")
    with pytest.raises(RuntimeError, match="forbidden"):
        Condition(res).resources_found(ObjList([Obj("p1")]))()


def test_resources_deleted(res):
    for i in range(2):
        res.add(Obj(f"d5-{i}", labels={"app": "d5"}))
    pods = ObjList()
    cond = Condition(res)
    assert cond.resource_list_n(pods, 1, {"app": "d5"})() is True
    check = cond.resources_deleted(pods)
    assert check() is False
    res.delete(pods.items[0])
    assert check() is False
    res.delete(pods.items[1])
    assert check() is True


def test_resources_deleted_not_a_list(res):
    check = Condition(res).resources_deleted(object())
    with pytest.raises(TypeError):
        check()


def test_resource_match(res):
    dep = res.add(Obj("d6", kind="Deployment", status=Status(ready_replicas=2, available_replicas=1)))
    check = Condition(res).resource_match(
        dep, lambda d: d.status.available_replicas == 2 and d.status.ready_replicas == 2
    )
    assert check() is False
    res.stored(dep).status.available_replicas = 2
    assert check() is True


def test_resource_match_missing_is_not_met(res):
    assert Condition(res).resource_match(Obj("nope"), lambda o: True)() is False
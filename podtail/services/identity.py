import json
from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class SinglePod:
    name: str


@dataclass(frozen=True)
class MultiPod:
    application: str
    pod_name: str


ApplicationIdentity = Union[SinglePod, MultiPod]


def to_dict(identity):
    """Return the wire shape used by the directory and the stream endpoint."""
    if isinstance(identity, SinglePod):
        return {'name': identity.name}
    if isinstance(identity, MultiPod):
        return {'application': identity.application, 'podName': identity.pod_name}
    raise TypeError(f'Not an application identity: {identity!r}')


def label(identity):
    if isinstance(identity, SinglePod):
        return identity.name
    if isinstance(identity, MultiPod):
        return f'{identity.application} - {identity.pod_name}'
    raise TypeError(f'Not an application identity: {identity!r}')


def key(identity):
    """Serialize to a compact, order-stable string usable as a query parameter.

    Two identities are the same target iff their keys are equal.
    """
    return json.dumps(to_dict(identity), sort_keys=True, separators=(',', ':'))


def from_dict(obj):
    """Build an identity from a directory record.

    Records carrying both ``application`` and ``podName`` are pod-scoped,
    records with only ``name`` are single-process targets.
    """
    if not isinstance(obj, dict):
        raise ValueError(f'Application record must be an object, got {type(obj).__name__}')
    application = obj.get('application')
    pod_name = obj.get('podName')
    if isinstance(application, str) and isinstance(pod_name, str):
        return MultiPod(application=application, pod_name=pod_name)
    name = obj.get('name')
    if isinstance(name, str):
        return SinglePod(name=name)
    raise ValueError(f'Unrecognised application record: {obj!r}')


def parse_key(raw):
    try:
        obj = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as exc:
        raise ValueError(f'Invalid application key: {raw!r}') from exc
    return from_dict(obj)

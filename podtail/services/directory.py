import logging

import requests

from .identity import MultiPod, SinglePod, from_dict

log = logging.getLogger(__name__)


class DirectoryError(Exception):
    pass


def _http_applications(cfg):
    try:
        resp = requests.get(cfg.DIRECTORY_URL, headers=cfg.UPSTREAM_HEADERS, timeout=cfg.REQUEST_TIMEOUT)
        resp.raise_for_status()
        records = resp.json()
    except requests.exceptions.ConnectionError as exc:
        raise DirectoryError('Log service offline or unreachable') from exc
    except (requests.RequestException, ValueError) as exc:
        raise DirectoryError(str(exc)) from exc
    if not isinstance(records, list):
        raise DirectoryError('Directory response is not a list')
    apps = []
    for record in records:
        try:
            apps.append(from_dict(record))
        except ValueError as exc:
            log.warning('Skipping application record: %s', exc)
    return apps


def _docker_applications(cfg):
    """Running containers; compose-managed ones are grouped by project."""
    import docker
    client = None
    try:
        client = docker.from_env()
        containers = client.containers.list()
        apps = []
        for container in containers:
            project = (container.labels or {}).get(cfg.DOCKER_APP_LABEL)
            if project:
                apps.append(MultiPod(application=project, pod_name=container.name))
            else:
                apps.append(SinglePod(name=container.name))
        return apps
    except Exception as exc:
        raise DirectoryError(f'Docker unavailable: {exc}') from exc
    finally:
        if client:
            client.close()


def list_applications(cfg):
    """Return the selectable applications, in the order the source lists them."""
    source = cfg.DIRECTORY_SOURCE
    if source == 'http':
        return _http_applications(cfg)
    if source == 'docker':
        return _docker_applications(cfg)
    raise DirectoryError(f'Unknown directory source {source!r}')

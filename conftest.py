"""
Shared fixtures for the poller test scripts.
"""

import json
from typing import Any, Dict

import pytest

from core.config import build_config
from core.models import HttpResponse

BASE_SETTINGS: Dict[str, Any] = {
    "name": "openwhisk",
    "host": "localhost",
    "principal": "user@email.com",
    "secret": "my_password",
    "namespace": "user_namespace",
    "schedule": {"cron": "* * * * * UTC"},
}


def make_settings(**overrides: Any) -> Dict[str, Any]:
    settings = dict(BASE_SETTINGS)
    settings.update(overrides)
    return settings


def json_response(payload: Any, code: int = 200, **kwargs: Any) -> HttpResponse:
    return HttpResponse(
        body=json.dumps(payload).encode(),
        code=code,
        headers={"Content-Type": "application/json"},
        message="OK" if code == 200 else "",
        **kwargs,
    )


@pytest.fixture
def settings() -> Dict[str, Any]:
    return make_settings()


@pytest.fixture
def config(settings):
    return build_config(settings)

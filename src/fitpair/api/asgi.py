"""ASGI entrypoint for the tracker API."""

from fitpair.api.app import create_app
from fitpair.containers import build_container

app = create_app(build_container())

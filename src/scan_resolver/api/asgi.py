"""ASGI entrypoint for the scan resolver API."""

from scan_resolver.api.app import create_app
from scan_resolver.containers import build_container

app = create_app(build_container())

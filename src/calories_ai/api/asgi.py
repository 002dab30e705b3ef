"""ASGI entrypoint for the calorie tracker API."""

from calories_ai.api.app import create_app
from calories_ai.containers import build_container

app = create_app(build_container())

"""Request dependencies."""

from fastapi import Request

from src.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    """The container built at startup (stored on app.state)."""
    return request.app.state.container

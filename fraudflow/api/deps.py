"""
FastAPI dependencies for API routes.
"""

from fastapi import Request

from fraudflow.container import Container


def get_container(request: Request) -> Container:
    return request.app.state.container

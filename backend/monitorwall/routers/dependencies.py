"""FastAPI dependency functions shared across routers."""

from fastapi import Request

from ..services.data_service import DataService


def get_data_service(request: Request) -> DataService:
    """Return the DataService owned by the application.

    Inject via ``Depends(get_data_service)`` in any route handler.
    """
    return request.app.state.data_service

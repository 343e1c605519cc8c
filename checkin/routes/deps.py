"""Request-scoped dependencies shared by route modules."""

from fastapi import Request

from checkin.services.check_in_service import CheckInTokenService


def get_check_in_service(request: Request) -> CheckInTokenService:
    """The service instance built once by create_app() and kept on app.state."""
    return request.app.state.check_in_service

from fastapi import Depends, Request

from .container import ApplicationContainer


def get_container(request: Request) -> ApplicationContainer:
    container = getattr(request.app.state, "container", None)
    if not container:
        raise RuntimeError("Application container not initialised.")
    return container


def get_login_service(container: ApplicationContainer = Depends(get_container)):
    return container.login_service


def get_user_admin_service(container: ApplicationContainer = Depends(get_container)):
    return container.user_admin_service


def get_company_service(container: ApplicationContainer = Depends(get_container)):
    return container.company_service


def get_audit_trail_service(container: ApplicationContainer = Depends(get_container)):
    return container.audit_trail_service

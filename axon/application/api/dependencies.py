from fastapi import Request

from axon.application.container import ServiceContainer


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services

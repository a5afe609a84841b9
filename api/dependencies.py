from fastapi.requests import HTTPConnection

from services.fetch_service import FetchService


def get_fetch_service(connection: HTTPConnection) -> FetchService:
    return connection.app.state.fetch_service

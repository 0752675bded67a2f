from fastapi import Request

from onlyif_messaging.services.chat_service import ChatService


def get_chat_service(request: Request) -> ChatService:
    # built once in the lifespan so per-conversation locks are shared by all requests
    return request.app.state.chat_service

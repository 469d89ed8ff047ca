"""
Chat router: POST /chat endpoint.

Receives user questions, answers them against the session's store and
returns the model message with its citations.
"""

from fastapi import APIRouter, Depends

from docchat.models.chat import ChatRequest, ChatResponse
from docchat.routers.session import get_session
from docchat.services.session import SessionController

router = APIRouter(tags=["chat"])


@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    session: SessionController = Depends(get_session),
) -> ChatResponse:
    """
    Ask a question about the uploaded documents.

    The endpoint:
    1. Requires the session to be ready (documents uploaded).
    2. Sends the question with the File Search tool bound to the store.
    3. Appends the question and answer to the transcript.
    4. Returns the answer with the fragments that can be shown as citations.
    """
    message = await session.ask(request.question)
    return ChatResponse(message=message, citations=message.citations)

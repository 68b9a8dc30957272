"""
Chat completion endpoint for the image router.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
import logging
import json
from typing import AsyncGenerator, List

from imgrouter.constants import REQUEST_ID_HEADER, STREAM_CONTENT_TYPE
from imgrouter.core.executor import RequestExecutor, RequestContext
from imgrouter.core.request_parser import parse_chat_request_body
from imgrouter.core.types import (
    ChatCompletionResponse, ChatCompletionStreamResponse,
    ChatCompletionStreamResponseChoice, FinishReason, Role
)
from imgrouter.middleware.auth import verify_api_key


logger = logging.getLogger(__name__)

# Create API router
router = APIRouter()


def get_executor(request: Request) -> RequestExecutor:
    return request.app.state.executor


def get_request_context(request: Request) -> RequestContext:
    """
    Create a request context from the HTTP request.

    Args:
        request: FastAPI request object

    Returns:
        Request context
    """
    request_id = getattr(request.state, "request_id", None) or request.headers.get(REQUEST_ID_HEADER)
    return RequestContext(
        request_id=request_id,
        headers=dict(request.headers),
        metadata={
            "client_host": request.client.host if request.client else None,
            "path": request.url.path,
            "method": request.method
        }
    )


@router.post("", response_model=ChatCompletionResponse)
async def create_chat_completion(
    request: Request,
    api_key: str = Depends(verify_api_key),
    executor: RequestExecutor = Depends(get_executor),
):
    """
    Generate images from a chat completion request.

    The body is JSON, or ``multipart/form-data`` with the JSON body in a
    ``payload`` field plus image files. Images are produced before any
    response is sent, so failures surface as ordinary error responses even
    when ``stream`` is set.
    """
    context = get_request_context(request)

    parsed = await parse_chat_request_body(request, executor.settings.image.max_bytes)
    for warning in parsed.warnings:
        context.log.warning(f"multipart warning: {warning}")
    if parsed.injected_image_count:
        context.log.info(f"multipart injected {parsed.injected_image_count} image(s)")

    response = await executor.execute_chat_completion(api_key, parsed.body, context)

    if isinstance(parsed.body, dict) and parsed.body.get("stream") is True:
        return StreamingResponse(
            streaming_chat_completion(response),
            media_type=STREAM_CONTENT_TYPE,
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    return response


def stream_chunks(response: ChatCompletionResponse) -> List[ChatCompletionStreamResponse]:
    """Split a finished completion into a content chunk and a stop chunk."""
    content = response.choices[0].message.content
    return [
        ChatCompletionStreamResponse(
            id=response.id,
            created=response.created,
            model=response.model,
            choices=[ChatCompletionStreamResponseChoice(
                delta={"role": Role.ASSISTANT.value, "content": content},
            )],
        ),
        ChatCompletionStreamResponse(
            id=response.id,
            created=response.created,
            model=response.model,
            choices=[ChatCompletionStreamResponseChoice(delta={}, finish_reason=FinishReason.STOP)],
        ),
    ]


async def streaming_chat_completion(response: ChatCompletionResponse) -> AsyncGenerator[str, None]:
    """
    Stream a finished chat completion.

    Yields:
        SSE formatted response chunks
    """
    for chunk in stream_chunks(response):
        yield f"data: {json.dumps(chunk.model_dump(mode='json'), ensure_ascii=False)}\n\n"

    # End of stream
    yield "data: [DONE]\n\n"

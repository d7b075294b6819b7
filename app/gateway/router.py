"""
AI Gateway: OpenAI-compatible chat completions endpoint.

  POST /v1/chat/completions

Processing:
  1. Validate the requested model against the catalog (unknown → 400, no upstream call)
  2. Pick the provider adapter for the model's provider mapping
  3. Call the provider, buffered or streamed
  4. Estimate missing token counts, compute cost
  5. Hand the activity log entry to the log writer
  6. Return the OpenAI-compatible response or event stream
"""
from fastapi import APIRouter
from fastapi.responses import JSONResponse, StreamingResponse

from app.core.dependencies import ActivityLogWriter, Context, Providers
from app.gateway.schemas import ChatCompletionRequest, ChatCompletionResponse, ErrorResponse
from app.gateway.service import ChatCompletionCall

router = APIRouter(prefix="/v1", tags=["gateway"])


@router.post(
    "/chat/completions",
    response_model=ChatCompletionResponse,
    responses={
        400: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)
async def chat_completions(
    request: ChatCompletionRequest,
    context: Context,
    providers: Providers,
    log_writer: ActivityLogWriter,
):
    call = ChatCompletionCall(
        request,
        organization_id=context.organization_id,
        project_id=context.project_id,
        api_key_id=context.api_key_id,
        provider_factory=providers,
        log_writer=log_writer,
    )
    call.validate()

    if request.stream:
        events = await call.open_stream()
        return StreamingResponse(
            events,
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Request-Id": call.request_id},
        )

    body = await call.complete()
    return JSONResponse(content=body, headers={"X-Request-Id": call.request_id})

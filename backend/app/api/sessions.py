from fastapi import APIRouter, HTTPException, Request

from app.analysis.models import AnalysisSnapshot
from app.interview.controller import InterviewSessionController
from app.interview.errors import ErrorKind, InterviewCoreError, OperationResult
from app.interview.models import InterviewConfig, MediaRefs
from app.schemas import (
    CreateInterviewRequest,
    DraftRequest,
    OperationResponse,
    SubmitAnswerRequest,
)
from app.session.runtime import InterviewRuntime

router = APIRouter(prefix="/interviews", tags=["interviews"])

_STATUS_BY_KIND = {
    ErrorKind.SESSION_BUSY: 409,
    ErrorKind.NOT_FOUND: 404,
}


def _runtime(request: Request) -> InterviewRuntime:
    return request.app.state.runtime


def _respond(runtime: InterviewRuntime, controller: InterviewSessionController, result: OperationResult) -> OperationResponse:
    status_code = _STATUS_BY_KIND.get(result.error_kind)
    if status_code is not None:
        raise HTTPException(status_code=status_code, detail=result.to_dict())

    runtime.sync(controller)
    return OperationResponse(
        success=result.success,
        error=result.error,
        error_kind=result.error_kind.value if result.error_kind else None,
        noop=result.noop,
        data=result.data,
        session=controller.snapshot_view(),
    )


async def _controller(request: Request, session_id: str) -> InterviewSessionController:
    try:
        return await _runtime(request).controller_for(session_id)
    except InterviewCoreError as exc:
        status_code = _STATUS_BY_KIND.get(exc.kind, 502)
        raise HTTPException(status_code=status_code, detail={"error": exc.message, "error_kind": exc.kind.value})


@router.post("", response_model=OperationResponse)
async def create_interview(req: CreateInterviewRequest, request: Request):
    runtime = _runtime(request)
    config = InterviewConfig(**req.model_dump())
    controller, result = await runtime.create(config)
    if not result.success:
        await controller.close()
    return _respond(runtime, controller, result)


@router.get("/{session_id}")
async def get_interview(session_id: str, request: Request):
    controller = await _controller(request, session_id)
    return controller.snapshot_view()


@router.post("/{session_id}/start", response_model=OperationResponse)
async def start_interview(session_id: str, request: Request):
    controller = await _controller(request, session_id)
    return _respond(_runtime(request), controller, await controller.start())


@router.post("/{session_id}/pause", response_model=OperationResponse)
async def pause_interview(session_id: str, request: Request):
    controller = await _controller(request, session_id)
    return _respond(_runtime(request), controller, controller.pause())


@router.post("/{session_id}/resume", response_model=OperationResponse)
async def resume_interview(session_id: str, request: Request):
    controller = await _controller(request, session_id)
    return _respond(_runtime(request), controller, controller.resume())


@router.post("/{session_id}/end", response_model=OperationResponse)
async def end_interview(session_id: str, request: Request):
    controller = await _controller(request, session_id)
    return _respond(_runtime(request), controller, await controller.end())


@router.post("/{session_id}/submit-answer", response_model=OperationResponse)
async def submit_answer(session_id: str, req: SubmitAnswerRequest, request: Request):
    controller = await _controller(request, session_id)
    media = MediaRefs(**req.media.model_dump()) if req.media else None
    snapshot = None
    if req.analysis is not None:
        fields = req.analysis.model_dump()
        # clients that only send the display list still get a full keyword set
        fields["all_keywords"] = fields["all_keywords"] or list(fields["keywords"])
        snapshot = AnalysisSnapshot.from_dict(fields)
    result = await controller.submit_answer(
        req.question_id,
        text=req.text,
        snapshot=snapshot,
        media=media,
    )
    return _respond(_runtime(request), controller, result)


@router.put("/{session_id}/draft", response_model=OperationResponse)
async def update_draft(session_id: str, req: DraftRequest, request: Request):
    controller = await _controller(request, session_id)
    return _respond(_runtime(request), controller, controller.update_draft(req.text))


@router.get("/{session_id}/analysis")
async def live_analysis(session_id: str, request: Request):
    controller = await _controller(request, session_id)
    draft = controller.current_draft()
    if controller.is_recording:
        return controller.analysis.snapshot().to_dict()
    if draft is not None and draft.analysis is not None:
        return draft.analysis.to_dict()
    return AnalysisSnapshot().to_dict()

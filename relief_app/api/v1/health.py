from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    rid = getattr(request.state, "request_id", None)
    counter = getattr(request.app.state, "api_calls", None)
    return {
        "status": "ok",
        "request_id": rid,
        "api_calls": counter.snapshot() if counter is not None else None,
    }

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request):
    embedder = getattr(request.app.state, "embedder", None)
    return {
        "status": "ok",
        "embedding_configured": bool(embedder and embedder.is_configured),
    }

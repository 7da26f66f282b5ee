"""FastAPI application entry point."""
from __future__ import annotations

from typing import Dict

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from commentlens.config import get_settings
from commentlens.exceptions import InvalidInputError
from commentlens.logging import configure_logging, get_logger
from commentlens.models.analysis import AnalysisResult, AnalyzeRequest
from commentlens.services.analysis import AnalysisService

configure_logging()
logger = get_logger(__name__)


class ServiceRegistry:
    def __init__(self) -> None:
        self.analysis = AnalysisService(get_settings())


def get_services() -> ServiceRegistry:
    return app.state.services  # type: ignore[attr-defined]


app = FastAPI(title="Comment Sentiment and Toxicity API", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event() -> None:
    logger.info("Starting application")
    app.state.services = ServiceRegistry()  # type: ignore[attr-defined]


@app.on_event("shutdown")
async def shutdown_event() -> None:
    logger.info("Shutting down application")


@app.post("/analyze", response_model=AnalysisResult)
async def analyze_comments(
    payload: AnalyzeRequest,
    services: ServiceRegistry = Depends(get_services),
) -> AnalysisResult:
    try:
        return await services.analysis.analyze(
            texts=payload.texts,
            analysis_prompt=payload.analysis_prompt,
            method=payload.method,
            comments=payload.comments,
            cache_key=payload.cache_key,
        )
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/analyses/{cache_key}", response_model=AnalysisResult)
async def get_cached_analysis(
    cache_key: str,
    services: ServiceRegistry = Depends(get_services),
) -> AnalysisResult:
    result = services.analysis.cached(cache_key)
    if result is None:
        raise HTTPException(status_code=404, detail="Analysis not found; run the analysis first")
    return result


@app.get("/health")
async def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


def get_app() -> FastAPI:
    return app

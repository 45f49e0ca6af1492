"""
Semantic Mediator API (FastAPI)
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from api.api_schemas import (
    CancelReviewRequest,
    ConsistencyRequest,
    DebugDataRequest,
    DebugSessionRequest,
    EnrichRequest,
    EvaluateTransformationRequest,
    ExtractInsightsRequest,
    ResolveConflictsRequest,
    ReviewFeedbackRequest,
    ReviewRequest,
    StoreTransformedRequest,
    TrackTransformationRequest,
    TransformationFeedbackRequest,
    TranslateRequest,
    TranslateResponse,
    ValidationContextRequest,
)
from core.circuit_breaker import CircuitState
from core.config import MediatorConfig
from core.errors import ConfigurationError, MediationError
from core.logging_config import setup_logging
from mediator.extension import SemanticMediatorExtension
from mediator.mediator import SemanticMediator

VERSION = "1.0.0"


def _http_error(error: Exception) -> HTTPException:
    if isinstance(error, ConfigurationError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, MediationError):
        return HTTPException(status_code=502, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))


def create_app(mediator: Optional[SemanticMediator] = None) -> FastAPI:
    """
    Build the API around a mediator.

    Args:
        mediator: Mediator to serve; built from MEDIATOR_* env vars when omitted

    Returns:
        FastAPI app
    """
    if mediator is None:
        config = MediatorConfig.from_env()
        setup_logging(config.log_level, config.log_file)
        mediator = SemanticMediator.from_config(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await mediator.start()
        yield
        await mediator.stop()

    app = FastAPI(
        title="Semantic Mediator API",
        description="Semantic translation, conflict resolution and transformation caching between modules",
        version=VERSION,
        lifespan=lifespan
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    extension = SemanticMediatorExtension(mediator)

    app.state.mediator = mediator
    app.state.extension = extension

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "message": "Semantic Mediator API",
            "version": VERSION,
            "model": mediator.config.model,
            "endpoints": {
                "/semantic-mediator/translate": "POST - Translate data between modules",
                "/semantic-mediator/enrich": "POST - Enrich data with related context",
                "/semantic-mediator/resolve-conflicts": "POST - Reconcile two representations",
                "/semantic-mediator/extract-insights": "POST - Extract semantic insights",
                "/semantic-mediator/track-transformation": "POST - Track a transformation",
                "/semantic-mediator/validation-context": "POST - Build a validation context",
                "/semantic-mediator/cache/stats": "GET - Cache statistics",
                "/semantic-mediator/evaluate-transformation": "POST - Score a transformation",
                "/semantic-mediator/debug-sessions": "POST - Open a debug session",
                "/semantic-mediator/reviews": "POST - Request human review",
                "/semantic-mediator/reviews/pending": "GET - Pending reviews",
                "/semantic-mediator/store-transformed": "POST - Store data translated to a schema",
                "/semantic-mediator/transformations/{id}/feedback": "POST - Rate a tracked transformation",
                "/semantic-mediator/validate-consistency": "POST - Check semantic constraints",
                "/health": "GET - Health check"
            }
        }

    @app.get("/health")
    async def health():
        """Health check"""
        breaker = mediator.reasoning.circuit_breaker
        state = breaker.get_state()
        return {
            "status": "healthy" if state == CircuitState.CLOSED else "degraded",
            "components": {
                "reasoning": {
                    "provider": type(mediator.reasoning.provider).__name__,
                    "circuit": state.value,
                    "failures": breaker.get_failures()
                },
                "cache": {
                    "entries": mediator.cache.get_stats().get("size", 0),
                    "predictive_threshold": mediator.cache.predictive_threshold
                }
            }
        }

    @app.post("/semantic-mediator/translate", response_model=TranslateResponse)
    async def translate(request: TranslateRequest):
        try:
            data = await mediator.translate_between_modules(
                request.source_module, request.target_module, request.data
            )
        except Exception as e:
            raise _http_error(e)
        return TranslateResponse(
            source_module=request.source_module,
            target_module=request.target_module,
            data=data
        )

    @app.post("/semantic-mediator/enrich")
    async def enrich(request: EnrichRequest):
        try:
            data = await mediator.enrich_with_context(request.module, request.data, request.context_query)
        except Exception as e:
            raise _http_error(e)
        return {"module": request.module, "data": data}

    @app.post("/semantic-mediator/resolve-conflicts")
    async def resolve_conflicts(request: ResolveConflictsRequest):
        try:
            return await mediator.resolve_semantic_conflicts(
                request.module_a, request.data_a, request.module_b, request.data_b, request.options
            )
        except Exception as e:
            raise _http_error(e)

    @app.post("/semantic-mediator/extract-insights")
    async def extract_insights(request: ExtractInsightsRequest):
        return await mediator.extract_semantic_insights(request.data, request.query)

    @app.post("/semantic-mediator/track-transformation")
    async def track_transformation(request: TrackTransformationRequest):
        try:
            return await mediator.track_semantic_transformation(
                request.source_module,
                request.target_module,
                request.source_data,
                request.transformed_data,
                request.options
            )
        except Exception as e:
            raise _http_error(e)

    @app.post("/semantic-mediator/validation-context")
    async def validation_context(request: ValidationContextRequest):
        try:
            return await mediator.generate_validation_context(
                request.expectation_id, request.code_id, request.previous_validations, request.options
            )
        except Exception as e:
            raise _http_error(e)

    @app.get("/semantic-mediator/cache/stats")
    async def cache_stats():
        return mediator.get_cache_stats()

    @app.post("/semantic-mediator/evaluate-transformation")
    async def evaluate_transformation(request: EvaluateTransformationRequest):
        try:
            return await mediator.evaluate_semantic_transformation(
                request.source_data, request.transformed_data, request.expected_outcome
            )
        except Exception as e:
            raise _http_error(e)

    # Debug sessions
    @app.post("/semantic-mediator/debug-sessions")
    async def create_debug_session(request: DebugSessionRequest):
        return {"sessionId": await mediator.monitoring.create_debug_session(request.context)}

    @app.post("/semantic-mediator/debug-sessions/{session_id}/data")
    async def log_debug_data(session_id: str, request: DebugDataRequest):
        if not await mediator.monitoring.log_debug_data(session_id, request.data):
            raise HTTPException(status_code=404, detail=f"No active debug session {session_id}")
        return {"sessionId": session_id, "logged": True}

    @app.post("/semantic-mediator/debug-sessions/{session_id}/end")
    async def end_debug_session(session_id: str):
        if not await mediator.monitoring.end_debug_session(session_id):
            raise HTTPException(status_code=404, detail=f"No active debug session {session_id}")
        return {"sessionId": session_id, "ended": True}

    @app.get("/semantic-mediator/debug-sessions/{session_id}")
    async def get_debug_session(session_id: str):
        session = await mediator.monitoring.get_debug_session_data(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"Unknown debug session {session_id}")
        return session

    # Human review
    @app.post("/semantic-mediator/reviews")
    async def request_review(request: ReviewRequest):
        review_id = await mediator.human_review.request_human_review(request.data, request.context, request.timeout)
        return {"reviewId": review_id}

    @app.get("/semantic-mediator/reviews/pending")
    async def pending_reviews(limit: int = 10):
        return [r.model_dump(mode="json") for r in mediator.human_review.get_pending_reviews(limit=limit)]

    @app.get("/semantic-mediator/reviews/history")
    async def review_history(limit: int = 50):
        return [r.model_dump(mode="json") for r in await mediator.human_review.get_feedback_history(limit=limit)]

    @app.get("/semantic-mediator/reviews/analysis")
    async def review_analysis(limit: int = 50):
        return await mediator.human_review.analyze_feedback_patterns(limit=limit)

    @app.get("/semantic-mediator/reviews/{review_id}")
    async def review_status(review_id: str):
        review = await mediator.human_review.get_review_status(review_id)
        if review is None:
            raise HTTPException(status_code=404, detail=f"Unknown review {review_id}")
        return review.model_dump(mode="json")

    @app.post("/semantic-mediator/reviews/{review_id}/feedback")
    async def submit_review_feedback(review_id: str, request: ReviewFeedbackRequest):
        if not await mediator.human_review.submit_human_feedback(review_id, request.feedback, request.metadata):
            raise HTTPException(status_code=409, detail=f"Review {review_id} is not pending")
        return {"reviewId": review_id, "status": "completed"}

    @app.post("/semantic-mediator/reviews/{review_id}/cancel")
    async def cancel_review(review_id: str, request: CancelReviewRequest):
        if not await mediator.human_review.cancel_review(review_id, request.reason):
            raise HTTPException(status_code=409, detail=f"Review {review_id} is not pending")
        return {"reviewId": review_id, "status": "cancelled"}

    # Memory extension
    @app.post("/semantic-mediator/store-transformed")
    async def store_transformed(request: StoreTransformedRequest):
        record = await extension.store_with_semantic_transformation(request.data, request.target_schema)
        if record is None:
            raise HTTPException(status_code=502, detail="Failed to store transformed data")
        return record.model_dump(mode="json")

    @app.post("/semantic-mediator/transformations/{transformation_id}/feedback")
    async def transformation_feedback(transformation_id: str, request: TransformationFeedbackRequest):
        try:
            record = await extension.record_transformation_feedback(transformation_id, request.model_dump())
        except Exception as e:
            raise _http_error(e)
        return record.model_dump(mode="json")

    @app.post("/semantic-mediator/validate-consistency")
    async def validate_consistency(request: ConsistencyRequest):
        return await extension.validate_semantic_consistency(request.data, request.data_type)

    return app


if __name__ == "__main__":
    import uvicorn

    print("\n" + "=" * 70)
    print("🚀 Starting Semantic Mediator API...")
    print("=" * 70)
    print("\n📍 Endpoints:")
    print("   • http://localhost:8000/")
    print("   • http://localhost:8000/semantic-mediator/translate (POST)")
    print("   • http://localhost:8000/semantic-mediator/resolve-conflicts (POST)")
    print("   • http://localhost:8000/semantic-mediator/cache/stats")
    print("   • http://localhost:8000/health")
    print("\n" + "=" * 70)

    uvicorn.run("api.api:create_app", factory=True, host="0.0.0.0", port=8000)

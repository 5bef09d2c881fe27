from fastapi import FastAPI, Depends, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import date, datetime, timedelta
from pydantic import BaseModel, Field
import logging

from config.settings import settings
from src.database import get_db, engine
from src.exceptions import ForecastEngineError
from src.models.database import Base
from src.services.accuracy.accuracy_service import AccuracyService
from src.services.forecasting.forecasting_service import ForecastingService

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.API_TITLE,
    description=settings.API_DESCRIPTION,
    version=settings.APP_VERSION
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Pydantic models for requests/responses
class ForecastRequest(BaseModel):
    target_date: date
    market_id: Optional[str] = None  # all active markets when omitted
    product_ids: Optional[List[str]] = None
    service_level: Optional[float] = Field(default=None, gt=0, lt=1)
    weather: Optional[str] = None


class ForecastResponse(BaseModel):
    success: bool
    result: Optional[dict] = None
    error: Optional[str] = None


def engine_error(e: ForecastEngineError) -> HTTPException:
    logger.warning(f"Rejected request: {e}")
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=e.to_dict()
    )


def default_range(start_date: Optional[date], end_date: Optional[date]):
    """Last four weeks up to yesterday unless given"""
    end_date = end_date or (datetime.utcnow().date() - timedelta(days=1))
    start_date = start_date or (end_date - timedelta(days=27))
    return start_date, end_date


# Health check
@app.get("/")
async def root():
    """Health check endpoint"""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "timestamp": datetime.utcnow().isoformat()
    }


@app.get("/health")
async def health_check():
    """Detailed health check"""
    return {
        "status": "healthy",
        "database": "connected",
        "timestamp": datetime.utcnow().isoformat()
    }


# Forecasting endpoints
@app.post("/api/v1/forecasts/generate", response_model=ForecastResponse)
async def generate_forecasts(
    request: ForecastRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    Generate production forecasts for a day

    - **target_date**: Day to produce for
    - **market_id**: Market to forecast (default: every active market)
    - **product_ids**: Restrict to these products (optional)
    - **service_level**: In-stock target overriding the critical fractile (optional)
    - **weather**: Weather condition overriding the stored market forecast (optional)
    """
    try:
        service = ForecastingService(db)
        options = {
            'product_ids': request.product_ids,
            'service_level': request.service_level,
            'weather': request.weather
        }

        if request.market_id:
            result = await service.generate_forecasts(request.target_date, request.market_id, **options)
        else:
            result = await service.generate_for_all_markets(request.target_date, **options)

        return ForecastResponse(success=True, result=result)

    except ForecastEngineError as e:
        raise engine_error(e)
    except Exception as e:
        logger.error(f"Error generating forecasts: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@app.get("/api/v1/forecasts/{forecast_date}")
async def get_forecasts(
    forecast_date: date,
    market_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db)
):
    """
    Get stored forecasts for a day

    - **forecast_date**: Day the forecasts are for
    - **market_id**: Restrict to one market (optional)
    """
    try:
        service = ForecastingService(db)
        forecasts = await service.get_forecasts(forecast_date, market_id)

        return {
            "date": forecast_date.isoformat(),
            "count": len(forecasts),
            "forecasts": forecasts
        }

    except Exception as e:
        logger.error(f"Error retrieving forecasts: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@app.delete("/api/v1/forecasts/{forecast_date}")
async def delete_forecasts(
    forecast_date: date,
    confirm: bool = False,
    market_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db)
):
    """
    Delete every forecast of a day (cannot be undone)

    - **confirm**: Must be true
    - **market_id**: Restrict to one market (optional)
    """
    if not confirm:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Deleting forecasts requires confirm=true"
        )

    try:
        service = ForecastingService(db)
        deleted = await service.delete_forecasts_for_date(forecast_date, market_id, confirm=True)

        return {
            "date": forecast_date.isoformat(),
            "deleted": deleted
        }

    except Exception as e:
        logger.error(f"Error deleting forecasts: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


# Accuracy endpoints
@app.get("/api/v1/accuracy/comparisons/{comparison_date}")
async def get_comparisons(
    comparison_date: date,
    market_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db)
):
    """
    Forecast vs. actual for one day

    - **comparison_date**: Day to reconcile
    - **market_id**: Restrict to one market (optional)
    """
    try:
        service = AccuracyService(db)
        records = await service.get_comparisons(comparison_date, market_id)

        return {
            "date": comparison_date.isoformat(),
            "count": len(records),
            "pending": sum(1 for r in records if r['status'] == 'pending'),
            "comparisons": records
        }

    except Exception as e:
        logger.error(f"Error building comparisons: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@app.get("/api/v1/accuracy/analysis")
async def get_accuracy_analysis(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    market_id: Optional[str] = None,
    include_records: bool = Query(default=False),
    db: AsyncSession = Depends(get_db)
):
    """
    Accuracy analysis for a date range

    - **start_date** / **end_date**: Range (default: four weeks up to yesterday)
    - **market_id**: Restrict to one market (optional)
    - **include_records**: Return the underlying comparison records
    """
    start_date, end_date = default_range(start_date, end_date)

    try:
        service = AccuracyService(db)
        analysis = await service.analyze(start_date, end_date, market_id)

        if not include_records:
            analysis.pop('records')

        return analysis

    except ForecastEngineError as e:
        raise engine_error(e)
    except Exception as e:
        logger.error(f"Error analyzing accuracy: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@app.get("/api/v1/accuracy/recommendations")
async def get_recommendations(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    market_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db)
):
    """
    Production adjustment recommendations for a date range

    - **start_date** / **end_date**: Range (default: four weeks up to yesterday)
    - **market_id**: Restrict to one market (optional)
    """
    start_date, end_date = default_range(start_date, end_date)

    try:
        service = AccuracyService(db)
        recommendations = await service.get_recommendations(start_date, end_date, market_id)

        return {
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "count": len(recommendations),
            "recommendations": recommendations
        }

    except ForecastEngineError as e:
        raise engine_error(e)
    except Exception as e:
        logger.error(f"Error generating recommendations: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


# Exception handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"}
    )


# Startup and shutdown events
@app.on_event("startup")
async def startup_event():
    """Initialize services on startup"""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    # Create database tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables created/verified")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    logger.info("Shutting down application")
    await engine.dispose()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "src.api.routes:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )

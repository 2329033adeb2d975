from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from src.core.config import settings
from src.core.exceptions import AppException, PersistenceError
from src.core.redis import close_redis_client
from src.domains.flight_simulation import (
    flight_simulation_router,
    get_clock_driver,
    get_simulation_controller,
    get_state_persistence,
    shutdown_clock_driver,
)


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


app = FastAPI(
    title="Flight Simulation Core API",
    description="仿真时钟与航班位置推算 API",
    version="1.0.0",
    docs_url=f"{settings.api_prefix}/docs",
    redoc_url=f"{settings.api_prefix}/redoc",
    openapi_url=f"{settings.api_prefix}/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.detail,
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error_code": "INTERNAL_ERROR",
            "message": "Internal server error",
            "details": str(exc) if settings.debug else None,
        },
    )


app.include_router(flight_simulation_router, prefix=settings.api_prefix)


@app.on_event("startup")
async def startup_event():
    """启动时恢复仿真状态并按配置启动时钟驱动"""
    if not settings.driver_enabled:
        logger.info("时钟驱动未启用，仅提供手动tick接口")
        return

    controller = get_simulation_controller()
    try:
        recovered = await controller.recover(await get_state_persistence())
        logger.info(f"仿真状态恢复: recovered={recovered}, state={controller.clock.state.value}")
    except PersistenceError as e:
        logger.warning(f"仿真状态恢复失败，以停止状态启动: {e.message}")

    driver = await get_clock_driver()
    await driver.start()
    logger.info("Clock driver started")


@app.on_event("shutdown")
async def shutdown_event():
    """关闭时停止时钟驱动并释放Redis连接"""
    await shutdown_clock_driver()
    logger.info("Clock driver stopped")

    await close_redis_client()


@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": "1.0.0"}


@app.get("/")
async def root():
    return {
        "name": "Flight Simulation Core API",
        "version": "1.0.0",
        "docs": f"{settings.api_prefix}/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("src.main:app", host="0.0.0.0", port=8000, reload=settings.debug)

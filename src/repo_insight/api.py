import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.requests import Request
from fastapi.responses import JSONResponse

from repo_insight import config, core, github, llm, models

logger = logging.getLogger(__name__)


app = FastAPI(title="GitHub Repository Insight")


@app.exception_handler(config.ConfigurationError)
async def configuration_error_handler(request: Request, exc: config.ConfigurationError) -> JSONResponse:
    logger.error(f"Configuration error: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content=models.ErrorResponse(message=exc.message).model_dump(),
    )


@app.exception_handler(github.GitHubError)
async def github_error_handler(request: Request, exc: github.GitHubError) -> JSONResponse:
    logger.error(f"GitHub error: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content=models.ErrorResponse(message=exc.message).model_dump(),
    )


@app.exception_handler(llm.ResponseShapeError)
async def response_shape_error_handler(request: Request, exc: llm.ResponseShapeError) -> JSONResponse:
    logger.error(f"Invalid AI response: {exc.detail}")
    return JSONResponse(
        status_code=502,
        content=models.ErrorResponse(message=exc.message).model_dump(),
    )


@app.exception_handler(llm.LLMError)
async def llm_error_handler(request: Request, exc: llm.LLMError) -> JSONResponse:
    logger.error(f"LLM error: {exc}")
    return JSONResponse(
        status_code=502,
        content=models.ErrorResponse(message=f"Failed to analyze repository: {exc.message}").model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    messages = "; ".join(
        f"{'.'.join(str(loc) for loc in e['loc'])}: {e['msg']}" for e in exc.errors()
    )
    return JSONResponse(
        status_code=422,
        content=models.ErrorResponse(message=messages).model_dump(),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error")
    return JSONResponse(
        status_code=500,
        content=models.ErrorResponse(message="Internal server error").model_dump(),
    )


@app.get("/")
async def root():
    return {
        "service": "GitHub Repository Insight",
        "usage": "POST /analyze with {\"github_url\": \"https://github.com/owner/repo\", \"force_refresh\": false}",
        "docs": "/docs",
    }


@app.post(
    "/analyze",
    response_model=models.RepositoryAnalysis,
    response_model_by_alias=True,
    responses={code: {"model": models.ErrorResponse} for code in (400, 404, 422, 429, 502, 503)},
)
async def analyze(request: models.AnalyzeRequest) -> models.RepositoryAnalysis:
    return await core.analyze_repo(request.github_url, force_refresh=request.force_refresh)

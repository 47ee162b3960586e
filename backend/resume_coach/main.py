import os
from dotenv import load_dotenv
load_dotenv()
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging

from resume_coach.telemetry import setup_telemetry
from resume_coach.credits import router as credits_router
from resume_coach.billing import router as billing_router
from resume_coach.ai import router as ai_router
from resume_coach.cover_letter_forms import router as cover_letter_forms_router
from resume_coach.newsletter import router as newsletter_router

logger = logging.getLogger(__name__)

if os.getenv("TELEMETRY_ENABLED", "False").lower() == "true":
    setup_telemetry()

app = FastAPI(title="Resume Coach API")

app_url = os.getenv("APP_URL", "http://localhost:3000")
origins = [
    app_url,
    "http://localhost:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(credits_router, prefix="/api", tags=["credits"])
app.include_router(billing_router, prefix="/api/billing", tags=["billing"])
app.include_router(ai_router, prefix="/api", tags=["ai"])
app.include_router(cover_letter_forms_router, prefix="/api")
app.include_router(newsletter_router, prefix="/api")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"Validation error for {request.url}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder(exc.errors()), "body": str(exc.body)[:500]},
    )


@app.get("/")
def read_root():
    return {"message": "Welcome to the Resume Coach API"}

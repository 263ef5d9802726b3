from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from powcaptcha.config import settings
from powcaptcha.logging_config import setup_logging
from powcaptcha.middleware.logging import LoggingMiddleware
from powcaptcha.routers import challenges, submissions

setup_logging()

app = FastAPI(
    title="powcaptcha",
    description="Stateless proof-of-work challenges and spam-filter signature verification",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Outermost, so CORS preflights get a correlation ID too
app.add_middleware(LoggingMiddleware)

# Routers
app.include_router(challenges.router, tags=["challenges"])
app.include_router(submissions.router, tags=["submissions"])

ENDPOINTS_TEXT = "\n".join(
    [
        "ALTCHA server endpoints:",
        "",
        "GET /altcha - use this endpoint as challengeurl for the widget",
        "POST /submit - use this endpoint as the form action",
        "POST /submit_spam_filter - use this endpoint for form submissions with spam filtering",
    ]
)


@app.get("/", response_class=PlainTextResponse)
async def index():
    return ENDPOINTS_TEXT


@app.get("/health")
async def health_check():
    return {"status": "healthy"}

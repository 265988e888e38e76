from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rhetoric.api.routes.analyze import router as analyze_router
from rhetoric.api.routes.exemplars import router as exemplars_router
from rhetoric.config import configure_logging

configure_logging()

app = FastAPI(
    title="Rhetoric Move Classifier API",
    description="Exemplar-based rhetorical move classification",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:8501",
    ],
    allow_origin_regex=r"http://localhost:\d+",
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(analyze_router)
app.include_router(exemplars_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}

import logging

from fastapi import FastAPI, APIRouter
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from donorhub.config import settings
from donorhub.routes.auth.router import router as auth_router
from donorhub.routes.donors.router import router as donors_router
from donorhub.routes.blood_banks.router import router as blood_banks_router
from donorhub.routes.appointments.router import router as appointments_router
from donorhub.routes.requests.router import router as requests_router
from donorhub.routes.donations.router import router as donations_router
from donorhub.utils.clock import local_now

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="DonorHub API", version="1.0.0")


@app.get("/", include_in_schema=False)
def read_root():
    return RedirectResponse(url="/docs")


@app.get("/health", tags=["health"])
def health():
    return {"status": "ok", "time": local_now().isoformat(), "timezone": settings.TIMEZONE}


api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(auth_router)
api_v1_router.include_router(donors_router)
api_v1_router.include_router(blood_banks_router)
api_v1_router.include_router(appointments_router)
api_v1_router.include_router(requests_router)
api_v1_router.include_router(donations_router)

app.include_router(api_v1_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000",
                   "http://127.0.0.1:3000"],
    allow_methods=["*"],
    allow_headers=["*"],
)

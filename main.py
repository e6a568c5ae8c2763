from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

import config
from admission import (
    Availability,
    BookingAdmissionService,
    NotFound,
    Rejected,
)
from database import async_session, init_db
from errors import BookingError
from logger import logger, setup_logging

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Starting Little Lemon booking service")
    await init_db()
    yield
    logger.info("🛑 Shutting down booking service")


app = FastAPI(title="Little Lemon Table Booking", lifespan=lifespan)


# Pydantic Schemas for Request/Response
class BookingCreate(BaseModel):
    table_id: int
    slot: datetime
    customer_id: int
    party_size: int
    notes: Optional[str] = Field(default=None, max_length=255)


class BookingReschedule(BaseModel):
    slot: datetime


class BookingResponse(BaseModel):
    message: str
    id: int


def get_admission_service() -> BookingAdmissionService:
    return BookingAdmissionService(async_session)


def _raise_for(outcome):
    if isinstance(outcome, Rejected):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=outcome.reason)
    if isinstance(outcome, NotFound):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=outcome.reason)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    if exc.status_code >= 500:
        logger.error(f"🔥 {request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": jsonable_encoder(exc.errors())})


@app.get("/health")
async def health_check():
    return {"status": "ok", "timestamp": datetime.now().isoformat()}


# --- GET /availability ---
@app.get("/availability", response_model=Availability)
async def check_availability(
    table_id: int = Query(..., ge=1),
    slot: datetime = Query(...),
    service: BookingAdmissionService = Depends(get_admission_service),
):
    return await service.check_availability(table_id, slot)


# --- POST /bookings ---
@app.post("/bookings", status_code=status.HTTP_201_CREATED, response_model=BookingResponse)
async def admit_booking(
    booking_data: BookingCreate,
    service: BookingAdmissionService = Depends(get_admission_service),
):
    outcome = await service.admit_booking(
        table_id=booking_data.table_id,
        slot=booking_data.slot,
        customer_id=booking_data.customer_id,
        party_size=booking_data.party_size,
        notes=booking_data.notes,
    )
    _raise_for(outcome)
    return BookingResponse(message="Booking successful", id=outcome.booking_id)


# --- PATCH /bookings/{booking_id} ---
@app.patch("/bookings/{booking_id}", response_model=BookingResponse)
async def reschedule_booking(
    booking_id: int,
    change: BookingReschedule,
    service: BookingAdmissionService = Depends(get_admission_service),
):
    outcome = await service.reschedule_booking(booking_id, change.slot)
    _raise_for(outcome)
    return BookingResponse(message="Booking rescheduled", id=booking_id)


# --- DELETE /bookings/{booking_id} ---
@app.delete("/bookings/{booking_id}", response_model=BookingResponse)
async def cancel_booking(
    booking_id: int,
    service: BookingAdmissionService = Depends(get_admission_service),
):
    outcome = await service.cancel_booking(booking_id)
    _raise_for(outcome)
    return BookingResponse(message="Booking cancelled", id=booking_id)


app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

from fastapi import APIRouter

# Auth
from app.api.v1.public.auth import router as auth_router

# Public: facility discovery & availability
from app.api.v1.public.facilities import router as public_facilities_router

# Public: booking intake & booker cancellation
from app.api.v1.public.bookings import router as bookings_router

# Public: user profile & notifications
from app.api.v1.public.me import router as me_router

# Admin: facility catalogue and routing table
from app.api.v1.admin.facilities import router as admin_facilities_router

# Approver queues
from app.api.v1.admin.reservations import router as admin_reservations_router, mdrr_router
from app.api.v1.admin.payment_approvals import (
    router as admin_payment_approvals_router,
    collector_router,
)

# Admin: audit trail
from app.api.v1.admin.transactions import router as transactions_router

api_router = APIRouter()

# --- Auth ---
api_router.include_router(auth_router)

# --- Public: discovery ---
api_router.include_router(public_facilities_router)

# --- Public: bookings ---
api_router.include_router(bookings_router)

# --- Public: profile & notifications ---
api_router.include_router(me_router)

# --- Admin ---
api_router.include_router(admin_facilities_router)
api_router.include_router(admin_reservations_router)
api_router.include_router(admin_payment_approvals_router)
api_router.include_router(transactions_router)

# --- MDRR staff ---
api_router.include_router(mdrr_router)

# --- Payment collectors ---
api_router.include_router(collector_router)

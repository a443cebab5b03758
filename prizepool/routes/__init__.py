"""
prizepool/routes/__init__.py
Route registration
"""
from fastapi import APIRouter
from prizepool.routes import tournaments, matches, wallet, compliance

router = APIRouter()

router.include_router(tournaments.router)
router.include_router(matches.router)
router.include_router(wallet.router)
router.include_router(compliance.router)

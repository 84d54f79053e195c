from fastapi import APIRouter

from sutra import settings

router = APIRouter()


@router.get("/")
async def root():
    return {
        "status": "Sutra Consultation Server is Running",
        "features": ["sessions", "messaging", "referrals", "voice_notes", "live_feed", "profiles"],
        "endpoints": {
            "create_session": "/api/sessions",
            "redeem": "/api/sessions/redeem",
            "messages": "/api/sessions/{session_id}/messages",
            "voice": "/api/sessions/{session_id}/voice",
            "referrals": "/api/sessions/{session_id}/referrals",
            "feed_ws": "/ws/sessions/{session_id}",
            "onboarding": "/api/profile/onboarding",
            "scan": "/api/scan/{patient_id}",
        }
    }


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "sutra-consult",
        "port": settings.PORT,
        "store": settings.STORE_BACKEND,
    }

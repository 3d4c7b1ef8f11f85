from fastapi import APIRouter, Depends, status

from tracker.deps import get_auth_service
from tracker.schemas import AuthResponse, LoginRequest, RegisterRequest
from tracker.services.auth_service import AuthService

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(request: RegisterRequest, service: AuthService = Depends(get_auth_service)):
    """Register a new user and return an access token"""
    return await service.register(request)


@router.post("/login", response_model=AuthResponse)
async def login(request: LoginRequest, service: AuthService = Depends(get_auth_service)):
    """Authenticate with email and password"""
    return await service.login(request)

import logging

from sqlalchemy.exc import IntegrityError
from sqlmodel.ext.asyncio.session import AsyncSession

from tracker.core.config import Settings
from tracker.core.exceptions import BadRequestError, DuplicateResourceError, ResourceNotFoundError
from tracker.core.security import create_access_token, hash_password, verify_password
from tracker.models import User
from tracker.repositories.user_repository import UserRepository
from tracker.schemas import AuthResponse, LoginRequest, RegisterRequest

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, session: AsyncSession, settings: Settings):
        self.session = session
        self.settings = settings
        self.users = UserRepository(session)

    async def register(self, request: RegisterRequest) -> AuthResponse:
        logger.info("Register request received for email=%s", request.email)

        if await self.users.exists_by_email(request.email):
            logger.warning("Registration failed: email already exists -> %s", request.email)
            raise DuplicateResourceError("User", "email", request.email)

        user = User(
            email=request.email,
            password=hash_password(request.password),
            full_name=request.full_name,
        )
        try:
            await self.users.save(user)
            await self.session.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration of the same email.
            await self.session.rollback()
            raise DuplicateResourceError("User", "email", request.email)
        logger.info("User registered successfully with email=%s", user.email)

        token = create_access_token(user.email, self.settings)
        return AuthResponse(token=token, email=user.email, full_name=user.full_name)

    async def login(self, request: LoginRequest) -> AuthResponse:
        logger.info("Login attempt for email=%s", request.email)

        user = await self.users.find_by_email(request.email)
        if user is None:
            logger.warning("Login failed: user not found for email=%s", request.email)
            raise ResourceNotFoundError("User", "email", request.email)

        if not verify_password(request.password, user.password):
            logger.warning("Login failed: invalid credentials for email=%s", request.email)
            raise BadRequestError("Invalid credentials")

        token = create_access_token(user.email, self.settings)
        logger.info("Login successful for email=%s", user.email)
        return AuthResponse(token=token, email=user.email, full_name=user.full_name)

"""User registration, login and profile management."""

from datetime import timedelta

import structlog
from sqlalchemy.exc import SQLAlchemyError

from oura_health_server.core.auth import create_access_token
from oura_health_server.core.errors import (
    ConflictError,
    DatabaseError,
    ForbiddenError,
    InvalidCredentialsError,
    NotFoundError,
    ValidationFailedError,
)
from oura_health_server.core.password import burn_verify_time, hash_password, verify_password
from oura_health_server.models.user import User
from oura_health_server.repositories.users import UserChanges, UserRepository
from oura_health_server.schemas.users import ProfileUpdate, UserResponse

logger = structlog.get_logger()

MIN_PASSWORD_LENGTH = 8

# Same message for unknown user and wrong password
INVALID_CREDENTIALS_MESSAGE = "Invalid username or password"


def user_to_response(user: User) -> UserResponse:
    """Map a user entity to its public DTO."""
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        is_active=user.is_active,
        created_at=user.created_at,
        last_login=user.last_login,
    )


class UserService:
    """Account lifecycle and JWT issuance."""

    def __init__(
        self,
        repository: UserRepository,
        jwt_secret: str,
        jwt_algorithm: str = "HS256",
        token_ttl: timedelta = timedelta(hours=24),
    ) -> None:
        """Initialize user service.

        Args:
            repository: User repository
            jwt_secret: Secret used to sign issued tokens
            jwt_algorithm: JWT signing algorithm
            token_ttl: Lifetime of issued tokens
        """
        self.repository = repository
        self.jwt_secret = jwt_secret
        self.jwt_algorithm = jwt_algorithm
        self.token_ttl = token_ttl
        self.logger = logger.bind(service="users")

    async def register(self, username: str, email: str, password: str) -> UserResponse:
        """Create a new account.

        Uniqueness is checked up front, so a taken username never costs a
        password hash.

        Raises:
            ValidationFailedError: If a field is empty or the password is too short
            ConflictError: If the username or email is taken
            DatabaseError: If storage fails
        """
        if not username or not email or not password:
            raise ValidationFailedError("Username, email, and password are required")
        _check_password(password)

        try:
            if await self.repository.get_by_username(username) is not None:
                raise ConflictError("Username already taken")
            if await self.repository.get_by_email(email) is not None:
                raise ConflictError("Email already registered")

            user = await self.repository.create_user(
                username=username,
                email=email,
                password_hash=hash_password(password),
            )
        except SQLAlchemyError as e:
            self.logger.error("Registration failed", username=username, error=str(e))
            raise DatabaseError("failed to create user") from e

        self.logger.info("User registered", user_id=user.id, username=username)
        return user_to_response(user)

    async def login(self, username: str, password: str) -> str:
        """Authenticate and issue a JWT.

        Returns:
            Signed JWT carrying user_id and username

        Raises:
            ValidationFailedError: If username or password is empty
            InvalidCredentialsError: If the user is unknown or the password is wrong
            ForbiddenError: If the account is disabled
            DatabaseError: If the lookup fails
        """
        if not username or not password:
            raise ValidationFailedError("Username and password are required")

        try:
            user = await self.repository.get_by_username(username)
        except SQLAlchemyError as e:
            raise DatabaseError("failed to look up user") from e

        if user is None:
            burn_verify_time(password)
            self.logger.warning("Login failed", username=username, reason="unknown_user")
            raise InvalidCredentialsError(INVALID_CREDENTIALS_MESSAGE)

        if not verify_password(password, user.password_hash):
            self.logger.warning("Login failed", username=username, reason="bad_password")
            raise InvalidCredentialsError(INVALID_CREDENTIALS_MESSAGE)

        if not user.is_active:
            self.logger.warning("Login refused for disabled account", user_id=user.id)
            raise ForbiddenError("Account is disabled")

        try:
            await self.repository.update_last_login(user.id)
        except SQLAlchemyError as e:
            self.logger.warning("Failed to update last login", user_id=user.id, error=str(e))

        token = create_access_token(
            user_id=user.id,
            username=user.username,
            secret=self.jwt_secret,
            algorithm=self.jwt_algorithm,
            expires_in=self.token_ttl,
        )
        self.logger.info("User logged in", user_id=user.id)
        return token

    async def get_profile(self, user_id: str) -> UserResponse:
        """Return a user's profile.

        Raises:
            NotFoundError: If the user does not exist
        """
        return user_to_response(await self._get_user(user_id))

    async def update_profile(self, user_id: str, update: ProfileUpdate) -> UserResponse:
        """Change email and/or password.

        Raises:
            NotFoundError: If the user does not exist
            ConflictError: If the new email belongs to another user
            ValidationFailedError: If the new password is too short
            DatabaseError: If storage fails
        """
        user = await self._get_user(user_id)

        email = None
        if update.email is not None and update.email != user.email:
            if not update.email:
                raise ValidationFailedError("Email cannot be empty")
            try:
                owner = await self.repository.get_by_email(update.email)
            except SQLAlchemyError as e:
                raise DatabaseError("failed to look up email") from e
            if owner is not None and owner.id != user_id:
                raise ConflictError("Email already in use")
            email = update.email

        password_hash = None
        if update.password is not None:
            _check_password(update.password)
            password_hash = hash_password(update.password)

        try:
            updated = await self.repository.update_user(
                user_id, UserChanges(email=email, password_hash=password_hash)
            )
        except SQLAlchemyError as e:
            self.logger.error("Profile update failed", user_id=user_id, error=str(e))
            raise DatabaseError("failed to update user") from e

        if updated is None:
            raise NotFoundError("User not found")

        self.logger.info(
            "Profile updated",
            user_id=user_id,
            email_changed=email is not None,
            password_changed=password_hash is not None,
        )
        return user_to_response(updated)

    async def delete_account(self, user_id: str) -> None:
        """Delete a user and, by cascade, their tokens and metrics.

        Raises:
            NotFoundError: If the user does not exist
            DatabaseError: If storage fails
        """
        try:
            deleted = await self.repository.delete_user(user_id)
        except SQLAlchemyError as e:
            self.logger.error("Account deletion failed", user_id=user_id, error=str(e))
            raise DatabaseError("failed to delete user") from e

        if not deleted:
            raise NotFoundError("User not found")

        self.logger.info("Account deleted", user_id=user_id)

    async def _get_user(self, user_id: str) -> User:
        try:
            user = await self.repository.get_by_id(user_id)
        except SQLAlchemyError as e:
            raise DatabaseError("failed to look up user") from e
        if user is None:
            raise NotFoundError("User not found")
        return user


def _check_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailedError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )

from eventpilot.models import User
from werkzeug.security import generate_password_hash, check_password_hash
from flask_jwt_extended import create_access_token
from eventpilot.exceptions import AuthenticationError, ConflictError, ValidationError
from eventpilot.repositories.user_repository import UserRepository
from datetime import timedelta
import logging

logger = logging.getLogger(__name__)


class UserService:
    @staticmethod
    def sign_up(user_data):
        email = (user_data.get("email") or "").strip().lower()
        if "@" not in email:
            raise ValidationError(fields={"email": ["Invalid email address"]})
        if len(user_data.get("password") or "") < 8:
            raise ValidationError(fields={"password": ["Password must be at least 8 characters"]})

        # Check if user exists
        if UserRepository.find_by_email(email):
            logger.warning(f"Signup attempt with existing email: {email}")
            raise ConflictError("User already exists")

        user = User(
            email=email,
            password=generate_password_hash(user_data["password"]),
            first_name=user_data["first_name"],
            last_name=user_data["last_name"],
        )
        created_user = UserRepository.sign_up(user)

        access_token = create_access_token(
            identity=str(created_user.id), expires_delta=timedelta(days=1)
        )
        logger.info(f"User created successfully: {created_user.email}")
        return {"token": access_token, "user": created_user.to_dict()}

    @staticmethod
    def sign_in(email, password):
        email = (email or "").strip().lower()
        user = UserRepository.find_by_email(email)
        if not user:
            logger.warning(f"Login attempt with non-existent email: {email}")
            raise AuthenticationError()

        if not check_password_hash(user.password, password):
            logger.warning(f"Failed login attempt for user: {email}")
            raise AuthenticationError()

        access_token = create_access_token(
            identity=str(user.id), expires_delta=timedelta(days=1)
        )
        logger.info(f"User logged in successfully: {email}")
        return {"token": access_token, "user": user.to_dict()}

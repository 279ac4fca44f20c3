from datetime import timedelta
import logging

from flask_jwt_extended import create_access_token
from werkzeug.security import generate_password_hash, check_password_hash

from eventhub.models import User
from eventhub.models.enums import UserRole
from eventhub.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

user_repository = UserRepository()


def _token_for(user):
    return create_access_token(identity=str(user.id), expires_delta=timedelta(days=1))


class UserService:
    @staticmethod
    def sign_up(user_data):
        email = user_data["email"].strip().lower()
        existing_user = user_repository.find_by_email(email)
        if existing_user:
            logger.warning(f"Signup attempt with existing email: {email}")
            raise ValueError("User already exists")

        # Admins are created out of band (see create_admin.py)
        user = User(
            email=email,
            password=generate_password_hash(user_data["password"]),
            first_name=user_data["first_name"],
            last_name=user_data["last_name"],
            role=UserRole.USER,
        )
        created_user = user_repository.create(user)
        logger.info(f"User created successfully: {created_user.email}")
        return {"token": _token_for(created_user), "user": created_user.to_dict()}

    @staticmethod
    def sign_in(email, password):
        user = user_repository.find_by_email(email)
        if not user:
            logger.warning(f"Login attempt with non-existent email: {email}")
            raise ValueError("Invalid email or password")

        if not check_password_hash(user.password, password):
            logger.warning(f"Failed login attempt for user: {email}")
            raise ValueError("Invalid email or password")

        logger.info(f"User logged in successfully: {email}")
        return {"token": _token_for(user), "user": user.to_dict()}

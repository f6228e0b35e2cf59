import hashlib
import logging
import secrets

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from squares_core.models.basic_authentication_models import UserModel
from squares_core.models.schemas import UserTable


def hash_password(password: str, salt: str, pepper: str) -> str:
    return hashlib.sha256((password + salt + pepper).encode()).hexdigest()


class CreateAuthentication:
    @staticmethod
    async def create_user_data(
        username: str, password: str, role: str, pepper: str, session: AsyncSession
    ) -> UserModel:
        """Create user data to authenticate the user

        Args:
            username (str): Login name
            password (str): Plain password, stored as a salted and peppered hash
            role (str): PARTICIPANT or SUPER_ADMIN
        """
        salt = secrets.token_hex(8)
        new_user = UserTable(
            username=username,
            hash_password=hash_password(password, salt, pepper),
            salt=salt,
            role=role,
        )
        session.add(new_user)
        return UserModel(
            username=new_user.username,
            hash_password=new_user.hash_password,
            salt=salt,
            role=role,
        )


class ReadAuthentication:
    @staticmethod
    async def read_user_data(username: str, session: AsyncSession) -> UserModel | None:
        """Read user data to get salt and password hash

        Args:
            username (str): username of the user

        Returns:
            UserModel: username, password hash, salt and role
        """
        stmt = select(UserTable).where(UserTable.username == username)
        result = await session.execute(stmt)
        result = result.scalars().first()
        if result is None:
            logging.info(f"User not found: {username}")
            return None
        return UserModel(
            username=result.username,
            hash_password=result.hash_password,
            salt=result.salt,
            role=result.role or "PARTICIPANT",
        )

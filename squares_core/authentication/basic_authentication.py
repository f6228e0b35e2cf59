import argparse
import asyncio
import secrets

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from squares_core.authentication.basic_authentication_crud import (
    CreateAuthentication,
    ReadAuthentication,
    hash_password,
)
from squares_core.models.basic_authentication_models import UserModel
from squares_core.models.dc_models import ActorModel, ActorRole

security = HTTPBasic()
create_auth = CreateAuthentication()
read_auth = ReadAuthentication()


def to_actor(user_data: UserModel) -> ActorModel:
    try:
        role = ActorRole(user_data.role)
    except ValueError:
        role = ActorRole.participant
    # Only the scheduler acts as SYSTEM.
    if role == ActorRole.system:
        role = ActorRole.participant
    return ActorModel(user_id=user_data.username, role=role, label=user_data.username)


class BasicAuthentication:
    def __init__(self):
        pass

    async def check_user_data(
        self, request: Request, credentials: HTTPBasicCredentials = Depends(security)
    ) -> UserModel:
        """Check if the user data is valid.

        Args:
            credentials (HTTPBasicCredentials, optional): Basic auth header. Defaults to Depends(security).

        Raises:
            HTTPException: The user is not found in the database
            HTTPException: The password is incorrect

        Returns:
            UserModel: Authenticated user
        """
        Session = request.app.state.Session
        pepper = request.app.state.pepper
        async with Session() as session:
            user_data = await read_auth.read_user_data(credentials.username, session)
        if user_data is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid username",
                headers={"WWW-Authenticate": "Basic"},
            )

        hashed_password = hash_password(credentials.password, user_data.salt, pepper)
        if not secrets.compare_digest(hashed_password, user_data.hash_password):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid password",
                headers={"WWW-Authenticate": "Basic"},
            )
        return user_data

    async def store_user_data(
        self, Session, user_name: str, password: str, role: str, pepper: str
    ) -> UserModel:
        async with Session() as session:
            async with session.begin():
                return await create_auth.create_user_data(user_name, password, role, pepper, session)


basic_auth = BasicAuthentication()


async def current_actor(user_data: UserModel = Depends(basic_auth.check_user_data)) -> ActorModel:
    return to_actor(user_data)


async def admin_actor(actor: ActorModel = Depends(current_actor)) -> ActorModel:
    if actor.role != ActorRole.super_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator role required",
        )
    return actor


def get_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Basic Authentication")
    parser.add_argument("--username", type=str, help="Username", required=True)
    parser.add_argument("--password", type=str, help="Password", required=True)
    parser.add_argument(
        "--role",
        type=str,
        help="Role",
        default=ActorRole.participant.value,
        choices=[ActorRole.participant.value, ActorRole.super_admin.value],
    )
    return parser


async def main(user_name: str, password: str, role: str):
    from squares_core.db import create_engine, create_session_factory, create_tables
    from squares_core.load_secrets import database_url, pepper_data

    engine = create_engine(database_url)
    await create_tables(engine)
    user_data = await basic_auth.store_user_data(
        create_session_factory(engine), user_name, password, role, pepper_data
    )
    print(user_data.username, user_data.role)
    await engine.dispose()


if __name__ == "__main__":
    parser = get_parser()
    args = parser.parse_args()
    asyncio.run(main(args.username, args.password, args.role))

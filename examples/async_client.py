"""Asynchronous client example: concurrent calls with AsyncCourier."""

import asyncio

from pydantic import BaseModel

from courier import AsyncCourier, JsonDecoder, get


class User(BaseModel):
    id: int
    name: str
    email: str


class Users:
    @get("/users/{user_id}")
    async def get_user(self, user_id: int) -> User:
        ...

    @get("/users")
    async def list_users(self) -> list[User]:
        ...


async def main():
    users = AsyncCourier.builder().decoder(JsonDecoder()).target(Users, "https://jsonplaceholder.typicode.com")

    print("Fetching three users concurrently...")
    results = await asyncio.gather(*(users.get_user(i) for i in range(1, 4)))
    for user in results:
        print(f"- {user.name} <{user.email}>")

    everyone = await users.list_users()
    print(f"\nThe directory has {len(everyone)} users")


if __name__ == "__main__":
    asyncio.run(main())

"""Basic declarative client example using courier."""

from typing import Optional

from pydantic import BaseModel

from courier import Courier, JsonDecoder, JsonEncoder, get, headers, post


class Post(BaseModel):
    id: Optional[int] = None
    userId: int
    title: str
    body: str


# Declare the API as an interface; courier generates the implementation
@headers("Accept: application/json")
class JSONPlaceholder:
    """Client for the JSONPlaceholder API."""

    @get("/posts?_limit={limit}")
    def list_posts(self, limit: int = 10) -> list[Post]:
        ...

    @get("/posts/{post_id}")
    def get_post(self, post_id: int) -> Post:
        ...

    @post("/posts")
    def create_post(self, post: Post) -> Post:
        ...


def main():
    api = (
        Courier.builder()
        .encoder(JsonEncoder(exclude_none=True))
        .decoder(JsonDecoder())
        .target(JSONPlaceholder, "https://jsonplaceholder.typicode.com")
    )

    # Get posts
    print("Fetching posts...")
    for item in api.list_posts(5):
        print(f"- {item.title}")

    print("\n" + "=" * 50 + "\n")

    # Get single post
    print("Fetching post #1...")
    item = api.get_post(1)
    print(f"Title: {item.title}")
    print(f"Body: {item.body}")

    print("\n" + "=" * 50 + "\n")

    # Create a post
    print("Creating a new post...")
    created = api.create_post(
        Post(userId=1, title="Hello from courier!", body="This post was created by a declarative client.")
    )
    print(f"Created post with ID: {created.id}")


if __name__ == "__main__":
    main()

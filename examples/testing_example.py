"""Testing a declarative client offline with MockClient and metrics."""

from pydantic import BaseModel

from courier import Courier, JsonDecoder, NotFound, get
from courier.ext.metrics import MetricsCapability
from courier.testing import MockClient


class Repo(BaseModel):
    name: str
    stargazers_count: int


class GitHub:
    @get("/repos/{owner}/{repo}")
    def repo(self, owner: str, repo: str) -> Repo:
        ...


def main():
    mock = MockClient()
    mock.ok("GET", "/repos/encode/httpx", {"name": "httpx", "stargazers_count": 13000})

    metrics = MetricsCapability()
    github = (
        Courier.builder()
        .client(mock)
        .decoder(JsonDecoder())
        .add_capability(metrics)
        .target(GitHub, "https://api.github.com")
    )

    repo = github.repo("encode", "httpx")
    print(f"⭐ {repo.name}: {repo.stargazers_count}")

    try:
        github.repo("encode", "missing")
    except NotFound as e:
        print(f"❌ {e}")

    sent = mock.verify("GET", "/repos/encode/httpx")
    print(f"📤 sent {sent.method} {sent.url}")

    print("\n📊 Metrics:")
    for series, values in metrics.registry.snapshot().items():
        print(f"  {series}: {values['count']} call(s)")


if __name__ == "__main__":
    main()

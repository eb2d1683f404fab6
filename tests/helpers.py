from __future__ import annotations

import json
import os
import threading

import pytest

from autoheal.core.exceptions import RerankBackendFailure
from autoheal.llm.client import LLMProvider

PRODUCT_CARD_MARKUP = """
<html>
  <body>
    <div class="product-card">
      <h3 class="product-title">Wireless Mouse</h3>
      <span class="price">$24.99</span>
      <button data-testid="add-to-cart-btn" class="btn-primary">Add to Cart</button>
    </div>
  </body>
</html>
"""

NAV_ONLY_MARKUP = """
<html>
  <body>
    <nav>
      <div>
        <a href="/docs">Documentation</a>
      </div>
    </nav>
  </body>
</html>
"""

SIDEBAR_MARKUP = """
<html>
  <body>
    <aside id="sidebar-nav">
      <ul>
        <li class="menu-item"><a href="/orders">Orders</a></li>
        <li class="menu-item"><a href="/returns">Returns</a></li>
      </ul>
    </aside>
  </body>
</html>
"""

LOGIN_FORM_MARKUP = """
<html>
  <body>
    <main>
      <form class="login-form">
        <label for="email">Email address</label>
        <input id="email" type="email">
        <input type="text" placeholder="Search products">
        <button type="submit" id="submit-48213977" class="css-1x2y3z4">Submit</button>
        <script>window.track = function () {}</script>
      </form>
    </main>
  </body>
</html>
"""


def padded_markup(target: str, filler_count: int = 200) -> str:
    filler = "".join(f"<p>filler paragraph {index}</p>" for index in range(filler_count))
    return f"<html><body><div>{filler}</div>{target}<div>{filler}</div></body></html>"


def rerank_response(ranked: list[dict], explanation: str = "The id changed between builds.") -> str:
    return json.dumps({"ranked": ranked, "explanationOfFailure": explanation})


class StaticProvider(LLMProvider):
    provider_name = "static"

    def __init__(self, response: str) -> None:
        self.response = response
        self.calls: list[tuple[str, str, float]] = []

    def complete(self, system: str, user: str, timeout: float) -> str:
        self.calls.append((system, user, timeout))
        return self.response


class FailingProvider(LLMProvider):
    provider_name = "failing"

    def __init__(self, exc: Exception | None = None) -> None:
        self.exc = exc or RerankBackendFailure("LLM request could not be completed: connection refused")
        self.calls = 0

    def complete(self, system: str, user: str, timeout: float) -> str:
        self.calls += 1
        raise self.exc


class BlockingProvider(LLMProvider):
    """Never answers before the caller's deadline; ``release`` lets the worker exit."""

    provider_name = "blocking"

    def __init__(self) -> None:
        self.release = threading.Event()

    def complete(self, system: str, user: str, timeout: float) -> str:
        self.release.wait(5)
        return rerank_response([{"selector": "#late", "rationale": "too late", "confidence": 0.9}])


def require_llm_credentials() -> str:
    provider = os.getenv("LLM_PROVIDER", "openai").lower()
    key_name = {
        "openai": "OPENAI_API_KEY",
        "anthropic": "ANTHROPIC_API_KEY",
        "gemini": "GEMINI_API_KEY",
    }.get(provider, "OPENAI_API_KEY")
    if not os.getenv(key_name):
        pytest.skip(f"{key_name} is required for generative rerank tests")
    return provider
